"""
Chessboard geometry.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import numpy as np

from ..errors import InvalidGeometry
from ..types import BoardSpec


def validate_board(board: BoardSpec) -> None:
    """
    Check board dimensions.

    Raises:
        InvalidGeometry: If width, height or square size is not positive
    """
    if board.width <= 0:
        raise InvalidGeometry(f"Invalid board width: {board.width}")
    if board.height <= 0:
        raise InvalidGeometry(f"Invalid board height: {board.height}")
    if not board.square_size > 0:
        raise InvalidGeometry(f"Invalid board square size: {board.square_size}")


def generate_model_points(board: BoardSpec) -> np.ndarray:
    """
    Get the 3D object points for all inner corners on the board.

    Points lie on z = 0 in row-major order: point(row, col) is
    (col * square_size, row * square_size, 0).

    Args:
        board: BoardSpec with board parameters

    Returns:
        (width * height, 3) float32 array, read-only so one copy can be
        shared by every view

    Raises:
        InvalidGeometry: If the board is not valid
    """
    validate_board(board)

    rows, cols = np.mgrid[0 : board.height, 0 : board.width]

    points = np.zeros((board.corner_count, 3), dtype=np.float32)
    points[:, 0] = cols.ravel() * np.float32(board.square_size)
    points[:, 1] = rows.ravel() * np.float32(board.square_size)

    points.setflags(write=False)
    return points
