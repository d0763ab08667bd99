"""
Chessboard corner extraction.

Thin wrapper over OpenCV's detector and sub-pixel refinement. The store and
solver only see its output: (n, 2) corners in row-major board order.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..types import BoardSpec


FIND_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_FAST_CHECK | cv2.CALIB_CB_NORMALIZE_IMAGE
)
SUBPIX_WINDOW = (11, 11)
SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, 30, 0.1)


def to_gray(image: np.ndarray) -> np.ndarray:
    """
    BGR or grayscale image -> grayscale.
    """
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def detect_chessboard_corners(
    image: np.ndarray,
    board: BoardSpec,
) -> np.ndarray | None:
    """
    Find the board's inner corners in a single image.

    Args:
        image: BGR or grayscale image (h, w[, 3])
        board: BoardSpec for the board

    Returns:
        (width * height, 2) float32 corners refined to sub-pixel accuracy,
        or None if the full pattern wasn't found
    """
    gray = to_gray(image)

    found, corners = cv2.findChessboardCorners(gray, board.pattern_size, flags=FIND_FLAGS)
    if not found or corners is None:
        return None

    corners = cv2.cornerSubPix(gray, corners, SUBPIX_WINDOW, (-1, -1), SUBPIX_CRITERIA)

    return corners.reshape(-1, 2).astype(np.float32)


def image_size_of(image: np.ndarray) -> tuple[int, int]:
    """(width, height) of an image array."""
    return int(image.shape[1]), int(image.shape[0])
