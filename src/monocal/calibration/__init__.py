"""
Calibration module for monocal.

Functions take dataclasses and return dataclasses. The only stateful piece
is the append-only ObservationStore used during collection.
No threading - caller handles concurrency.
"""

from .board import (
    generate_model_points,
    validate_board,
)

from .observations import ObservationStore

from .solver import (
    DISTORTION_COEFFICIENT_COUNT,
    FIXED_ZERO_DISTORTION,
    SolveOutput,
    solve,
)

from .reprojection import (
    aggregate_rms,
    evaluate,
)

from .detection import detect_chessboard_corners

__all__ = [
    # Board
    "generate_model_points",
    "validate_board",
    # Observations
    "ObservationStore",
    # Solver
    "DISTORTION_COEFFICIENT_COUNT",
    "FIXED_ZERO_DISTORTION",
    "SolveOutput",
    "solve",
    # Reprojection
    "aggregate_rms",
    "evaluate",
    # Detection
    "detect_chessboard_corners",
]
