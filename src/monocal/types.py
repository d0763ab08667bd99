"""
Core data structures for monocal.

All types are frozen dataclasses for immutability.
Logic is in separate pure functions - these are data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import cv2
import numpy as np


# ============================================================================
# Board Configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class BoardSpec:
    """
    Planar chessboard geometry.

    width/height count inner corners, square_size is in arbitrary but
    consistent units (the translation vectors come out in the same units).
    """

    width: int
    height: int
    square_size: float = 1.0

    @property
    def corner_count(self) -> int:
        """Number of correspondences every view must provide."""
        return self.width * self.height

    @property
    def pattern_size(self) -> tuple[int, int]:
        """(columns, rows) as OpenCV expects it."""
        return (self.width, self.height)


# ============================================================================
# Solver Constraints
# ============================================================================


@dataclass(frozen=True, slots=True)
class CalibrationFlags:
    """
    Constraints applied inside the solver. Set once, never changed mid-solve.
    """

    fix_aspect_ratio: bool = False
    zero_tangent_dist: bool = False
    fix_principal_point: bool = False
    use_intrinsic_guess: bool = False


# Ordered as they appear in the record's flags comment
_FLAG_BITS = (
    ("use_intrinsic_guess", cv2.CALIB_USE_INTRINSIC_GUESS, "use_intrinsic_guess"),
    ("fix_aspect_ratio", cv2.CALIB_FIX_ASPECT_RATIO, "fix_aspectRatio"),
    ("fix_principal_point", cv2.CALIB_FIX_PRINCIPAL_POINT, "fix_principal_point"),
    ("zero_tangent_dist", cv2.CALIB_ZERO_TANGENT_DIST, "zero_tangent_dist"),
)


def flags_to_cv(flags: CalibrationFlags) -> int:
    """
    Convert flags to the OpenCV CALIB_* bitmask.
    """
    value = 0
    for attr, bit, _ in _FLAG_BITS:
        if getattr(flags, attr):
            value |= bit
    return value


def flags_from_cv(value: int) -> CalibrationFlags:
    """
    Build flags from an OpenCV bitmask. Bits we don't model are ignored.
    """
    return CalibrationFlags(**{attr: bool(value & bit) for attr, bit, _ in _FLAG_BITS})


def describe_flags(flags: CalibrationFlags) -> str:
    """
    Human readable form, e.g. "flags: +fix_aspectRatio+zero_tangent_dist".
    """
    parts = "".join(f"+{label}" for attr, _, label in _FLAG_BITS if getattr(flags, attr))
    return f"flags: {parts}"


# ============================================================================
# Observations
# ============================================================================


@dataclass(frozen=True, slots=True)
class ViewObservation:
    """
    Detected 2D corners for one view.

    Row i corresponds to model point i (row-major across the board).
    """

    image_points: np.ndarray  # (n, 2) float32 image coordinates (x, y)

    @property
    def point_count(self) -> int:
        return int(self.image_points.shape[0])


# ============================================================================
# Calibration Output
# ============================================================================


@dataclass(frozen=True, slots=True)
class ViewPose:
    """
    Board pose for one view, board frame -> camera frame.
    """

    rvec: np.ndarray  # (3,) Rodrigues rotation vector
    tvec: np.ndarray  # (3,) translation, in board units


@dataclass(frozen=True, slots=True)
class CameraModel:
    """
    Solver output: shared intrinsics plus one pose per view.
    """

    matrix: np.ndarray  # 3x3 camera matrix
    distortion: np.ndarray  # (8,) k1, k2, p1, p2, k3, k4, k5, k6
    poses: tuple[ViewPose, ...]  # aligned with the input views

    @property
    def fx(self) -> float:
        return float(self.matrix[0, 0])

    @property
    def fy(self) -> float:
        return float(self.matrix[1, 1])

    @property
    def principal_point(self) -> tuple[float, float]:
        return float(self.matrix[0, 2]), float(self.matrix[1, 2])


@dataclass(frozen=True, slots=True)
class CalibrationResult:
    """
    Everything produced by one calibration run. Never mutated; re-running
    produces a new result.
    """

    camera: CameraModel
    per_view_errors: np.ndarray  # (n_views,) RMS per point, pixels
    avg_error: float  # global RMS over all points
    success: bool
    board: BoardSpec
    image_size: tuple[int, int]  # (width, height)
    flags: CalibrationFlags
    aspect_ratio: float = 1.0
    observations: tuple[ViewObservation, ...] = ()
    solver_rms: float = 0.0  # RMS reported by the resection backend
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def view_count(self) -> int:
        return len(self.camera.poses)


@dataclass(frozen=True, slots=True)
class CalibrationRecord:
    """
    A calibration record as read back from disk.

    Optional keys that were not written are None.
    """

    calibration_time: str
    image_size: tuple[int, int]
    board: BoardSpec
    flags: int
    camera_matrix: np.ndarray
    distortion_coefficients: np.ndarray
    avg_reprojection_error: float
    record_version: int | None = None
    nframes: int | None = None
    aspect_ratio: float | None = None
    per_view_reprojection_errors: np.ndarray | None = None
    extrinsic_parameters: np.ndarray | None = None  # (n, 6)
    image_points: np.ndarray | None = None  # (n, m, 2)


# ============================================================================
# Pure functions for computed properties
# ============================================================================


def poses_to_array(poses: tuple[ViewPose, ...] | list[ViewPose]) -> np.ndarray:
    """
    Pack poses into an (n, 6) array of [rvec, tvec] rows.
    """
    if len(poses) == 0:
        return np.zeros((0, 6), dtype=np.float64)
    return np.vstack([np.hstack([p.rvec, p.tvec]) for p in poses]).astype(np.float64)


def poses_from_array(array: np.ndarray) -> tuple[ViewPose, ...]:
    """
    Unpack an (n, 6) array of [rvec, tvec] rows.
    """
    array = np.asarray(array, dtype=np.float64).reshape(-1, 6)
    return tuple(ViewPose(rvec=row[0:3].copy(), tvec=row[3:6].copy()) for row in array)
