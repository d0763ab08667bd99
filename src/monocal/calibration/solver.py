"""
Joint intrinsic / extrinsic calibration from planar board views.

Pure functions - no threading, no state. The non-linear resection itself is
delegated to a backend: OpenCV's calibrateCamera (default) or a
scipy least_squares formulation over the same parameters.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import cv2
import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from ..errors import CountMismatch, DidNotConverge, NoObservations
from ..types import CalibrationFlags, CameraModel, ViewObservation, ViewPose, flags_to_cv
from .reprojection import evaluate

logger = logging.getLogger(__name__)


# ============================================================================
# Distortion Model
# ============================================================================

DISTORTION_NAMES = ("k1", "k2", "p1", "p2", "k3", "k4", "k5", "k6")
DISTORTION_COEFFICIENT_COUNT = len(DISTORTION_NAMES)

# Modeling policy: these radial terms are always held at zero, whatever the
# caller's flags say.
FIXED_ZERO_DISTORTION = ("k4", "k5")
_FIXED_ZERO_INDICES = tuple(DISTORTION_NAMES.index(name) for name in FIXED_ZERO_DISTORTION)
_FIXED_ZERO_CV_FLAGS = cv2.CALIB_FIX_K4 | cv2.CALIB_FIX_K5

BACKENDS = ("opencv", "least_squares")

TERM_CRITERIA = (
    cv2.TERM_CRITERIA_COUNT + cv2.TERM_CRITERIA_EPS,
    100,
    float(np.finfo(np.float64).eps),
)


@dataclass(frozen=True, slots=True)
class SolveOutput:
    """
    Camera model plus the RMS the backend reported for it.
    """

    camera: CameraModel
    rms: float


# ============================================================================
# Public API
# ============================================================================


def solve(
    observations: Sequence[ViewObservation],
    model_points: np.ndarray,
    image_size: tuple[int, int],
    flags: CalibrationFlags = CalibrationFlags(),
    aspect_ratio: float = 1.0,
    initial_matrix: np.ndarray | None = None,
    backend: str = "opencv",
) -> SolveOutput:
    """
    Estimate shared intrinsics and one pose per view.

    Args:
        observations: Views in capture order; pose output keeps this order
        model_points: (n, 3) board points, replicated once per view
        image_size: (width, height) of every view
        flags: Solver constraints
        aspect_ratio: fx / fy, used when flags.fix_aspect_ratio is set
        initial_matrix: Starting 3x3 matrix for flags.use_intrinsic_guess.
            Estimated from the views if None.
        backend: "opencv" or "least_squares"

    Returns:
        SolveOutput with the CameraModel and backend RMS

    Raises:
        NoObservations: If observations is empty
        CountMismatch: If a view's point count differs from the model's
        DidNotConverge: If the matrix or distortion is not finite, or OpenCV
            rejects the views as degenerate
        ValueError: On a non-positive aspect ratio or unknown backend
    """
    if len(observations) == 0:
        raise NoObservations("Cannot calibrate from zero views")
    if backend not in BACKENDS:
        raise ValueError(f"Unknown solver backend: {backend!r} (expected one of {BACKENDS})")
    if not aspect_ratio > 0:
        raise ValueError(f"Invalid aspect ratio: {aspect_ratio}")

    model = np.asarray(model_points, dtype=np.float32).reshape(-1, 3)
    for view in observations:
        if view.point_count != model.shape[0]:
            raise CountMismatch(model.shape[0], view.point_count)

    # Same board geometry for every view
    object_points = [model] * len(observations)
    image_points = [np.asarray(v.image_points, dtype=np.float32) for v in observations]
    size = (int(image_size[0]), int(image_size[1]))

    try:
        matrix0 = initial_camera_matrix(
            object_points, image_points, size, flags, aspect_ratio, initial_matrix
        )

        if backend == "opencv":
            rms, matrix, distortion, poses = _solve_opencv(
                object_points, image_points, size, flags, matrix0
            )
        else:
            rms, matrix, distortion, poses = _solve_least_squares(
                object_points, image_points, size, flags, aspect_ratio, matrix0
            )
    except cv2.error as exc:
        # Degenerate geometry, e.g. collinear corners or too few of them
        raise DidNotConverge(f"{backend} backend rejected the views: {exc}") from exc

    logger.info("RMS error reported by %s backend: %g", backend, rms)

    camera = CameraModel(matrix=matrix, distortion=distortion, poses=poses)

    if not check_range(matrix, distortion):
        avg_error = _diagnostic_error(observations, model, camera)
        raise DidNotConverge(
            "Calibration produced non-finite camera parameters",
            avg_error=avg_error,
            rms=rms,
        )

    return SolveOutput(camera=camera, rms=rms)


def initial_camera_matrix(
    object_points: list[np.ndarray],
    image_points: list[np.ndarray],
    image_size: tuple[int, int],
    flags: CalibrationFlags,
    aspect_ratio: float,
    initial_matrix: np.ndarray | None = None,
) -> np.ndarray:
    """
    Starting intrinsic matrix handed to the backend.

    Identity, with (0, 0) seeded with the aspect ratio when it is fixed.
    With use_intrinsic_guess the caller's matrix is used, or one estimated
    from the board homographies.
    """
    if flags.use_intrinsic_guess:
        if initial_matrix is not None:
            return np.array(initial_matrix, dtype=np.float64).reshape(3, 3)
        return _estimate_camera_matrix(
            object_points, image_points, image_size, flags, aspect_ratio
        )

    matrix = np.eye(3, dtype=np.float64)
    if flags.fix_aspect_ratio:
        matrix[0, 0] = aspect_ratio
    return matrix


def check_range(matrix: np.ndarray, distortion: np.ndarray) -> bool:
    """
    True if every intrinsic and distortion value is finite.
    """
    return bool(np.all(np.isfinite(matrix)) and np.all(np.isfinite(distortion)))


def normalize_distortion(distortion: np.ndarray) -> np.ndarray:
    """
    Flatten to DISTORTION_COEFFICIENT_COUNT entries with the fixed terms zeroed.
    """
    flat = np.asarray(distortion, dtype=np.float64).ravel()[:DISTORTION_COEFFICIENT_COUNT]
    out = np.zeros(DISTORTION_COEFFICIENT_COUNT, dtype=np.float64)
    out[: flat.size] = flat
    out[list(_FIXED_ZERO_INDICES)] = 0.0
    return out


# ============================================================================
# OpenCV Backend
# ============================================================================


def _solve_opencv(
    object_points: list[np.ndarray],
    image_points: list[np.ndarray],
    image_size: tuple[int, int],
    flags: CalibrationFlags,
    matrix0: np.ndarray,
) -> tuple[float, np.ndarray, np.ndarray, tuple[ViewPose, ...]]:
    distortion0 = np.zeros((DISTORTION_COEFFICIENT_COUNT, 1), dtype=np.float64)

    rms, matrix, distortion, rvecs, tvecs = cv2.calibrateCamera(
        object_points,
        image_points,
        image_size,
        matrix0.copy(),
        distortion0,
        flags=flags_to_cv(flags) | _FIXED_ZERO_CV_FLAGS,
        criteria=TERM_CRITERIA,
    )

    poses = tuple(
        ViewPose(
            rvec=np.asarray(r, dtype=np.float64).ravel(),
            tvec=np.asarray(t, dtype=np.float64).ravel(),
        )
        for r, t in zip(rvecs, tvecs)
    )

    return float(rms), np.asarray(matrix, dtype=np.float64), normalize_distortion(distortion), poses


# ============================================================================
# scipy least_squares Backend
# ============================================================================

# fx, fy, cx, cy followed by the distortion terms that are ever optimized
_INTRINSIC_NAMES = ("fx", "fy", "cx", "cy", "k1", "k2", "p1", "p2", "k3")
POSE_PARAM_COUNT = 6


def _free_intrinsic_indices(flags: CalibrationFlags) -> np.ndarray:
    """
    Indices into _INTRINSIC_NAMES that the optimizer is allowed to move.
    """
    fixed = set()
    if flags.fix_aspect_ratio:
        fixed.add("fx")  # tied to fy
    if flags.fix_principal_point:
        fixed.update(("cx", "cy"))
    if flags.zero_tangent_dist:
        fixed.update(("p1", "p2"))
    return np.array(
        [i for i, name in enumerate(_INTRINSIC_NAMES) if name not in fixed],
        dtype=np.int64,
    )


def _expand_intrinsics(
    free_values: np.ndarray,
    free_indices: np.ndarray,
    base: np.ndarray,
    ratio: float | None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Rebuild (matrix, distortion) from the optimized subset.
    """
    full = base.copy()
    full[free_indices] = free_values
    if ratio is not None:
        full[0] = ratio * full[1]

    matrix = np.array(
        [
            [full[0], 0.0, full[2]],
            [0.0, full[1], full[3]],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )
    distortion = np.zeros(DISTORTION_COEFFICIENT_COUNT, dtype=np.float64)
    distortion[0:5] = full[4:9]
    return matrix, distortion


def _get_sparsity_pattern(n_views: int, n_points: int, n_intrinsic: int) -> lil_matrix:
    """
    Build sparse Jacobian pattern for least_squares.

    Intrinsics touch every residual; a view's pose only touches its own.
    """
    m = n_views * n_points * 2  # 2 residuals per observation (x, y)
    n = n_intrinsic + n_views * POSE_PARAM_COUNT

    A = lil_matrix((m, n), dtype=int)
    A[:, :n_intrinsic] = 1

    rows_per_view = n_points * 2
    for v in range(n_views):
        row0 = v * rows_per_view
        col0 = n_intrinsic + v * POSE_PARAM_COUNT
        A[row0 : row0 + rows_per_view, col0 : col0 + POSE_PARAM_COUNT] = 1

    return A


def _xy_reprojection_error(
    params: np.ndarray,
    object_points: list[np.ndarray],
    image_points: list[np.ndarray],
    free_indices: np.ndarray,
    base: np.ndarray,
    ratio: float | None,
) -> np.ndarray:
    """
    Residuals (projected - observed) for every view, flattened.
    """
    n_intrinsic = free_indices.size
    matrix, distortion = _expand_intrinsics(params[:n_intrinsic], free_indices, base, ratio)
    pose_params = params[n_intrinsic:].reshape(-1, POSE_PARAM_COUNT)

    residuals = []
    for obj, img, pose in zip(object_points, image_points, pose_params):
        projected, _ = cv2.projectPoints(obj, pose[0:3], pose[3:6], matrix, distortion)
        residuals.append((projected[:, 0, :] - img).ravel())

    return np.concatenate(residuals)


def _solve_least_squares(
    object_points: list[np.ndarray],
    image_points: list[np.ndarray],
    image_size: tuple[int, int],
    flags: CalibrationFlags,
    aspect_ratio: float,
    matrix0: np.ndarray,
) -> tuple[float, np.ndarray, np.ndarray, tuple[ViewPose, ...]]:
    # calibrateCamera estimates its own start unless told to use the guess;
    # do the same here
    if flags.use_intrinsic_guess:
        start = matrix0
    else:
        start = _estimate_camera_matrix(
            object_points, image_points, image_size, flags, aspect_ratio
        )

    # float64 throughout so finite-difference Jacobians aren't quantized
    object_points = [np.asarray(o, dtype=np.float64) for o in object_points]
    image_points = [np.asarray(i, dtype=np.float64) for i in image_points]

    ratio = float(start[0, 0] / start[1, 1]) if flags.fix_aspect_ratio else None

    base = np.zeros(len(_INTRINSIC_NAMES), dtype=np.float64)
    base[0:4] = [start[0, 0], start[1, 1], start[0, 2], start[1, 2]]
    free_indices = _free_intrinsic_indices(flags)

    # Initial poses from the starting intrinsics, no distortion
    pose_params = np.zeros((len(object_points), POSE_PARAM_COUNT), dtype=np.float64)
    for i, (obj, img) in enumerate(zip(object_points, image_points)):
        _, rvec, tvec = cv2.solvePnP(obj, img, start, np.zeros(5))
        pose_params[i] = np.hstack([rvec.ravel(), tvec.ravel()])

    initial_params = np.hstack([base[free_indices], pose_params.ravel()])

    sparsity = _get_sparsity_pattern(
        len(object_points), object_points[0].shape[0], free_indices.size
    )

    result = least_squares(
        _xy_reprojection_error,
        initial_params,
        jac_sparsity=sparsity,
        verbose=0,
        x_scale="jac",
        loss="linear",
        ftol=1e-12,
        xtol=1e-12,
        gtol=1e-12,
        method="trf",
        args=(object_points, image_points, free_indices, base, ratio),
    )

    if result.status <= 0:
        logger.warning("least_squares stopped early: %s", result.message)

    n_intrinsic = free_indices.size
    matrix, distortion = _expand_intrinsics(
        result.x[:n_intrinsic], free_indices, base, ratio
    )
    poses = tuple(
        ViewPose(rvec=p[0:3].copy(), tvec=p[3:6].copy())
        for p in result.x[n_intrinsic:].reshape(-1, POSE_PARAM_COUNT)
    )

    total_points = sum(obj.shape[0] for obj in object_points)
    rms = float(np.sqrt(2.0 * result.cost / total_points))

    return rms, matrix, normalize_distortion(distortion), poses


# ============================================================================
# Helpers
# ============================================================================


def _estimate_camera_matrix(
    object_points: list[np.ndarray],
    image_points: list[np.ndarray],
    image_size: tuple[int, int],
    flags: CalibrationFlags,
    aspect_ratio: float,
) -> np.ndarray:
    """
    Closed-form intrinsic estimate from the board homographies.
    """
    matrix = cv2.initCameraMatrix2D(
        object_points,
        image_points,
        image_size,
        aspect_ratio if flags.fix_aspect_ratio else 0.0,
    )
    return np.asarray(matrix, dtype=np.float64)


def _diagnostic_error(
    observations: Sequence[ViewObservation],
    model_points: np.ndarray,
    camera: CameraModel,
) -> float:
    """
    Reprojection error of an invalid estimate, for reporting only.
    """
    try:
        with np.errstate(invalid="ignore", over="ignore"):
            _, avg_error = evaluate(observations, model_points, camera)
    except cv2.error as exc:
        logger.debug("Could not evaluate invalid estimate: %s", exc)
        return float("nan")
    return avg_error
