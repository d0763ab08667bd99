"""
Reprojection error of a calibrated camera against its own observations.

Pure functions - no side effects.
"""

from __future__ import annotations

from collections.abc import Sequence

import cv2
import numpy as np

from ..errors import NoObservations
from ..types import CameraModel, ViewObservation, ViewPose


def project_model_points(
    model_points: np.ndarray,
    pose: ViewPose,
    matrix: np.ndarray,
    distortion: np.ndarray,
) -> np.ndarray:
    """
    Project board points into the image for one view.

    Returns:
        (n, 2) float64 predicted image coordinates
    """
    projected, _ = cv2.projectPoints(
        np.asarray(model_points, dtype=np.float64),
        np.asarray(pose.rvec, dtype=np.float64),
        np.asarray(pose.tvec, dtype=np.float64),
        np.asarray(matrix, dtype=np.float64),
        np.asarray(distortion, dtype=np.float64),
    )
    return projected[:, 0, :]


def view_squared_norm(observed: np.ndarray, projected: np.ndarray) -> float:
    """
    Squared L2 norm between two point sets, each treated as a flat vector.
    """
    diff = np.asarray(observed, dtype=np.float64).ravel() - np.asarray(
        projected, dtype=np.float64
    ).ravel()
    return float(np.dot(diff, diff))


def aggregate_rms(
    squared_norms: Sequence[float],
    point_counts: Sequence[int],
) -> float:
    """
    Global RMS over every point of every view.

    sqrt(sum(squared_norms) / sum(point_counts)). This is not the mean of the
    per-view RMS values.
    """
    total_points = int(np.sum(point_counts))
    if total_points == 0:
        raise NoObservations("No points to compute reprojection error from")
    return float(np.sqrt(np.sum(squared_norms, dtype=np.float64) / total_points))


def evaluate(
    observations: Sequence[ViewObservation],
    model_points: np.ndarray,
    camera: CameraModel,
) -> tuple[np.ndarray, float]:
    """
    Compute per-view and aggregate reprojection error.

    Args:
        observations: Views in solver order
        model_points: (n, 3) board points shared by every view
        camera: Solver output with one pose per view

    Returns:
        (per_view_errors, aggregate_error). Per-view error is
        sqrt(squared_norm / n) for that view, in pixels.

    Raises:
        NoObservations: If there are no views
        ValueError: If pose count and view count differ
    """
    if len(observations) == 0:
        raise NoObservations("No views to evaluate")
    if len(camera.poses) != len(observations):
        raise ValueError(
            f"Camera has {len(camera.poses)} poses for {len(observations)} views"
        )

    squared_norms = []
    point_counts = []

    for view, pose in zip(observations, camera.poses):
        projected = project_model_points(
            model_points, pose, camera.matrix, camera.distortion
        )
        squared_norms.append(view_squared_norm(view.image_points, projected))
        point_counts.append(view.point_count)

    squared = np.array(squared_norms, dtype=np.float64)
    counts = np.array(point_counts, dtype=np.float64)
    per_view = np.sqrt(squared / counts)

    return per_view, aggregate_rms(squared, counts)
