"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def image_size():
    """(width, height) of the synthetic camera."""
    return (640, 480)


@pytest.fixture
def true_matrix():
    """Ground truth intrinsics for synthetic views."""
    return np.array([
        [800.0, 0.0, 320.0],
        [0.0, 800.0, 240.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def sample_board():
    """4x5 inner corners, 2.5cm squares."""
    from monocal.types import BoardSpec
    return BoardSpec(width=4, height=5, square_size=0.025)


@pytest.fixture
def true_poses():
    """Three tilted board poses, roughly centered in the image."""
    from monocal.types import ViewPose
    rvecs = [
        [0.4, -0.3, 0.1],
        [-0.35, 0.4, 0.05],
        [0.2, 0.45, -0.2],
    ]
    tvecs = [
        [-0.04, -0.05, 0.35],
        [-0.03, -0.06, 0.40],
        [-0.05, -0.04, 0.38],
    ]
    return tuple(
        ViewPose(rvec=np.array(r, dtype=np.float64), tvec=np.array(t, dtype=np.float64))
        for r, t in zip(rvecs, tvecs)
    )


@pytest.fixture
def synthetic_views(sample_board, true_matrix, true_poses):
    """Noiseless ViewObservations projected through the ground truth camera."""
    from monocal.calibration.board import generate_model_points
    from monocal.types import ViewObservation

    model = generate_model_points(sample_board).astype(np.float64)
    views = []
    for pose in true_poses:
        projected, _ = cv2.projectPoints(
            model, pose.rvec, pose.tvec, true_matrix, np.zeros(5)
        )
        views.append(ViewObservation(image_points=projected[:, 0, :].astype(np.float32)))
    return tuple(views)


@pytest.fixture
def true_camera(true_matrix, true_poses):
    """CameraModel matching synthetic_views exactly."""
    from monocal.types import CameraModel
    return CameraModel(
        matrix=true_matrix,
        distortion=np.zeros(8, dtype=np.float64),
        poses=true_poses,
    )


@pytest.fixture
def sample_result(sample_board, image_size, true_camera, synthetic_views):
    """CalibrationResult with non-trivial values in every field."""
    from monocal.types import CalibrationFlags, CalibrationResult, CameraModel

    camera = CameraModel(
        matrix=np.array([
            [801.25, 0.0, 319.875],
            [0.0, 799.5, 241.125],
            [0.0, 0.0, 1.0],
        ]),
        distortion=np.array([0.1, -0.25, 0.001, -0.002, 0.05, 0.0, 0.0, 0.0]),
        poses=true_camera.poses,
    )
    return CalibrationResult(
        camera=camera,
        per_view_errors=np.array([0.125, 0.2, 0.3125]),
        avg_error=0.2222,
        success=True,
        board=sample_board,
        image_size=image_size,
        flags=CalibrationFlags(fix_aspect_ratio=True, zero_tangent_dist=True),
        aspect_ratio=1.5,
        observations=synthetic_views,
        solver_rms=0.2222,
    )
