"""
Tests for monocal.types dataclasses.
"""

import cv2
import numpy as np
import pytest

from monocal.types import (
    BoardSpec,
    CalibrationFlags,
    ViewObservation,
    ViewPose,
    describe_flags,
    flags_from_cv,
    flags_to_cv,
    poses_from_array,
    poses_to_array,
)


class TestBoardSpec:
    def test_defaults(self):
        board = BoardSpec(width=9, height=6)
        assert board.square_size == 1.0

    def test_computed_properties(self, sample_board):
        assert sample_board.corner_count == 20
        assert sample_board.pattern_size == (4, 5)

    def test_frozen(self, sample_board):
        with pytest.raises(AttributeError):
            sample_board.width = 7


class TestCalibrationFlags:
    def test_defaults_all_off(self):
        flags = CalibrationFlags()
        assert flags_to_cv(flags) == 0
        assert describe_flags(flags) == "flags: "

    def test_to_cv_bits(self):
        flags = CalibrationFlags(fix_aspect_ratio=True, fix_principal_point=True)
        value = flags_to_cv(flags)
        assert value & cv2.CALIB_FIX_ASPECT_RATIO
        assert value & cv2.CALIB_FIX_PRINCIPAL_POINT
        assert not value & cv2.CALIB_ZERO_TANGENT_DIST
        assert not value & cv2.CALIB_USE_INTRINSIC_GUESS

    def test_from_cv_inverts_to_cv(self):
        flags = CalibrationFlags(
            fix_aspect_ratio=True,
            zero_tangent_dist=True,
            fix_principal_point=False,
            use_intrinsic_guess=True,
        )
        assert flags_from_cv(flags_to_cv(flags)) == flags

    def test_from_cv_ignores_unmodeled_bits(self):
        flags = flags_from_cv(cv2.CALIB_FIX_K4 | cv2.CALIB_ZERO_TANGENT_DIST)
        assert flags == CalibrationFlags(zero_tangent_dist=True)

    def test_describe_order(self):
        flags = CalibrationFlags(
            fix_aspect_ratio=True,
            zero_tangent_dist=True,
            fix_principal_point=True,
            use_intrinsic_guess=True,
        )
        assert describe_flags(flags) == (
            "flags: +use_intrinsic_guess+fix_aspectRatio"
            "+fix_principal_point+zero_tangent_dist"
        )


class TestViewObservation:
    def test_point_count(self):
        view = ViewObservation(image_points=np.zeros((20, 2), dtype=np.float32))
        assert view.point_count == 20


class TestPoses:
    def test_to_array_layout(self):
        poses = (
            ViewPose(rvec=np.array([0.1, 0.2, 0.3]), tvec=np.array([1.0, 2.0, 3.0])),
            ViewPose(rvec=np.array([0.4, 0.5, 0.6]), tvec=np.array([4.0, 5.0, 6.0])),
        )
        array = poses_to_array(poses)
        assert array.shape == (2, 6)
        np.testing.assert_array_equal(array[1], [0.4, 0.5, 0.6, 4.0, 5.0, 6.0])

    def test_empty(self):
        assert poses_to_array(()).shape == (0, 6)

    def test_from_array(self, true_poses):
        restored = poses_from_array(poses_to_array(true_poses))
        assert len(restored) == len(true_poses)
        for a, b in zip(restored, true_poses):
            np.testing.assert_array_equal(a.rvec, b.rvec)
            np.testing.assert_array_equal(a.tvec, b.tvec)
