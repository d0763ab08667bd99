"""
Tests for monocal.record (FileStorage records + image lists).
"""

import cv2
import numpy as np
import pytest

from monocal.errors import CannotOpen, CannotParse
from monocal.record import (
    RECORD_VERSION,
    read_calibration_record,
    read_file_list,
    write_calibration_record,
)
from monocal.types import CalibrationFlags, CalibrationResult, flags_from_cv, poses_to_array


def _with_flags(result, flags):
    return CalibrationResult(
        camera=result.camera,
        per_view_errors=result.per_view_errors,
        avg_error=result.avg_error,
        success=result.success,
        board=result.board,
        image_size=result.image_size,
        flags=flags,
        aspect_ratio=result.aspect_ratio,
        observations=result.observations,
        solver_rms=result.solver_rms,
        timestamp=result.timestamp,
    )


class TestCalibrationRecord:
    @pytest.mark.parametrize("suffix", [".yml", ".xml", ".json"])
    def test_roundtrip_numeric_values(self, temp_dir, sample_result, suffix):
        """Matrix, distortion and errors survive write/read without loss."""
        path = temp_dir / f"camera{suffix}"
        write_calibration_record(path, sample_result)

        record = read_calibration_record(path)

        np.testing.assert_allclose(record.camera_matrix, sample_result.camera.matrix, rtol=1e-12)
        np.testing.assert_allclose(
            record.distortion_coefficients, sample_result.camera.distortion, rtol=1e-12
        )
        np.testing.assert_allclose(
            record.per_view_reprojection_errors, sample_result.per_view_errors, rtol=1e-12
        )
        assert record.avg_reprojection_error == pytest.approx(sample_result.avg_error, rel=1e-12)

    def test_always_written_fields(self, temp_dir, sample_result):
        path = temp_dir / "camera.yml"
        write_calibration_record(path, sample_result)
        record = read_calibration_record(path)

        assert record.record_version == RECORD_VERSION
        assert record.calibration_time
        assert record.nframes == 3
        assert record.image_size == (640, 480)
        assert record.board.width == 4
        assert record.board.height == 5
        assert record.board.square_size == pytest.approx(0.025)
        assert record.distortion_coefficients.shape == (8,)
        assert record.camera_matrix.shape == (3, 3)

    def test_flags_bitmask_and_comment(self, temp_dir, sample_result):
        path = temp_dir / "camera.yml"
        write_calibration_record(path, sample_result)
        record = read_calibration_record(path)

        assert flags_from_cv(record.flags) == sample_result.flags
        assert "flags: +fix_aspectRatio+zero_tangent_dist" in path.read_text()

    def test_flags_description_key_in_json(self, temp_dir, sample_result):
        path = temp_dir / "camera.json"
        write_calibration_record(path, sample_result)

        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
        description = fs.getNode("flags_description").string()
        fs.release()

        assert description == "flags: +fix_aspectRatio+zero_tangent_dist"
        assert flags_from_cv(read_calibration_record(path).flags) == sample_result.flags

    def test_aspect_ratio_only_when_fixed(self, temp_dir, sample_result):
        path = temp_dir / "fixed.yml"
        write_calibration_record(path, sample_result)
        assert read_calibration_record(path).aspect_ratio == pytest.approx(1.5)

        path = temp_dir / "free.yml"
        write_calibration_record(path, _with_flags(sample_result, CalibrationFlags()))
        record = read_calibration_record(path)
        assert record.aspect_ratio is None
        assert record.flags == 0

    def test_optional_sections_omitted_by_default(self, temp_dir, sample_result):
        path = temp_dir / "camera.yml"
        write_calibration_record(path, sample_result)
        record = read_calibration_record(path)

        assert record.extrinsic_parameters is None
        assert record.image_points is None

    def test_extrinsics(self, temp_dir, sample_result):
        path = temp_dir / "camera.yml"
        write_calibration_record(path, sample_result, write_extrinsics=True)
        record = read_calibration_record(path)

        assert record.extrinsic_parameters.shape == (3, 6)
        np.testing.assert_allclose(
            record.extrinsic_parameters, poses_to_array(sample_result.camera.poses), rtol=1e-12
        )
        assert record.image_points is None

    def test_image_points(self, temp_dir, sample_result):
        path = temp_dir / "camera.yml"
        write_calibration_record(path, sample_result, write_points=True)
        record = read_calibration_record(path)

        expected = np.stack([v.image_points for v in sample_result.observations])
        assert record.image_points.shape == (3, 20, 2)
        np.testing.assert_allclose(record.image_points, expected, rtol=1e-6)

    def test_creates_parent_directories(self, temp_dir, sample_result):
        path = temp_dir / "nested" / "deeper" / "camera.yml"
        write_calibration_record(path, sample_result)
        assert path.exists()

    def test_cannot_open_destination(self, temp_dir, sample_result):
        blocker = temp_dir / "not_a_dir"
        blocker.write_text("x")

        with pytest.raises(CannotOpen):
            write_calibration_record(blocker / "camera.yml", sample_result)

    def test_read_missing_file(self, temp_dir):
        with pytest.raises(CannotOpen):
            read_calibration_record(temp_dir / "missing.yml")

    def test_read_missing_required_keys(self, temp_dir):
        path = temp_dir / "partial.yml"
        path.write_text("%YAML:1.0\n---\nimage_width: 640\n")

        with pytest.raises(CannotParse, match="camera_matrix"):
            read_calibration_record(path)

    def test_io_errors_are_os_errors(self, temp_dir):
        with pytest.raises(OSError):
            read_calibration_record(temp_dir / "missing.yml")


class TestReadFileList:
    def test_yaml_sequence(self, temp_dir):
        path = temp_dir / "images.yml"
        path.write_text(
            "%YAML:1.0\n"
            "---\n"
            "images:\n"
            "   - view000.png\n"
            "   - view001.png\n"
            "   - \"one extra view.jpg\"\n"
        )

        assert read_file_list(path) == ["view000.png", "view001.png", "one extra view.jpg"]

    def test_xml_sequence_skips_comments(self, temp_dir):
        path = temp_dir / "images.xml"
        path.write_text(
            '<?xml version="1.0"?>\n'
            "<opencv_storage>\n"
            "<images>\n"
            "view000.png\n"
            "view001.png\n"
            "<!-- view002.png -->\n"
            "view003.png\n"
            "</images>\n"
            "</opencv_storage>\n"
        )

        assert read_file_list(path) == ["view000.png", "view001.png", "view003.png"]

    def test_first_node_not_sequence(self, temp_dir):
        path = temp_dir / "images.yml"
        path.write_text("%YAML:1.0\n---\nimages: view000.png\n")

        with pytest.raises(CannotParse):
            read_file_list(path)

    def test_missing_file(self, temp_dir):
        with pytest.raises(CannotOpen):
            read_file_list(temp_dir / "nope.yml")
