"""
Calibration record and image list IO.

Both use OpenCV FileStorage, so the format follows the file extension
(.yml / .yaml, .xml, .json).
"""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np

from .errors import CannotOpen, CannotParse
from .types import (
    BoardSpec,
    CalibrationRecord,
    CalibrationResult,
    describe_flags,
    flags_to_cv,
    poses_to_array,
)

logger = logging.getLogger(__name__)

RECORD_VERSION = 1

_REQUIRED_KEYS = ("camera_matrix", "distortion_coefficients", "avg_reprojection_error")


# ============================================================================
# FileStorage helpers
# ============================================================================


def _open_storage(path: Path, mode: int) -> cv2.FileStorage:
    """
    Open a FileStorage, mapping failures onto CannotOpen / CannotParse.
    """
    if mode == cv2.FILE_STORAGE_READ and not path.is_file():
        raise CannotOpen(f"Cannot open {path}: no such file")

    try:
        fs = cv2.FileStorage(str(path), mode)
    except cv2.error as exc:
        if mode == cv2.FILE_STORAGE_READ:
            raise CannotParse(f"Cannot parse {path}: {exc}") from exc
        raise CannotOpen(f"Cannot open {path} for writing: {exc}") from exc

    if not fs.isOpened():
        raise CannotOpen(f"Cannot open {path}")
    return fs


def _read_optional_mat(fs: cv2.FileStorage, key: str) -> np.ndarray | None:
    node = fs.getNode(key)
    if node.empty():
        return None
    return node.mat()


def _read_optional_real(fs: cv2.FileStorage, key: str) -> float | None:
    node = fs.getNode(key)
    if node.empty():
        return None
    return float(node.real())


def _read_optional_int(fs: cv2.FileStorage, key: str) -> int | None:
    value = _read_optional_real(fs, key)
    return None if value is None else int(value)


# ============================================================================
# Calibration Record
# ============================================================================


def write_calibration_record(
    path: Path | str,
    result: CalibrationResult,
    write_extrinsics: bool = False,
    write_points: bool = False,
) -> None:
    """
    Write a calibration result.

    Always written: version, time, frame count (if any views), image and
    board dimensions, flags, camera matrix, distortion, average and
    per-view errors. Non-zero flags also get a readable description, as
    a comment or, in JSON, a flags_description key. Optional: per-view
    [rvec, tvec] rows and the observed image points.

    Args:
        path: Destination file; parent directories are created
        result: CalibrationResult to save
        write_extrinsics: Include extrinsic_parameters (n x 6)
        write_points: Include image_points (n x m, 2 channels)

    Raises:
        CannotOpen: If the destination cannot be created
    """
    path = Path(path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CannotOpen(f"Cannot create directory for {path}: {exc}") from exc

    fs = _open_storage(path, cv2.FILE_STORAGE_WRITE)
    try:
        fs.write("record_version", RECORD_VERSION)
        fs.write("calibration_time", result.timestamp.strftime("%c"))

        if result.view_count > 0:
            fs.write("nframes", result.view_count)

        fs.write("image_width", int(result.image_size[0]))
        fs.write("image_height", int(result.image_size[1]))
        fs.write("board_width", int(result.board.width))
        fs.write("board_height", int(result.board.height))
        fs.write("square_size", float(result.board.square_size))

        if result.flags.fix_aspect_ratio:
            fs.write("aspectRatio", float(result.aspect_ratio))

        cv_flags = flags_to_cv(result.flags)
        if cv_flags != 0:
            # JSON has no comment syntax
            if path.suffix.lower() == ".json":
                fs.write("flags_description", describe_flags(result.flags))
            else:
                fs.writeComment(describe_flags(result.flags))
        fs.write("flags", cv_flags)

        fs.write("camera_matrix", np.asarray(result.camera.matrix, dtype=np.float64))
        fs.write(
            "distortion_coefficients",
            np.asarray(result.camera.distortion, dtype=np.float64).reshape(-1, 1),
        )

        fs.write("avg_reprojection_error", float(result.avg_error))

        per_view = np.asarray(result.per_view_errors, dtype=np.float64).reshape(-1, 1)
        if per_view.size > 0:
            fs.write("per_view_reprojection_errors", per_view)

        if write_extrinsics and result.camera.poses:
            fs.write("extrinsic_parameters", poses_to_array(result.camera.poses))

        if write_points and result.observations:
            points = np.stack(
                [np.asarray(v.image_points, dtype=np.float32) for v in result.observations]
            )
            fs.write("image_points", points)  # (n, m, 2) -> n x m, 2 channels
    finally:
        fs.release()

    logger.info("Wrote calibration record to %s", path)


def read_calibration_record(path: Path | str) -> CalibrationRecord:
    """
    Load a record written by write_calibration_record.

    Optional keys that are absent come back as None.

    Raises:
        CannotOpen: If the file doesn't exist or can't be opened
        CannotParse: If it isn't a calibration record
    """
    path = Path(path)
    fs = _open_storage(path, cv2.FILE_STORAGE_READ)
    try:
        missing = [key for key in _REQUIRED_KEYS if fs.getNode(key).empty()]
        if missing:
            raise CannotParse(f"{path} is missing required keys: {', '.join(missing)}")

        camera_matrix = fs.getNode("camera_matrix").mat()
        distortion = fs.getNode("distortion_coefficients").mat()
        if camera_matrix is None or camera_matrix.shape != (3, 3):
            raise CannotParse(f"{path}: camera_matrix is not a 3x3 matrix")
        if distortion is None:
            raise CannotParse(f"{path}: distortion_coefficients is not a matrix")

        per_view = _read_optional_mat(fs, "per_view_reprojection_errors")

        return CalibrationRecord(
            calibration_time=fs.getNode("calibration_time").string(),
            image_size=(
                _read_optional_int(fs, "image_width") or 0,
                _read_optional_int(fs, "image_height") or 0,
            ),
            board=BoardSpec(
                width=_read_optional_int(fs, "board_width") or 0,
                height=_read_optional_int(fs, "board_height") or 0,
                square_size=_read_optional_real(fs, "square_size") or 0.0,
            ),
            flags=_read_optional_int(fs, "flags") or 0,
            camera_matrix=camera_matrix,
            distortion_coefficients=distortion.ravel(),
            avg_reprojection_error=float(fs.getNode("avg_reprojection_error").real()),
            record_version=_read_optional_int(fs, "record_version"),
            nframes=_read_optional_int(fs, "nframes"),
            aspect_ratio=_read_optional_real(fs, "aspectRatio"),
            per_view_reprojection_errors=None if per_view is None else per_view.ravel(),
            extrinsic_parameters=_read_optional_mat(fs, "extrinsic_parameters"),
            image_points=_read_optional_mat(fs, "image_points"),
        )
    finally:
        fs.release()


# ============================================================================
# Image List
# ============================================================================


def read_file_list(path: Path | str) -> list[str]:
    """
    Read an image list: the first top-level node must be a sequence of
    strings, e.g.

        <?xml version="1.0"?>
        <opencv_storage>
        <images>
        view000.png
        view001.png
        </images>
        </opencv_storage>

    Raises:
        CannotOpen: If the file can't be opened
        CannotParse: If the first node isn't a sequence of strings
    """
    path = Path(path)
    fs = _open_storage(path, cv2.FILE_STORAGE_READ)
    try:
        node = fs.getFirstTopLevelNode()
        if node.empty() or not node.isSeq():
            raise CannotParse(f"{path}: first top-level node is not a sequence")

        names = []
        for i in range(node.size()):
            item = node.at(i)
            if not item.isString():
                raise CannotParse(f"{path}: entry {i} is not a string")
            names.append(item.string())
        return names
    finally:
        fs.release()
