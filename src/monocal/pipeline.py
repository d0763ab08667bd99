"""
End-to-end calibration: image list -> observations -> solve -> evaluate -> record.

Single-threaded and synchronous. Each run owns its ObservationStore and
produces an independent CalibrationResult, so separate runs can go in
separate threads or processes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from .calibration.detection import detect_chessboard_corners, image_size_of
from .calibration.observations import ObservationStore
from .calibration.reprojection import evaluate
from .calibration.solver import solve
from .config import CalibrationConfig
from .errors import CannotOpen, DidNotConverge, NoObservations, ObservationError
from .record import read_file_list, write_calibration_record
from .types import BoardSpec, CalibrationResult

logger = logging.getLogger(__name__)

Extractor = Callable[[np.ndarray, BoardSpec], Optional[np.ndarray]]


@dataclass(frozen=True, slots=True)
class CollectionReport:
    """
    What happened to each image during collection.
    """

    accepted: tuple[str, ...]
    not_found: tuple[str, ...]  # pattern not detected
    rejected: tuple[str, ...]  # detected but refused by the store

    @property
    def total(self) -> int:
        return len(self.accepted) + len(self.not_found) + len(self.rejected)


def collect_observations(
    image_paths: Iterable[str | Path],
    store: ObservationStore,
    extractor: Extractor = detect_chessboard_corners,
) -> CollectionReport:
    """
    Run the extractor over every image and feed hits into the store.

    A missing pattern or a rejected view is logged and skipped.

    Args:
        image_paths: Images in capture order
        store: Store to append to
        extractor: (image, board) -> (n, 2) corners or None

    Returns:
        CollectionReport

    Raises:
        CannotOpen: If an image can't be read
    """
    paths = [str(p) for p in image_paths]
    accepted, not_found, rejected = [], [], []

    for path in paths:
        image = cv2.imread(path, cv2.IMREAD_COLOR)
        if image is None or image.size == 0:
            raise CannotOpen(f"Empty image: {path}")

        corners = extractor(image, store.board)
        if corners is None:
            logger.info("Chessboard corners not found in image: %s", path)
            not_found.append(path)
            continue

        try:
            store.add_view(corners, image_size_of(image))
        except ObservationError as exc:
            logger.warning("Rejected view %s: %s", path, exc)
            rejected.append(path)
            continue

        accepted.append(path)
        logger.debug("%d/%d", len(accepted), len(paths))

    logger.info("Pattern found in %d of %d images", len(accepted), len(paths))

    return CollectionReport(
        accepted=tuple(accepted),
        not_found=tuple(not_found),
        rejected=tuple(rejected),
    )


def run_calibration(
    store: ObservationStore,
    config: CalibrationConfig,
    initial_matrix: np.ndarray | None = None,
) -> CalibrationResult:
    """
    Freeze the store, solve, and evaluate.

    Raises:
        NoObservations: If the store is empty
        DidNotConverge: If the solve produced non-finite parameters. The
            failure is logged with the diagnostic error before re-raising.
    """
    observations = store.freeze()
    if not observations:
        raise NoObservations("No views were collected")

    image_size = store.image_size

    try:
        output = solve(
            observations,
            store.model_points,
            image_size,
            flags=config.flags,
            aspect_ratio=config.aspect_ratio,
            initial_matrix=initial_matrix,
            backend=config.backend,
        )
    except DidNotConverge as exc:
        logger.error("Calibration failed. avg reprojection error = %.2f", exc.avg_error)
        raise

    per_view, avg_error = evaluate(observations, store.model_points, output.camera)
    logger.info("Calibration succeeded. avg reprojection error = %.2f", avg_error)

    return CalibrationResult(
        camera=output.camera,
        per_view_errors=per_view,
        avg_error=avg_error,
        success=True,
        board=store.board,
        image_size=image_size,
        flags=config.flags,
        aspect_ratio=config.aspect_ratio,
        observations=observations,
        solver_rms=output.rms,
    )


def run_and_save(
    store: ObservationStore,
    config: CalibrationConfig,
    output_path: str | Path | None = None,
) -> CalibrationResult:
    """
    run_calibration, then write the record using the config's output options.
    Nothing is written if calibration fails.
    """
    result = run_calibration(store, config)
    write_calibration_record(
        output_path if output_path is not None else config.output_path,
        result,
        write_extrinsics=config.write_extrinsics,
        write_points=config.write_points,
    )
    return result


def calibrate_from_list(
    list_path: str | Path,
    config: CalibrationConfig,
    output_path: str | Path | None = None,
    extractor: Extractor = detect_chessboard_corners,
) -> CalibrationResult:
    """
    Full run from an image list file.

    Relative image paths are resolved against the list file's directory.
    """
    list_path = Path(list_path)
    names = read_file_list(list_path)
    if not names:
        raise NoObservations(f"Image list {list_path} is empty")

    paths = [p if p.is_absolute() else list_path.parent / p for p in map(Path, names)]

    store = ObservationStore(config.board, enforce_image_size=config.enforce_image_size)
    collect_observations(paths, store, extractor)

    return run_and_save(store, config, output_path)
