"""
Append-only store of per-view corner detections.

One store per calibration session. The collection phase appends, then the
store is frozen and handed to the solver.
"""

from __future__ import annotations

import logging

import numpy as np

from ..errors import CountMismatch, ObservationError, SizeMismatch
from ..types import BoardSpec, ViewObservation
from .board import generate_model_points

logger = logging.getLogger(__name__)


class ObservationStore:
    """
    Accumulates ViewObservations for a single board and camera.

    All views share one read-only model point set. Image size is taken from
    the first accepted view; with enforce_image_size, later views of a
    different size are rejected with SizeMismatch.
    """

    def __init__(self, board: BoardSpec, enforce_image_size: bool = True):
        # Fails with InvalidGeometry before anything is collected
        self._model_points = generate_model_points(board)
        self._board = board
        self._enforce_image_size = enforce_image_size
        self._views: list[ViewObservation] = []
        self._image_size: tuple[int, int] | None = None
        self._frozen = False

    @property
    def board(self) -> BoardSpec:
        return self._board

    @property
    def model_points(self) -> np.ndarray:
        return self._model_points

    @property
    def image_size(self) -> tuple[int, int] | None:
        return self._image_size

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def observations(self) -> tuple[ViewObservation, ...]:
        return tuple(self._views)

    def view_count(self) -> int:
        return len(self._views)

    def is_empty(self) -> bool:
        return not self._views

    def __len__(self) -> int:
        return len(self._views)

    def add_view(
        self,
        image_points: np.ndarray,
        image_size: tuple[int, int],
    ) -> ViewObservation:
        """
        Append one view's detected corners.

        Args:
            image_points: (n, 2) or (n, 1, 2) corner coordinates, ordered like
                the model points
            image_size: (width, height) of the image they were found in

        Returns:
            The stored ViewObservation

        Raises:
            ObservationError: If the store is frozen
            CountMismatch: If n differs from the board's corner count
            SizeMismatch: If image_size differs from the established size
        """
        if self._frozen:
            raise ObservationError("Observation store is frozen")

        points = np.asarray(image_points, dtype=np.float32)
        expected = self._board.corner_count

        if points.size % 2 != 0:
            raise CountMismatch(expected, points.size // 2)
        points = points.reshape(-1, 2)
        if points.shape[0] != expected:
            raise CountMismatch(expected, points.shape[0])

        size = (int(image_size[0]), int(image_size[1]))
        if self._image_size is None:
            self._image_size = size
        elif size != self._image_size and self._enforce_image_size:
            raise SizeMismatch(self._image_size, size)
        elif size != self._image_size:
            logger.warning(
                "View image size %dx%d differs from %dx%d, keeping first size",
                size[0], size[1], self._image_size[0], self._image_size[1],
            )

        points = points.copy()
        points.setflags(write=False)
        view = ViewObservation(image_points=points)
        self._views.append(view)

        logger.debug("Accepted view %d (%d points)", len(self._views), expected)
        return view

    def freeze(self) -> tuple[ViewObservation, ...]:
        """
        Stop accepting views and return the final ordered snapshot.
        """
        self._frozen = True
        return self.observations
