"""
Exception hierarchy for monocal.

Per-view failures (ObservationError) are routine and the caller keeps
collecting. Solver and record failures are fatal to the run.
"""

from __future__ import annotations


class CalibrationError(Exception):
    """Base class for every error raised by monocal."""


class InvalidGeometry(CalibrationError, ValueError):
    """Board dimensions or square size are not positive."""


# ============================================================================
# Observation Store
# ============================================================================


class ObservationError(CalibrationError):
    """A single view was rejected."""


class CountMismatch(ObservationError):
    """View has a different number of points than the board has corners."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected {expected} image points, got {actual}")
        self.expected = expected
        self.actual = actual


class SizeMismatch(ObservationError):
    """View image size differs from the size of the first accepted view."""

    def __init__(self, expected: tuple[int, int], actual: tuple[int, int]):
        super().__init__(
            f"Image size {actual[0]}x{actual[1]} does not match "
            f"{expected[0]}x{expected[1]}"
        )
        self.expected = expected
        self.actual = actual


# ============================================================================
# Solver
# ============================================================================


class SolverError(CalibrationError):
    """Calibration could not produce a camera model."""


class NoObservations(SolverError):
    """Nothing to calibrate from."""


class DidNotConverge(SolverError):
    """
    Solver produced non-finite intrinsics or distortion.

    avg_error is the reprojection error of the invalid estimate, kept for
    diagnostics only.
    """

    def __init__(self, message: str, avg_error: float = float("nan"), rms: float = float("nan")):
        super().__init__(message)
        self.avg_error = avg_error
        self.rms = rms


# ============================================================================
# Record / File List IO
# ============================================================================


class RecordIOError(CalibrationError, OSError):
    """Reading or writing a structured file failed."""


class CannotOpen(RecordIOError):
    """File could not be opened or created."""


class CannotParse(RecordIOError):
    """File opened but its content is not what was expected."""
