# monocal - single camera calibration from planar chessboard views

__version__ = "0.1.0"

# Core types
from monocal.types import (
    BoardSpec,
    CalibrationFlags,
    ViewObservation,
    ViewPose,
    CameraModel,
    CalibrationResult,
    CalibrationRecord,
)

# Errors
from monocal.errors import (
    CalibrationError,
    InvalidGeometry,
    ObservationError,
    CountMismatch,
    SizeMismatch,
    SolverError,
    NoObservations,
    DidNotConverge,
    RecordIOError,
    CannotOpen,
    CannotParse,
)

# Calibration core
from monocal.calibration import (
    ObservationStore,
    generate_model_points,
    solve,
    evaluate,
)

# Records
from monocal.record import (
    write_calibration_record,
    read_calibration_record,
    read_file_list,
)

# Configuration
from monocal.config import (
    CalibrationConfig,
    load_calibration_config,
    save_calibration_config,
)

__all__ = [
    # Core types
    "BoardSpec",
    "CalibrationFlags",
    "ViewObservation",
    "ViewPose",
    "CameraModel",
    "CalibrationResult",
    "CalibrationRecord",
    # Errors
    "CalibrationError",
    "InvalidGeometry",
    "ObservationError",
    "CountMismatch",
    "SizeMismatch",
    "SolverError",
    "NoObservations",
    "DidNotConverge",
    "RecordIOError",
    "CannotOpen",
    "CannotParse",
    # Calibration core
    "ObservationStore",
    "generate_model_points",
    "solve",
    "evaluate",
    # Records
    "write_calibration_record",
    "read_calibration_record",
    "read_file_list",
    # Configuration
    "CalibrationConfig",
    "load_calibration_config",
    "save_calibration_config",
]
