"""
Configuration loading/saving.

Pure functions operating on dataclasses. TOML via rtoml.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import rtoml

from .types import BoardSpec, CalibrationFlags


DEFAULT_OUTPUT_PATH = "out_camera_data.yml"


@dataclass(frozen=True, slots=True)
class CalibrationConfig:
    """
    Everything a calibration run needs besides the images.
    Loaded from a TOML file with [board], [solver] and [output] sections.
    """

    board: BoardSpec
    flags: CalibrationFlags = field(default_factory=CalibrationFlags)
    aspect_ratio: float = 1.0  # fx / fy, only used with flags.fix_aspect_ratio
    backend: str = "opencv"  # "opencv" or "least_squares"
    enforce_image_size: bool = True
    output_path: str = DEFAULT_OUTPUT_PATH
    write_extrinsics: bool = False
    write_points: bool = False


def load_calibration_config(path: Path) -> CalibrationConfig:
    """
    Load calibration configuration from TOML file.

    Args:
        path: Path to config.toml file

    Returns:
        CalibrationConfig dataclass
    """
    data = rtoml.load(Path(path))

    board_data = data.get("board", {})
    solver_data = data.get("solver", {})
    output_data = data.get("output", {})

    board = BoardSpec(
        width=int(board_data.get("width", 0)),
        height=int(board_data.get("height", 0)),
        square_size=float(board_data.get("square_size", 1.0)),
    )

    flags = CalibrationFlags(
        fix_aspect_ratio=bool(solver_data.get("fix_aspect_ratio", False)),
        zero_tangent_dist=bool(solver_data.get("zero_tangent_dist", False)),
        fix_principal_point=bool(solver_data.get("fix_principal_point", False)),
        use_intrinsic_guess=bool(solver_data.get("use_intrinsic_guess", False)),
    )

    return CalibrationConfig(
        board=board,
        flags=flags,
        aspect_ratio=float(solver_data.get("aspect_ratio", 1.0)),
        backend=solver_data.get("backend", "opencv"),
        enforce_image_size=bool(solver_data.get("enforce_image_size", True)),
        output_path=output_data.get("path", DEFAULT_OUTPUT_PATH),
        write_extrinsics=bool(output_data.get("write_extrinsics", False)),
        write_points=bool(output_data.get("write_points", False)),
    )


def save_calibration_config(config: CalibrationConfig, path: Path) -> None:
    """
    Save calibration configuration to TOML file.

    Args:
        config: CalibrationConfig dataclass
        path: Path to save config.toml
    """
    data = {
        "board": {
            "width": config.board.width,
            "height": config.board.height,
            "square_size": config.board.square_size,
        },
        "solver": {
            "backend": config.backend,
            "aspect_ratio": config.aspect_ratio,
            "fix_aspect_ratio": config.flags.fix_aspect_ratio,
            "zero_tangent_dist": config.flags.zero_tangent_dist,
            "fix_principal_point": config.flags.fix_principal_point,
            "use_intrinsic_guess": config.flags.use_intrinsic_guess,
            "enforce_image_size": config.enforce_image_size,
        },
        "output": {
            "path": config.output_path,
            "write_extrinsics": config.write_extrinsics,
            "write_points": config.write_points,
        },
    }

    path = Path(path)
    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        rtoml.dump(data, f)


def create_default_calibration_config(
    board: BoardSpec | None = None,
) -> CalibrationConfig:
    """
    Create a default calibration configuration.

    Args:
        board: Optional board; a 9x6 board with 2.5cm squares otherwise

    Returns:
        CalibrationConfig with sensible defaults
    """
    return CalibrationConfig(
        board=board or BoardSpec(width=9, height=6, square_size=0.025),
    )
