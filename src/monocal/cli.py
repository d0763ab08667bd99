#!/usr/bin/env python3
"""
monocal CLI - single camera calibration from chessboard images.

Usage:
    monocal calibrate CONFIG IMAGE_LIST [OUTPUT]  - Calibrate and write the record
    monocal init-config PATH                      - Write a default config.toml
    monocal --help                                - Show this help
"""

import sys
from pathlib import Path


def _calibrate(args: list[str]) -> int:
    import rtoml

    from monocal.config import load_calibration_config
    from monocal.errors import CalibrationError
    from monocal.log import setup_logging
    from monocal.pipeline import calibrate_from_list

    if len(args) not in (2, 3):
        print("Usage: monocal calibrate CONFIG IMAGE_LIST [OUTPUT]")
        return 1

    logger = setup_logging()
    output = args[2] if len(args) == 3 else None

    try:
        config = load_calibration_config(Path(args[0]))
    except (OSError, rtoml.TomlParsingError) as exc:
        logger.error("Cannot load config %s: %s", args[0], exc)
        return 1

    try:
        result = calibrate_from_list(args[1], config, output)
    except CalibrationError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1

    print(f"Calibrated from {result.view_count} views")
    print(f"avg reprojection error = {result.avg_error:.4f}")
    return 0


def _init_config(args: list[str]) -> int:
    from monocal.config import create_default_calibration_config, save_calibration_config

    if len(args) != 1:
        print("Usage: monocal init-config PATH")
        return 1

    save_calibration_config(create_default_calibration_config(), Path(args[0]))
    print(f"Wrote {args[0]}")
    return 0


def main():
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(__doc__)
        return 0

    command = sys.argv[1]
    args = sys.argv[2:]

    if command == "calibrate":
        return _calibrate(args)

    elif command == "init-config":
        return _init_config(args)

    else:
        print(f"Unknown command: {command}")
        print("Run 'monocal --help' for usage")
        return 1


if __name__ == "__main__":
    sys.exit(main())
