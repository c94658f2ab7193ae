"""Console and file logging for command-line runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

CONSOLE_FORMAT = "[%(levelname)s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
COMBINED_LOG_NAME = "combined.log"
ERROR_LOG_NAME = "error.log"


def _coerce_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(level: Union[str, int] = "INFO", log_dir: Optional[Path] = None) -> logging.Logger:
    """Configure the root logger once per process.

    Console output uses ``level``. When ``log_dir`` is given, everything at
    DEBUG and above also goes to ``combined.log`` and errors to ``error.log``.
    """

    numeric_level = _coerce_level(level)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)
    root.setLevel(numeric_level)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_formatter = logging.Formatter(FILE_FORMAT)

        combined = logging.FileHandler(log_dir / COMBINED_LOG_NAME, encoding="utf-8")
        combined.setLevel(logging.DEBUG)
        combined.setFormatter(file_formatter)
        root.addHandler(combined)

        errors = logging.FileHandler(log_dir / ERROR_LOG_NAME, encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(file_formatter)
        root.addHandler(errors)
        root.setLevel(logging.DEBUG)

    # urllib3 logs every request at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return root


__all__ = ["COMBINED_LOG_NAME", "ERROR_LOG_NAME", "configure_logging"]
