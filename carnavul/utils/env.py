"""Environment loading helpers and runtime settings."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_CONFIG_NAME = "conjuntos.json"
DEFAULT_MATCH_THRESHOLD = 0.85


def load_env_file(dotenv_path: Optional[Path] = None, *, override: bool = False) -> None:
    """Load environment variables from ``.env`` into ``os.environ``.

    Parameters
    ----------
    dotenv_path:
        Explicit location of the environment file. Defaults to ``Path.cwd() / ".env"``.
    override:
        When ``True`` any existing environment variables are overwritten.
    """

    path = dotenv_path or Path.cwd() / ".env"
    if not path.exists():
        return
    load_dotenv(dotenv_path=path, override=override)


def _float_from_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Defaults for a run, overridable from the environment and then the CLI."""

    base_dir: Path
    config_path: Path
    log_level: str = "INFO"
    match_threshold: float = DEFAULT_MATCH_THRESHOLD

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "Settings":
        load_env_file(dotenv_path)
        return cls(
            base_dir=Path(os.environ.get("CARNAVUL_DIR") or "."),
            config_path=Path(os.environ.get("CARNAVUL_CONFIG") or DEFAULT_CONFIG_NAME),
            log_level=(os.environ.get("CARNAVUL_LOG_LEVEL") or "INFO").upper(),
            match_threshold=_float_from_env("CARNAVUL_MATCH_THRESHOLD", DEFAULT_MATCH_THRESHOLD),
        )


__all__ = ["DEFAULT_CONFIG_NAME", "DEFAULT_MATCH_THRESHOLD", "Settings", "load_env_file"]
