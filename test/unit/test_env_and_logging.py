from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

import pytest

from carnavul.utils.env import DEFAULT_MATCH_THRESHOLD, Settings, load_env_file
from carnavul.utils.logging_setup import COMBINED_LOG_NAME, ERROR_LOG_NAME, configure_logging


_ENV_KEYS = ("CARNAVUL_DIR", "CARNAVUL_CONFIG", "CARNAVUL_LOG_LEVEL", "CARNAVUL_MATCH_THRESHOLD")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    # load_dotenv writes to os.environ directly.
    for key in _ENV_KEYS:
        os.environ.pop(key, None)


def test_settings_defaults(clean_env: Path) -> None:
    settings = Settings.from_env()
    assert settings.base_dir == Path(".")
    assert settings.config_path == Path("conjuntos.json")
    assert settings.log_level == "INFO"
    assert settings.match_threshold == DEFAULT_MATCH_THRESHOLD


def test_settings_read_dotenv(clean_env: Path) -> None:
    (clean_env / ".env").write_text(
        "CARNAVUL_DIR=/media/carnaval\nCARNAVUL_LOG_LEVEL=debug\nCARNAVUL_MATCH_THRESHOLD=0.9\n",
        encoding="utf-8",
    )
    settings = Settings.from_env()
    assert settings.base_dir == Path("/media/carnaval")
    assert settings.log_level == "DEBUG"
    assert settings.match_threshold == pytest.approx(0.9)


def test_existing_environment_wins_over_dotenv(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (clean_env / ".env").write_text("CARNAVUL_CONFIG=from-file.json\n", encoding="utf-8")
    monkeypatch.setenv("CARNAVUL_CONFIG", "from-env.json")
    load_env_file()
    assert Settings.from_env().config_path == Path("from-env.json")


@pytest.mark.parametrize("raw", ["abc", "1.5", "-0.1"])
def test_invalid_threshold_is_rejected(clean_env: Path, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("CARNAVUL_MATCH_THRESHOLD", raw)
    with pytest.raises(ValueError):
        Settings.from_env()


def test_configure_logging_writes_files(tmp_path: Path) -> None:
    root = configure_logging("WARNING", tmp_path)
    try:
        logging.getLogger("carnavul.test").debug("debug detail")
        logging.getLogger("carnavul.test").error("something broke")
        for handler in root.handlers:
            handler.flush()

        combined = (tmp_path / COMBINED_LOG_NAME).read_text(encoding="utf-8")
        errors = (tmp_path / ERROR_LOG_NAME).read_text(encoding="utf-8")
        assert "debug detail" in combined
        assert "something broke" in combined
        assert "something broke" in errors
        assert "debug detail" not in errors
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        configure_logging("LOUD")
