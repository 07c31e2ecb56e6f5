"""Tests for configuration loading and logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from twelveweeks.common.config import DEFAULTS, debounce_windows, load_config, setup_logging


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_merges_over_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "api:\n  base_url: https://planner.example\ndebounce:\n  text_ms: 250\n"))
        assert cfg["api"]["base_url"] == "https://planner.example"
        assert cfg["api"]["timeout_s"] == DEFAULTS["api"]["timeout_s"]
        assert cfg["debounce"] == {"text_ms": 250, "slider_ms": 1000, "priority_ms": 1000}

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_config(_write(tmp_path, "")) == DEFAULTS

    def test_missing_explicit_path(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWELVEWEEKS_API_BASE_URL", "http://10.0.0.2:4321")
        monkeypatch.setenv("TWELVEWEEKS_LOG_LEVEL", "DEBUG")
        cfg = load_config(_write(tmp_path, "log_level: WARNING\n"))
        assert cfg["api"]["base_url"] == "http://10.0.0.2:4321"
        assert cfg["log_level"] == "DEBUG"

    @pytest.mark.parametrize("text", [
        "api:\n  base_url: ''\n",
        "api:\n  timeout_s: 0\n",
        "debounce:\n  priority_ms: -5\n",
        "positions:\n  overflow_threshold: 0\n",
        "log_rotation:\n  backups: -1\n",
    ])
    def test_rejects_bad_values(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, text))

    def test_unknown_log_level_falls_back(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "log_level: chatty\n"))
        assert cfg["log_level"] == "INFO"

    def test_debounce_windows(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "debounce:\n  slider_ms: 750\n"))
        assert debounce_windows(cfg) == {"text": 500, "slider": 750, "priority": 1000}


class TestSetupLogging:
    def test_writes_rotating_log(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, f"log_dir: {tmp_path / 'logs'}\nlog_level: DEBUG\n"))
        logger = logging.getLogger("twelveweeks")
        before = list(logger.handlers)
        try:
            setup_logging(cfg)
            logging.getLogger("twelveweeks.test").debug("hello")
            for handler in logger.handlers:
                handler.flush()
            assert "hello" in (tmp_path / "logs" / "twelveweeks.log").read_text()
        finally:
            for handler in logger.handlers[len(before):]:
                handler.close()
                logger.removeHandler(handler)

    def test_second_call_adds_no_handlers(self, tmp_path: Path) -> None:
        logger = logging.getLogger("twelveweeks")
        before = list(logger.handlers)
        try:
            setup_logging(load_config(_write(tmp_path, f"log_dir: {tmp_path / 'logs'}\nlog_level: INFO\n")))
            attached = len(logger.handlers)
            setup_logging(load_config(_write(tmp_path, f"log_dir: {tmp_path / 'logs'}\nlog_level: DEBUG\n")))
            assert len(logger.handlers) == attached == len(before) + 2
            assert logger.level == logging.DEBUG
        finally:
            for handler in logger.handlers[len(before):]:
                handler.close()
                logger.removeHandler(handler)
