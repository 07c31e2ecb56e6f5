"""Load and validate twelveweeks configuration from config.yaml."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("twelveweeks")

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "config.yaml"
_HANDLER_NAMES = ("twelveweeks.stderr", "twelveweeks.file")

DEFAULTS: dict[str, Any] = {
    "api": {
        "base_url": "http://localhost:4321",
        "timeout_s": 15.0,
    },
    "debounce": {
        "text_ms": 500,
        "slider_ms": 1000,
        "priority_ms": 1000,
    },
    "positions": {
        "overflow_threshold": 1_000_000,
    },
    "log_dir": "logs",
    "log_level": "INFO",
    "log_rotation": {
        "max_bytes": 5_000_000,
        "backups": 3,
    },
}


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file, with env-var overrides.

    A missing default file falls back to the built-in defaults; an explicit
    ``config_path`` that does not exist is an error.

    Environment variable overrides (if set):
        TWELVEWEEKS_API_BASE_URL -> api.base_url
        TWELVEWEEKS_LOG_DIR      -> log_dir
        TWELVEWEEKS_LOG_LEVEL    -> log_level
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    raw: dict[str, Any] = {}
    if path.exists():
        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    elif config_path:
        raise FileNotFoundError(f"Config file not found: {path}")

    cfg = _merge(copy.deepcopy(DEFAULTS), raw)

    # Apply env-var overrides
    _env_override(cfg, "TWELVEWEEKS_API_BASE_URL", "api", "base_url")
    _env_override(cfg, "TWELVEWEEKS_LOG_DIR", "log_dir")
    _env_override(cfg, "TWELVEWEEKS_LOG_LEVEL", "log_level")

    _validate(cfg)
    return cfg


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base`` (in place) and return it."""
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(base.get(key), dict):
            _merge(base[key], val)
        else:
            base[key] = val
    return base


def _env_override(cfg: dict, env_key: str, *keys: str) -> None:
    """Override a nested config value from an environment variable."""
    val = os.environ.get(env_key)
    if val is None:
        return
    target = cfg
    for k in keys[:-1]:
        target = target.setdefault(k, {})
    target[keys[-1]] = val


def _validate(cfg: dict[str, Any]) -> None:
    """Reject settings the client cannot run with."""
    if not str(cfg["api"].get("base_url") or "").strip():
        raise ValueError("api.base_url must not be empty")

    if float(cfg["api"]["timeout_s"]) <= 0:
        raise ValueError(f"api.timeout_s must be positive, got {cfg['api']['timeout_s']}")

    for key, val in cfg["debounce"].items():
        if int(val) <= 0:
            raise ValueError(f"debounce.{key} must be positive, got {val}")

    if int(cfg["positions"]["overflow_threshold"]) <= 0:
        raise ValueError("positions.overflow_threshold must be positive")

    for key in ("max_bytes", "backups"):
        if int(cfg["log_rotation"][key]) < 0:
            raise ValueError(f"log_rotation.{key} must not be negative")

    level = str(cfg.get("log_level", "INFO")).upper()
    if not isinstance(getattr(logging, level, None), int):
        logger.warning("Unknown log_level %r, falling back to INFO", cfg.get("log_level"))
        cfg["log_level"] = "INFO"


def debounce_windows(cfg: dict[str, Any]) -> dict[str, int]:
    """Return the debounce windows in milliseconds keyed by edit kind."""
    d = cfg.get("debounce", {})
    return {
        "text": int(d.get("text_ms", DEFAULTS["debounce"]["text_ms"])),
        "slider": int(d.get("slider_ms", DEFAULTS["debounce"]["slider_ms"])),
        "priority": int(d.get("priority_ms", DEFAULTS["debounce"]["priority_ms"])),
    }


def setup_logging(cfg: dict[str, Any]) -> logging.Logger:
    """Attach the stderr and rotating-file handlers to the package logger.

    Calling it again only refreshes the level; the handlers are attached once.
    """
    pkg = logging.getLogger("twelveweeks")
    pkg.setLevel(getattr(logging, str(cfg.get("log_level", "INFO")).upper()))
    if any(h.get_name() in _HANDLER_NAMES for h in pkg.handlers):
        return pkg

    from logging.handlers import RotatingFileHandler

    log_dir = Path(cfg["log_dir"])
    log_dir.mkdir(parents=True, exist_ok=True)
    rotation = cfg.get("log_rotation", DEFAULTS["log_rotation"])
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handlers: list[logging.Handler] = [
        logging.StreamHandler(),
        RotatingFileHandler(
            log_dir / "twelveweeks.log",
            maxBytes=int(rotation["max_bytes"]),
            backupCount=int(rotation["backups"]),
            encoding="utf-8",
        ),
    ]
    for name, handler in zip(_HANDLER_NAMES, handlers):
        handler.setFormatter(fmt)
        handler.set_name(name)
        pkg.addHandler(handler)
    logger.debug("Logging to %s at %s", log_dir, logging.getLevelName(pkg.level))
    return pkg
