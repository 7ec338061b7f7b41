from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config import RelayRuntimeConfig
from .paths import restrict_file
from .util import expand_path

_LEVELS: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Loggers whose levels were set from [logging] levels on the last call.
_tuned: set[str] = set()


def parse_level(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    if text in _LEVELS:
        return _LEVELS[text]
    try:
        return int(text)
    except ValueError:
        return default


def _nonblank(value: Any) -> str | None:
    if value is None or not str(value).strip():
        return None
    return str(value)


def build_handlers(cfg: RelayRuntimeConfig, log_file: str | None) -> list[logging.Handler]:
    """Console and/or file handlers sharing one formatter built from ``cfg``."""
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    if log_file:
        path = Path(expand_path(log_file))
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
        restrict_file(path)

    formatter = logging.Formatter(
        fmt=_nonblank(cfg.log_format) or DEFAULT_FORMAT,
        datefmt=_nonblank(cfg.log_datefmt),
    )
    for h in handlers:
        h.setFormatter(formatter)
    return handlers


def apply_logger_levels(levels: dict[str, str]) -> None:
    """Set per-logger levels; loggers dropped from ``levels`` go back to NOTSET."""
    for name in _tuned - set(levels):
        logging.getLogger(name).setLevel(logging.NOTSET)
    _tuned.clear()
    for name, value in levels.items():
        logging.getLogger(name).setLevel(parse_level(value, logging.NOTSET))
        _tuned.add(name)


def configure_logging(
    cfg: RelayRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install relayd's handlers on the root logger.

    Replaces any handlers already there, so it can be called more than once.
    An ``override_file`` of "" disables file logging even if the config
    names a file.
    """
    if override_file is not None:
        log_file = _nonblank(override_file)
    else:
        log_file = _nonblank(cfg.log_file)

    handlers = build_handlers(cfg, log_file)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(parse_level(override_level or cfg.log_level, logging.INFO))

    apply_logger_levels(cfg.log_levels)
    logging.captureWarnings(True)
