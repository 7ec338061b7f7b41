from __future__ import annotations

import os
from pathlib import Path

from .util import expand_path

HOME_ENV = "RELAYD_HOME"
CONFIG_NAME = "relayd.toml"
HISTORY_NAME = "chat_history.txt"


def default_relayd_dir() -> Path:
    override = os.environ.get(HOME_ENV)
    return Path(expand_path(override)) if override else Path.home() / ".relayd"


def default_config_path() -> Path:
    return default_relayd_dir() / CONFIG_NAME


def default_history_path() -> Path:
    return default_relayd_dir() / HISTORY_NAME


def resolve_history_path(value: str | None) -> Path:
    """The configured history file, or the one under the relayd home."""
    if value and value.strip():
        return Path(expand_path(value.strip()))
    return default_history_path()


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        pass


def restrict_file(path: Path) -> None:
    """Owner-only permissions for files that may hold chat text or logs."""
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
