from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field, replace


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    host: str = "0.0.0.0"
    port: int = 8888
    max_sessions: int = 50
    server_name: str = "relayd"
    greeting: str | None = None
    history_enabled: bool = True
    history_path: str | None = None
    io_timeout_s: float = 5.0
    max_line_bytes: int = 65536
    handshake_timeout_s: float = 60.0
    shutdown_timeout_s: float = 5.0
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None
    # logger name -> level, e.g. {"relayd.transport": "DEBUG"}
    log_levels: dict[str, str] = field(default_factory=dict)


# [logging] table key -> config field
_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
    "levels": "log_levels",
}

_INT_KEYS = ("port", "max_sessions", "max_line_bytes")
_FLOAT_KEYS = ("io_timeout_s", "handshake_timeout_s", "shutdown_timeout_s")
_OPTIONAL_STR_KEYS = ("greeting", "history_path", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: RelayRuntimeConfig, data: dict) -> RelayRuntimeConfig:
    server = data.get("server") if isinstance(data, dict) else None
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {
            name: log_table[key] for key, name in _LOGGING_KEYS.items() if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    for k in _INT_KEYS:
        if k in updates:
            updates[k] = int(updates[k])
    for k in _FLOAT_KEYS:
        if k in updates:
            updates[k] = float(updates[k])
    for k in _OPTIONAL_STR_KEYS:
        if k in updates and updates[k] == "":
            updates[k] = None
    if "log_levels" in updates:
        levels = updates["log_levels"]
        if not isinstance(levels, dict):
            raise ValueError("[logging] levels must be a table of logger = level")
        updates["log_levels"] = {str(k): str(v) for k, v in levels.items()}

    return replace(base, **updates) if updates else base


def load_config(path: str, base: RelayRuntimeConfig | None = None) -> RelayRuntimeConfig:
    cfg = base if base is not None else RelayRuntimeConfig()
    cfg = apply_config_data(cfg, load_toml(path))
    return replace(cfg, config_path=path)
