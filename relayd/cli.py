from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

import tomlkit

from .config import RelayRuntimeConfig, load_config
from .logging_config import configure_logging
from .paths import (
    default_config_path,
    default_history_path,
    ensure_private_dir,
    restrict_file,
)
from .service import RelayService


def default_config_document(cfg: RelayRuntimeConfig, history_path: str) -> tomlkit.TOMLDocument:
    doc = tomlkit.document()
    doc.add(tomlkit.comment("relayd configuration (TOML)"))
    doc.add(tomlkit.comment(""))
    doc.add(tomlkit.comment("This file was created on first run."))
    doc.add(tomlkit.comment("Edit it, then start relayd again."))
    doc.add(tomlkit.nl())

    server = tomlkit.table()
    server.add(tomlkit.comment("Address and TCP port to listen on."))
    server.add("host", cfg.host)
    server.add("port", cfg.port)
    server.add(tomlkit.nl())

    server.add(tomlkit.comment("Connections beyond this many (authenticating or active) are"))
    server.add(tomlkit.comment("rejected with a single ERROR frame."))
    server.add("max_sessions", cfg.max_sessions)
    server.add(tomlkit.nl())

    server.add(tomlkit.comment("Name used in the welcome message, and an optional greeting"))
    server.add(tomlkit.comment("(message of the day) sent right after it."))
    server.add("server_name", cfg.server_name)
    server.add("greeting", cfg.greeting or "")
    server.add(tomlkit.nl())

    server.add(tomlkit.comment("Chat history: one line appended per routed message."))
    server.add("history_enabled", cfg.history_enabled)
    server.add("history_path", history_path)
    server.add(tomlkit.nl())

    server.add(tomlkit.comment("Socket write bound and read poll interval (seconds)."))
    server.add("io_timeout_s", cfg.io_timeout_s)
    server.add(tomlkit.comment("Longest accepted frame in bytes; longer lines drop the connection."))
    server.add("max_line_bytes", cfg.max_line_bytes)
    server.add(tomlkit.comment("Seconds a new connection has to send its username (0 disables)."))
    server.add("handshake_timeout_s", cfg.handshake_timeout_s)
    server.add(tomlkit.comment("Seconds to wait for sessions to close on shutdown."))
    server.add("shutdown_timeout_s", cfg.shutdown_timeout_s)
    doc.add("server", server)

    logging_tbl = tomlkit.table()
    logging_tbl.add(tomlkit.comment("Log level for relayd itself."))
    logging_tbl.add("level", cfg.log_level)
    logging_tbl.add(tomlkit.comment("Log to stderr (systemd/journald friendly)."))
    logging_tbl.add("console", cfg.log_console)
    logging_tbl.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    logging_tbl.add("file", cfg.log_file or "")
    logging_tbl.add(tomlkit.comment("Log format and optional date format."))
    logging_tbl.add("format", cfg.log_format)
    logging_tbl.add("datefmt", cfg.log_datefmt or "")
    logging_tbl.add(tomlkit.comment('Per-logger levels, e.g. { "relayd.transport" = "DEBUG" }.'))
    levels = tomlkit.inline_table()
    for name, value in sorted(cfg.log_levels.items()):
        levels[name] = value
    logging_tbl.add("levels", levels)
    doc.add("logging", logging_tbl)

    return doc


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    doc = default_config_document(RelayRuntimeConfig(), str(default_history_path()))
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(tomlkit.dumps(doc))
    restrict_file(Path(config_path))


def _ensure_first_run_files(config_path: str) -> bool:
    if os.path.exists(config_path):
        return False
    _write_default_config(config_path)
    return True


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="relayd", description="Run a relayd chat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Listen address (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="Listen port (default: 8888)")
    p.add_argument(
        "--max-sessions",
        type=int,
        default=None,
        help="Maximum concurrent sessions (default: 50)",
    )
    p.add_argument("--server-name", default=None, help="Server name in the welcome message")
    p.add_argument("--greeting", default=None, help="Greeting sent after the welcome")

    p.add_argument("--history-file", default=None, help="Chat history file path")
    p.add_argument("--no-history", action="store_true", help="Disable chat history")

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def apply_args(cfg: RelayRuntimeConfig, args: argparse.Namespace) -> RelayRuntimeConfig:
    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.max_sessions is not None:
        cfg = replace(cfg, max_sessions=int(args.max_sessions))
    if args.server_name is not None:
        cfg = replace(cfg, server_name=str(args.server_name))
    if args.greeting is not None:
        cfg = replace(cfg, greeting=str(args.greeting) or None)

    if args.history_file is not None:
        cfg = replace(cfg, history_path=str(args.history_file) or None)
    if args.no_history:
        cfg = replace(cfg, history_enabled=False)

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if _ensure_first_run_files(config_path):
        print(
            "Created default relayd config. Review it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run relayd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = load_config(config_path)
    cfg = apply_args(cfg, args)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = RelayService(cfg)
    try:
        svc.start()
    except OSError as e:
        print(f"relayd: cannot listen on {cfg.host}:{cfg.port}: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    svc.run_forever()


if __name__ == "__main__":
    main()
