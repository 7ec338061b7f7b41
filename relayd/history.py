"""Append-only chat history."""

from __future__ import annotations

import datetime
import logging
import os
import threading
from pathlib import Path

from .config import RelayRuntimeConfig
from .envelope import Message, format_display
from .paths import resolve_history_path


class NullHistorySink:
    """Discards everything. Used when history is disabled."""

    def append(self, msg: Message) -> None:
        return None

    def close(self) -> None:
        return None


class FileHistorySink(NullHistorySink):
    """
    Appends one line per routed message to a text file.

    ``append`` never raises: write failures are logged and dropped so history
    problems cannot affect delivery.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.log = logging.getLogger("relayd.history")
        self._lock = threading.Lock()
        self._failures = 0

    @property
    def failures(self) -> int:
        return self._failures

    def format_line(self, msg: Message) -> str:
        stamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return f"[{stamp}] {format_display(msg)}\n"

    def append(self, msg: Message) -> None:
        try:
            line = self.format_line(msg)
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
        except (OSError, ValueError) as e:
            self._failures += 1
            self.log.warning("History append failed path=%s err=%s", self.path, e)


def build_history_sink(cfg: RelayRuntimeConfig) -> NullHistorySink:
    if not cfg.history_enabled:
        return NullHistorySink()
    path = resolve_history_path(cfg.history_path)
    if os.path.isdir(path):
        raise ValueError(f"history_path is a directory: {path}")
    return FileHistorySink(path)
