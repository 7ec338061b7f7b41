"""Statistics tracking and reporting for the relay."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import RelayService


class StatsManager:
    """
    Manages relay statistics collection and reporting.

    Tracks counters for:
    - Connections accepted/rejected and failed handshakes
    - Joins and leaves
    - Frames read, malformed frames, kinds defaulted to BROADCAST
    - Broadcasts, directed deliveries, unreachable recipients, listings
    - Send failures
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections_accepted": 0,
            "connections_rejected": 0,
            "handshakes_failed": 0,
            "joins": 0,
            "leaves": 0,
            "frames_in": 0,
            "frames_bad": 0,
            "kinds_defaulted": 0,
            "dropped_kinds": 0,
            "broadcasts": 0,
            "directed_delivered": 0,
            "directed_unreachable": 0,
            "listings_sent": 0,
            "send_failures": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        c = self.snapshot()
        lines: list[str] = []
        lines.append(f"relayd {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"sessions={self.hub.session_count()} "
            f"online={len(self.hub.directory)} "
            f"max_sessions={self.hub.config.max_sessions}"
        )
        lines.append(
            "connections: accepted={} rejected={} handshakes_failed={}".format(
                c.get("connections_accepted", 0),
                c.get("connections_rejected", 0),
                c.get("handshakes_failed", 0),
            )
        )
        lines.append(
            "frames: in={} bad={} kinds_defaulted={} dropped_kinds={}".format(
                c.get("frames_in", 0),
                c.get("frames_bad", 0),
                c.get("kinds_defaulted", 0),
                c.get("dropped_kinds", 0),
            )
        )
        lines.append(
            "events: joins={} leaves={} broadcasts={} directed={} unreachable={} listings={} send_failures={}".format(
                c.get("joins", 0),
                c.get("leaves", 0),
                c.get("broadcasts", 0),
                c.get("directed_delivered", 0),
                c.get("directed_unreachable", 0),
                c.get("listings_sent", 0),
                c.get("send_failures", 0),
            )
        )
        return "\n".join(lines)
