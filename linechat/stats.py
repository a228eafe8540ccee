"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .registry import SessionRegistry


class StatsManager:
    """
    Thread-safe counters for the chat server.

    Tracks:
    - Accepted connections
    - Joins, parts and username conflicts
    - Inbound chat lines
    - Broadcasts and private deliveries
    - Unknown private recipients
    - Failed deliveries to other sessions
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "joins": 0,
            "parts": 0,
            "name_conflicts": 0,
            "lines_in": 0,
            "broadcasts": 0,
            "private_delivered": 0,
            "recipients_not_found": 0,
            "delivery_failures": 0,
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

    def format_stats(self, registry: SessionRegistry | None = None) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        session_stats = registry.get_stats() if registry is not None else None
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"linechat {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        if session_stats is not None:
            lines.append(
                f"sessions_total={session_stats['total']} "
                f"sessions_active={session_stats['active']}"
            )
        lines.append(
            "sessions: connections={} joins={} parts={} name_conflicts={}".format(
                c.get("connections", 0),
                c.get("joins", 0),
                c.get("parts", 0),
                c.get("name_conflicts", 0),
            )
        )
        lines.append(
            "messages: lines_in={} broadcasts={} private={} not_found={} delivery_failures={}".format(
                c.get("lines_in", 0),
                c.get("broadcasts", 0),
                c.get("private_delivered", 0),
                c.get("recipients_not_found", 0),
                c.get("delivery_failures", 0),
            )
        )

        return "\n".join(lines)
