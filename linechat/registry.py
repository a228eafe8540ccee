from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable

from .util import short_id

if TYPE_CHECKING:
    from .session import Session
    from .stats import StatsManager


class SessionRegistry:
    """
    Directory of the sessions held by the server.

    This class is responsible for:
    - Holding every accepted session, authenticated or not
    - Binding usernames uniquely (exact, case-sensitive match)
    - Username lookups for private delivery
    - Point-in-time username snapshots
    - Snapshotting broadcast recipients

    Every operation takes the registry lock. Callbacks passed to
    `for_each_except` run after the lock is released.
    """

    def __init__(self, stats: StatsManager | None = None) -> None:
        self.log = logging.getLogger("linechat.registry")
        self.stats = stats
        self._lock = threading.RLock()
        self.sessions: dict[str, Session] = {}
        self._index_by_username: dict[str, Session] = {}

    def add(self, session: Session) -> None:
        with self._lock:
            self.sessions[session.id] = session

    def register(self, session: Session, desired_username: str) -> bool:
        """
        Bind `desired_username` to `session` and activate it.

        Returns False when the name is held by another session, or when the
        session is not held here, already has a name or has closed.
        """
        with self._lock:
            if self.sessions.get(session.id) is not session:
                return False

            holder = self._index_by_username.get(desired_username)
            if holder is not None:
                if self.stats is not None:
                    self.stats.inc("name_conflicts")
                return False

            if not session.activate(desired_username):
                return False

            self._index_by_username[desired_username] = session

        if self.stats is not None:
            self.stats.inc("joins")
        self.log.debug(
            "Registered username=%r session=%s", desired_username, short_id(session.id)
        )
        return True

    def unregister(self, session_id: str) -> Session | None:
        """Drop a session and its username. Calling it again is a no-op."""
        with self._lock:
            session = self.sessions.pop(session_id, None)
            if session is None:
                return None

            name = session.username
            if name is not None and self._index_by_username.get(name) is session:
                del self._index_by_username[name]

        self.log.debug("Unregistered session=%s", short_id(session_id))
        return session

    def holds(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self.sessions

    def lookup_by_username(self, name: str) -> Session | None:
        with self._lock:
            return self._index_by_username.get(name)

    def snapshot_usernames(self) -> list[str]:
        with self._lock:
            return list(self._index_by_username.keys())

    def for_each_except(self, session_id: str, fn: Callable[[Session], Any]) -> int:
        """
        Apply `fn` to every active session other than `session_id`.

        A recipient that fails (for instance because it closed after the
        snapshot) is logged and skipped. Never raises.
        """
        with self._lock:
            recipients = [
                s for s in self._index_by_username.values() if s.id != session_id
            ]

        done = 0
        for session in recipients:
            try:
                fn(session)
            except Exception:
                self.log.warning(
                    "Broadcast callback failed session=%s",
                    short_id(session.id),
                    exc_info=True,
                )
                continue
            done += 1
        return done

    def clear_all(self) -> list[Session]:
        """Empty the registry and return what it held, for teardown."""
        with self._lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
            self._index_by_username.clear()
        return sessions

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total": len(self.sessions),
                "active": len(self._index_by_username),
            }
