from __future__ import annotations

import threading
from datetime import datetime

import pytest

from linechat.errors import ConnectionLost
from linechat.registry import SessionRegistry
from linechat.router import MessageRouter
from linechat.session import Session
from linechat.stats import StatsManager

FIXED_NOW = datetime(2024, 5, 17, 12, 34, 56)


class FakeConnection:
    """In-memory stand-in for Connection: scripted reads, recorded writes."""

    def __init__(self, lines=(), *, fail_writes: bool = False) -> None:
        self.lines = list(lines)
        self.fail_writes = fail_writes
        self.sent: list[str] = []
        self.aborted = False
        self.close_calls = 0
        self.peer = ("127.0.0.1", 40000)
        self._lock = threading.RLock()

    def exclusive(self):
        return self._lock

    def read_line(self):
        if not self.lines:
            return None
        return self.lines.pop(0)

    def send_line(self, text: str) -> None:
        with self._lock:
            if self.fail_writes or self.close_calls:
                raise ConnectionLost("write failed: broken pipe")
            self.sent.append(text)

    def abort(self) -> None:
        self.aborted = True

    def close(self) -> bool:
        self.close_calls += 1
        return self.close_calls == 1


@pytest.fixture
def stats() -> StatsManager:
    return StatsManager()


@pytest.fixture
def registry(stats: StatsManager) -> SessionRegistry:
    return SessionRegistry(stats=stats)


@pytest.fixture
def router(registry: SessionRegistry, stats: StatsManager) -> MessageRouter:
    return MessageRouter(registry, clock=lambda: FIXED_NOW, stats=stats)


@pytest.fixture
def make_session(registry: SessionRegistry, router: MessageRouter, stats: StatsManager):
    def _make(username: str | None = None, lines=(), *, fail_writes: bool = False) -> Session:
        session = Session(
            FakeConnection(lines, fail_writes=fail_writes), registry, router, stats=stats
        )
        registry.add(session)
        if username is not None:
            assert registry.register(session, username)
        return session

    return _make
