from __future__ import annotations

import enum
import logging
import threading
import uuid
from typing import TYPE_CHECKING

from .constants import (
    ACTIVE_USERS_PREFIX,
    JOINED_FMT,
    LEFT_FMT,
    NAME_ACCEPTED,
    NAME_TAKEN,
    USER_LIST_SEPARATOR,
)
from .errors import ConnectionLost
from .util import fmt_peer, short_id

if TYPE_CHECKING:
    from .connection import Connection
    from .registry import SessionRegistry
    from .router import MessageRouter
    from .stats import StatsManager


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    ACTIVE = "active"
    CLOSED = "closed"


class Session:
    """
    Server-side state for one connected client.

    A session starts UNAUTHENTICATED, becomes ACTIVE once it claims a
    username and ends CLOSED. `run()` drives it on the connection's own
    thread; `close()` may be reached from any exit path and cleans up once.
    """

    def __init__(
        self,
        connection: Connection,
        registry: SessionRegistry,
        router: MessageRouter,
        *,
        stats: StatsManager | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.username: str | None = None
        self.state = SessionState.UNAUTHENTICATED
        self.connection = connection
        self.registry = registry
        self.router = router
        self.stats = stats
        self.log = logging.getLogger("linechat.session")
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"Session(id={short_id(self.id)}, username={self.username!r}, "
            f"state={self.state.value})"
        )

    def activate(self, username: str) -> bool:
        """
        Bind the username and move to ACTIVE.

        Called by the registry with its lock held. Returns False unless the
        session is still unauthenticated.
        """
        with self._lock:
            if self.state is not SessionState.UNAUTHENTICATED:
                return False
            self.username = username
            self.state = SessionState.ACTIVE
            return True

    def send(self, text: str) -> None:
        self.connection.send_line(text)

    def run(self) -> None:
        self.log.info(
            "Connection accepted peer=%s session=%s",
            fmt_peer(self.connection.peer),
            short_id(self.id),
        )
        try:
            if self._handshake():
                self._message_loop()
        except ConnectionLost as e:
            self.log.info(
                "Connection lost username=%r session=%s err=%s",
                self.username,
                short_id(self.id),
                e,
            )
        except Exception:
            self.log.exception(
                "Session failed username=%r session=%s", self.username, short_id(self.id)
            )
        finally:
            self.close()

    def _handshake(self) -> bool:
        while True:
            desired = self.connection.read_line()
            if desired is None:
                return False

            # The registry decision, its reply and the user list go out
            # back to back; nothing else may be written in between.
            with self.connection.exclusive():
                accepted = self.registry.register(self, desired)
                if accepted:
                    self.send(NAME_ACCEPTED)
                    self.send(
                        ACTIVE_USERS_PREFIX
                        + USER_LIST_SEPARATOR.join(self.registry.snapshot_usernames())
                    )
                elif not self.registry.holds(self.id):
                    # Dropped by disconnect-all while handshaking.
                    return False
                else:
                    self.send(NAME_TAKEN)

            if not accepted:
                self.log.info(
                    "Username taken username=%r session=%s", desired, short_id(self.id)
                )
                continue

            self.log.info(
                "User joined username=%r session=%s", self.username, short_id(self.id)
            )
            self.router.announce(self, JOINED_FMT.format(user=self.username))
            return True

    def _message_loop(self) -> None:
        while True:
            line = self.connection.read_line()
            if line is None:
                return
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug(
                    "RX username=%r session=%s chars=%d",
                    self.username,
                    short_id(self.id),
                    len(line),
                )
            self.router.dispatch(line, self)

    def close(self) -> bool:
        """
        Move to CLOSED: announce the departure, unregister, release the
        connection. Only the first call does the work; it returns True.
        """
        with self._lock:
            if self.state is SessionState.CLOSED:
                return False
            was_active = self.state is SessionState.ACTIVE
            self.state = SessionState.CLOSED

        # The name stays bound until the departure is out, so nobody can
        # claim it and then hear that it left.
        if was_active:
            if self.stats is not None:
                self.stats.inc("parts")
            self.router.announce(self, LEFT_FMT.format(user=self.username))

        self.registry.unregister(self.id)

        self.connection.close()
        self.log.info(
            "Session closed username=%r session=%s", self.username, short_id(self.id)
        )
        return True
