from __future__ import annotations

import logging
import signal
import socket
import threading
from datetime import datetime
from typing import Any, Callable

from .config import ServerRuntimeConfig
from .connection import Connection
from .errors import ListenerFailure
from .registry import SessionRegistry
from .router import MessageRouter
from .session import Session
from .stats import StatsManager
from .util import fmt_peer, short_id


class ChatService:
    def __init__(
        self,
        config: ServerRuntimeConfig,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("linechat.server")

        self._shutdown = threading.Event()
        self._stop_lock = threading.Lock()
        self._stopped = False

        self.stats_manager = StatsManager()
        self.registry = SessionRegistry(stats=self.stats_manager)
        self.router = MessageRouter(self.registry, clock=clock, stats=self.stats_manager)

        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int] | None:
        if self._listener is None:
            return None
        try:
            host, port = self._listener.getsockname()[:2]
        except OSError:
            return None
        return host, port

    def start(self) -> None:
        if self._listener is not None:
            return

        self.stats_manager.set_start_time()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.config.host, int(self.config.port)))
            sock.listen(max(1, int(self.config.backlog)))
        except OSError as e:
            sock.close()
            raise ListenerFailure(
                f"cannot listen on {self.config.host}:{self.config.port}: {e}"
            ) from e

        self._listener = sock
        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="linechat-accept", daemon=True
        )
        self._accept_thread.start()

        self.log.info(
            "Server running address=%s encoding=%s bom=%s",
            fmt_peer(self.address),
            self.config.encoding,
            self.config.write_bom,
        )

    def _accept_loop(self) -> None:
        listener = self._listener
        if listener is None:
            return

        while not self._shutdown.is_set():
            try:
                sock, peer = listener.accept()
            except OSError:
                if self._shutdown.is_set():
                    break
                self.log.exception("Accept failed; disconnecting all clients")
                self.stop()
                break

            if self._shutdown.is_set():
                sock.close()
                break

            self._spawn_session(sock, peer)

    def _spawn_session(self, sock: socket.socket, peer: Any) -> Session:
        conn = Connection(
            sock,
            encoding=self.config.encoding,
            write_bom=self.config.write_bom,
            peer=peer,
        )
        session = Session(conn, self.registry, self.router, stats=self.stats_manager)
        self.registry.add(session)
        self.stats_manager.inc("connections")

        t = threading.Thread(
            target=session.run,
            name=f"linechat-session-{short_id(session.id)}",
            daemon=True,
        )
        t.start()
        return session

    def run_forever(self) -> None:
        if self._listener is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        # Short waits keep the main thread responsive to signals.
        while not self.wait(0.25):
            pass

    def wait(self, timeout: float | None = None) -> bool:
        """Block until `stop()` has run or `timeout` passes; True once stopped."""
        return self._shutdown.wait(timeout)

    def stop(self) -> None:
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
        self._shutdown.set()

        if self._listener is not None:
            # shutdown wakes a thread blocked in accept(); close alone may not.
            try:
                self._listener.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self._listener.close()
            except OSError:
                pass

        self.disconnect_all()
        self.log.info("%s", self.stats_manager.format_stats(self.registry))
        self.log.info("Server stopped")

    def disconnect_all(self) -> None:
        sessions = self.registry.clear_all()
        for session in sessions:
            session.connection.abort()
        if sessions:
            self.log.info("Disconnected %d session(s)", len(sessions))
