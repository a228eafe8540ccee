from __future__ import annotations

import socket
import threading
from typing import Any

from .codec import encode_line, preamble, strip_bom, strip_terminator
from .constants import DEFAULT_ENCODING
from .errors import ConnectionLost


class Connection:
    """
    Line-oriented text channel over a connected stream socket.

    Reads are done by the owning thread only. Writes may come from any thread
    and are serialized, so a line is never interleaved with another one.
    `exclusive()` lets a caller hold the write path across several steps.
    """

    def __init__(
        self,
        sock: socket.socket,
        *,
        encoding: str = DEFAULT_ENCODING,
        write_bom: bool = True,
        peer: Any = None,
    ) -> None:
        self.encoding = encoding
        self.peer = peer if peer is not None else _peername(sock)

        self._sock = sock
        # newline=None accepts \n, \r\n and \r from peers.
        self._reader = sock.makefile("r", encoding=encoding, errors="replace", newline=None)
        self._write_lock = threading.RLock()
        self._close_lock = threading.Lock()
        self._closed = False
        self._aborted = False
        self._preamble_pending = bool(write_bom)
        self._first_line = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def aborted(self) -> bool:
        """True once the connection has been forced down or closed."""
        return self._aborted or self._closed

    def exclusive(self) -> threading.RLock:
        return self._write_lock

    def read_line(self) -> str | None:
        """Block until a full line arrives. Returns None on EOF."""
        if self._closed:
            return None
        try:
            line = self._reader.readline()
        except (OSError, ValueError) as e:
            if self._closed:
                return None
            raise ConnectionLost(f"read failed: {e}") from e

        if not line:
            return None

        if self._first_line:
            self._first_line = False
            line = strip_bom(line)

        return strip_terminator(line)

    def send_line(self, text: str) -> None:
        data = encode_line(text, self.encoding)
        with self._write_lock:
            if self._closed:
                raise ConnectionLost("connection closed")
            if self._preamble_pending:
                data = preamble(self.encoding) + data
                self._preamble_pending = False
            try:
                self._sock.sendall(data)
            except OSError as e:
                raise ConnectionLost(f"write failed: {e}") from e

    def abort(self) -> None:
        """Force the connection down from any thread; the owner sees EOF."""
        self._aborted = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> bool:
        """Release the socket. Only the first call does anything."""
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True

        # Shut down first so a writer blocked in sendall lets go of the lock.
        self.abort()
        with self._write_lock:
            for res in (self._reader, self._sock):
                try:
                    res.close()
                except OSError:
                    pass
        return True


def _peername(sock: socket.socket) -> Any:
    try:
        return sock.getpeername()
    except OSError:
        return None
