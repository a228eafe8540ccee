"""Console client for a linechat server."""

from __future__ import annotations

import argparse
import socket
import sys
import threading

from .connection import Connection
from .constants import (
    CONNECTION_LOST,
    DEFAULT_ENCODING,
    DEFAULT_PORT,
    MULTI_PRIVATE_BODY_SEP,
    MULTI_PRIVATE_MARKER,
    MULTI_PRIVATE_TARGET_SEP,
    NAME_ACCEPTED,
    PRIVATE_PREFIX,
    PRIVATE_FIELD_SEP,
)
from .errors import ConnectionLost

PROMPT_USERNAME = "Введите имя пользователя:"
NAME_IN_USE = "Имя уже используется. Попробуйте снова."
CONNECT_FAILED = "Не удалось подключиться."


def expand_outgoing(line: str) -> list[str]:
    """
    Rewrite `->a,b:text` into one `private|name|text` line per target.

    Targets and text are trimmed. Any other line goes out unchanged.
    """
    if not line.startswith(MULTI_PRIVATE_MARKER):
        return [line]

    head, sep, body = line[len(MULTI_PRIVATE_MARKER) :].partition(MULTI_PRIVATE_BODY_SEP)
    if not sep:
        return [line]

    body = body.strip()
    return [
        f"{PRIVATE_PREFIX}{target.strip()}{PRIVATE_FIELD_SEP}{body}"
        for target in head.split(MULTI_PRIVATE_TARGET_SEP)
    ]


class ChatClient:
    def __init__(
        self,
        host: str,
        port: int,
        *,
        encoding: str = DEFAULT_ENCODING,
        write_bom: bool = True,
        timeout: float | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.encoding = encoding
        self.write_bom = write_bom
        self.timeout = timeout
        self.username: str | None = None
        self.connection: Connection | None = None

    def connect(self) -> None:
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise ConnectionLost(f"connect to {self.host}:{self.port} failed: {e}") from e
        self.connection = Connection(
            sock, encoding=self.encoding, write_bom=self.write_bom
        )

    def _conn(self) -> Connection:
        if self.connection is None:
            raise ConnectionLost("not connected")
        return self.connection

    def login(self, username: str) -> bool:
        """Offer a username. Returns True once the server accepts it."""
        conn = self._conn()
        conn.send_line(username)
        reply = conn.read_line()
        if reply is None:
            raise ConnectionLost("server closed the connection")
        if reply == NAME_ACCEPTED:
            self.username = username
            return True
        return False

    def read_line(self) -> str | None:
        return self._conn().read_line()

    def send(self, line: str) -> None:
        conn = self._conn()
        for out in expand_outgoing(line):
            conn.send_line(out)

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()


def _receive_loop(client: ChatClient) -> None:
    while True:
        try:
            line = client.read_line()
        except ConnectionLost:
            line = None
        if line is None:
            print(CONNECTION_LOST, flush=True)
            return
        print(line, flush=True)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="linechat", description="Connect to a linechat server")
    p.add_argument("--host", default="127.0.0.1", help="Server address")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    p.add_argument("--encoding", default=DEFAULT_ENCODING, help="Line encoding")
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    client = ChatClient(args.host, args.port, encoding=args.encoding)
    try:
        client.connect()
    except ConnectionLost as e:
        print(f"{CONNECT_FAILED} {e}", file=sys.stderr)
        raise SystemExit(1) from e

    try:
        while True:
            print(PROMPT_USERNAME, flush=True)
            username = sys.stdin.readline()
            if not username:
                return
            if client.login(username.rstrip("\r\n")):
                break
            print(NAME_IN_USE, flush=True)

        active = client.read_line()
        if active is not None:
            print(active, flush=True)

        threading.Thread(
            target=_receive_loop, args=(client,), name="linechat-receive", daemon=True
        ).start()

        for line in sys.stdin:
            client.send(line.rstrip("\r\n"))
    except ConnectionLost:
        print(CONNECTION_LOST, file=sys.stderr)
    except KeyboardInterrupt:
        pass
    finally:
        client.close()


if __name__ == "__main__":
    main()
