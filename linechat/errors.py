from __future__ import annotations


class ConnectionLost(ConnectionError):
    """A read or write on a connection failed, or the connection is closed."""


class ListenerFailure(RuntimeError):
    """The listening socket could not be bound or stopped accepting."""
