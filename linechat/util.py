from __future__ import annotations

import os


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def short_id(session_id: str | None, *, prefix: int = 8) -> str:
    if not session_id:
        return "-"
    return session_id if prefix <= 0 else session_id[: min(prefix, len(session_id))]


def fmt_peer(peer) -> str:
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    if peer is None:
        return "-"
    return str(peer)
