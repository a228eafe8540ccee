from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Union

from .constants import (
    CHAT_FMT,
    MULTI_PRIVATE_BODY_SEP,
    MULTI_PRIVATE_MARKER,
    MULTI_PRIVATE_TARGET_SEP,
    PRIVATE_FIELD_SEP,
    PRIVATE_PREFIX,
    TIMESTAMP_FMT,
    USER_NOT_FOUND_FMT,
)
from .errors import ConnectionLost
from .util import short_id

if TYPE_CHECKING:
    from .registry import SessionRegistry
    from .session import Session
    from .stats import StatsManager


@dataclass(frozen=True)
class Broadcast:
    body: str


@dataclass(frozen=True)
class Private:
    targets: tuple[str, ...]
    body: str


Message = Union[Broadcast, Private]


def classify(line: str) -> Message:
    """
    Decide whether an inbound line is a broadcast or a private message.

    `->a, b: text` names several recipients; targets and body are trimmed.
    `private|name|text` is the single-recipient form clients put on the wire;
    both fields are taken verbatim. Anything else, including either form
    without its separator, is broadcast exactly as received.
    """
    if line.startswith(MULTI_PRIVATE_MARKER):
        head, sep, body = line[len(MULTI_PRIVATE_MARKER) :].partition(
            MULTI_PRIVATE_BODY_SEP
        )
        if sep:
            targets = tuple(t.strip() for t in head.split(MULTI_PRIVATE_TARGET_SEP))
            return Private(targets=targets, body=body.strip())

    elif line.startswith(PRIVATE_PREFIX):
        target, sep, body = line[len(PRIVATE_PREFIX) :].partition(PRIVATE_FIELD_SEP)
        if sep:
            return Private(targets=(target,), body=body)

    return Broadcast(body=line)


class MessageRouter:
    """
    Routes classified messages between sessions.

    This class is responsible for:
    - Formatting chat lines with the sender's name and a timestamp
    - Fanning broadcasts out to every other active session
    - Delivering private messages to each named recipient
    - Telling the sender about unknown recipients
    - Containing delivery failures to the recipient they happened on
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        clock: Callable[[], datetime] | None = None,
        stats: StatsManager | None = None,
    ) -> None:
        self.registry = registry
        self.clock = clock or datetime.now
        self.stats = stats
        self.log = logging.getLogger("linechat.router")

    def format_chat(self, username: str | None, body: str) -> str:
        ts = self.clock().strftime(TIMESTAMP_FMT)
        return CHAT_FMT.format(user=username, ts=ts, body=body)

    def dispatch(self, line: str, sender: Session) -> None:
        if self.stats is not None:
            self.stats.inc("lines_in")
        self.route(classify(line), sender)

    def route(self, message: Message, sender: Session) -> None:
        if isinstance(message, Private):
            self._route_private(message, sender)
        else:
            self._route_broadcast(message, sender)

    def announce(self, sender: Session, text: str) -> int:
        """Send an already formatted line to every active session but `sender`."""
        return self.registry.for_each_except(
            sender.id, lambda recipient: self.deliver(recipient, text)
        )

    def deliver(self, recipient: Session, text: str) -> bool:
        """
        Write one line to another session.

        A failed write aborts the recipient's connection so its own thread
        runs the cleanup; it never reaches the caller. A recipient that is
        already going down is skipped quietly, so each failure counts once.
        """
        if recipient.connection.aborted:
            return False
        try:
            recipient.send(text)
            return True
        except ConnectionLost as e:
            if self.stats is not None:
                self.stats.inc("delivery_failures")
            self.log.warning(
                "Delivery failed to=%r session=%s err=%s",
                recipient.username,
                short_id(recipient.id),
                e,
            )
            recipient.connection.abort()
            return False

    def _route_broadcast(self, message: Broadcast, sender: Session) -> None:
        text = self.format_chat(sender.username, message.body)
        self.log.info("%s", text)
        n = self.announce(sender, text)
        if self.stats is not None:
            self.stats.inc("broadcasts")
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Broadcast from=%r session=%s recipients=%d",
                sender.username,
                short_id(sender.id),
                n,
            )

    def _route_private(self, message: Private, sender: Session) -> None:
        for target in message.targets:
            recipient = self.registry.lookup_by_username(target)
            if recipient is None:
                if self.stats is not None:
                    self.stats.inc("recipients_not_found")
                self.log.debug(
                    "Private target not found from=%r to=%r", sender.username, target
                )
                # Replies to the sender are not contained: a failure here is
                # the sender's own connection going away.
                sender.send(USER_NOT_FOUND_FMT.format(user=target))
                continue

            text = self.format_chat(sender.username, message.body)
            if self.deliver(recipient, text):
                if self.stats is not None:
                    self.stats.inc("private_delivered")
                self.log.debug(
                    "Private from=%r to=%r session=%s",
                    sender.username,
                    target,
                    short_id(recipient.id),
                )
