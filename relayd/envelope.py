from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace

from .constants import (
    DELIMITER,
    DIRECTED_KINDS,
    KINDS,
    SYSTEM_SENDER,
    T_BROADCAST,
    T_ERROR,
    T_JOIN,
    T_LEAVE,
    T_PRIVATE,
    T_SYSTEM,
)

_FIELD_BREAKERS = (DELIMITER, "\n", "\r")


def now() -> datetime.datetime:
    return datetime.datetime.now()


@dataclass(frozen=True)
class Message:
    """A single relay message.

    ``timestamp`` is assigned locally when the message is built and is not
    part of the wire frame, so it is excluded from equality.
    """

    kind: str
    sender: str
    recipient: str | None = None
    content: str = ""
    timestamp: datetime.datetime = field(default_factory=now, compare=False)

    def __post_init__(self) -> None:
        if self.recipient == "":
            object.__setattr__(self, "recipient", None)
        validate_message(self)

    @property
    def is_directed(self) -> bool:
        return self.kind in DIRECTED_KINDS

    def is_for(self, identity: str) -> bool:
        return self.recipient is not None and self.recipient == identity


def validate_message(msg: Message) -> None:
    if not isinstance(msg.kind, str):
        raise TypeError("message kind must be a string")
    if msg.kind not in KINDS:
        raise ValueError(f"unknown message kind {msg.kind!r}")

    if not isinstance(msg.sender, str):
        raise TypeError("sender must be a string")
    if not isinstance(msg.content, str):
        raise TypeError("content must be a string")

    if msg.recipient is not None and not isinstance(msg.recipient, str):
        raise TypeError("recipient must be a string")

    # SENDER and RECIPIENT are delimited fields; CONTENT is the verbatim tail.
    for name, value in (("sender", msg.sender), ("recipient", msg.recipient)):
        if value and any(ch in value for ch in _FIELD_BREAKERS):
            raise ValueError(f"{name} must not contain {DELIMITER!r} or line breaks")

    if msg.kind in DIRECTED_KINDS:
        if not msg.recipient:
            raise ValueError(f"{msg.kind} message requires a recipient")
    elif msg.recipient is not None:
        raise ValueError(f"{msg.kind} message must not carry a recipient")


def make_message(
    kind: str,
    *,
    sender: str,
    content: str = "",
    recipient: str | None = None,
) -> Message:
    return Message(kind=kind, sender=sender, recipient=recipient, content=content)


def system_message(text: str) -> Message:
    return Message(kind=T_SYSTEM, sender=SYSTEM_SENDER, content=text)


def error_message(text: str) -> Message:
    return Message(kind=T_ERROR, sender=SYSTEM_SENDER, content=text)


def with_sender(msg: Message, sender: str) -> Message:
    """Return ``msg`` re-stamped with the server-side sender identity."""
    if msg.sender == sender:
        return msg
    return replace(msg, sender=sender)


def format_display(msg: Message) -> str:
    """Render a message as a single human-readable line.

    Examples::

        [10:30] alice: Hello everyone
        [10:31] alice (private): hey
        [10:32] bob joined the chat
    """
    ts = msg.timestamp.strftime("%H:%M")
    if msg.kind == T_SYSTEM:
        return f"[{ts}] {msg.content}"
    if msg.kind == T_PRIVATE:
        return f"[{ts}] {msg.sender} (private): {msg.content}"
    if msg.kind == T_BROADCAST:
        return f"[{ts}] {msg.sender}: {msg.content}"
    if msg.kind in (T_JOIN, T_LEAVE):
        return f"[{ts}] >>> {msg.content}"
    if msg.kind == T_ERROR:
        return f"[{ts}] ERROR: {msg.content}"
    return f"[{ts}] {msg.sender}: {msg.content}"
