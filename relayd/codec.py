from __future__ import annotations

import logging

from .constants import (
    DEFAULT_KIND,
    DELIMITER,
    F_CONTENT,
    F_KIND,
    F_RECIPIENT,
    F_SENDER,
    KINDS,
    MIN_FIELDS,
    TERMINATOR,
)
from .envelope import Message

log = logging.getLogger("relayd.codec")


class DecodeError(ValueError):
    """A frame that could not be turned into a Message.

    Returned by :func:`decode` rather than raised.
    """


def encode(msg: Message) -> str:
    recipient = msg.recipient or ""
    return (
        DELIMITER.join((msg.kind, msg.sender, recipient, msg.content)) + TERMINATOR
    )


def peek_kind(frame: str) -> str:
    """Return the frame's raw kind token, uppercased."""
    return frame.split(DELIMITER, 1)[0].strip().upper()


def parse_kind(token: str) -> str:
    k = token.strip().upper()
    if k in KINDS:
        return k
    # Unknown kinds are treated as public chat.
    log.debug("Unknown kind %r decoded as %s", token, DEFAULT_KIND)
    return DEFAULT_KIND


def decode(frame: str) -> Message | DecodeError:
    if not isinstance(frame, str):
        return DecodeError(f"frame must be text, got {type(frame).__name__}")

    line = frame
    if line.endswith(TERMINATOR):
        line = line[: -len(TERMINATOR)]
    if line.endswith("\r"):
        line = line[:-1]

    # CONTENT is everything after the third delimiter, verbatim.
    parts = line.split(DELIMITER, F_CONTENT)
    if len(parts) < MIN_FIELDS:
        return DecodeError(f"expected at least {MIN_FIELDS} fields, got {len(parts)}")

    kind = parse_kind(parts[F_KIND])
    sender = parts[F_SENDER]
    recipient = parts[F_RECIPIENT] or None
    content = parts[F_CONTENT] if len(parts) > F_CONTENT else ""

    try:
        msg = Message(kind=kind, sender=sender, recipient=recipient, content=content)
    except ValueError as e:
        if recipient is None:
            return DecodeError(str(e))
        # Only directed kinds may name a recipient; drop it for the rest.
        try:
            msg = Message(kind=kind, sender=sender, recipient=None, content=content)
        except ValueError as e2:
            return DecodeError(str(e2))
    return msg
