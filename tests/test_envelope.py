import datetime

import pytest

from relayd.constants import (
    SYSTEM_SENDER,
    T_BROADCAST,
    T_ERROR,
    T_FILE,
    T_JOIN,
    T_PRIVATE,
    T_PRIVATE_REQUEST,
    T_SYSTEM,
)
from relayd.envelope import (
    Message,
    error_message,
    format_display,
    make_message,
    system_message,
    with_sender,
)

_TS = datetime.datetime(2024, 5, 1, 10, 30)


def test_directed_kinds_require_recipient() -> None:
    for kind in (T_PRIVATE, T_FILE, T_PRIVATE_REQUEST):
        with pytest.raises(ValueError):
            Message(kind=kind, sender="alice", content="x")
        msg = Message(kind=kind, sender="alice", recipient="bob", content="x")
        assert msg.is_directed
        assert msg.is_for("bob")


def test_other_kinds_reject_recipient() -> None:
    with pytest.raises(ValueError):
        Message(kind=T_BROADCAST, sender="alice", recipient="bob", content="x")


def test_empty_recipient_means_absent() -> None:
    msg = Message(kind=T_BROADCAST, sender="alice", recipient="", content="x")
    assert msg.recipient is None
    assert not msg.is_for("")


def test_unknown_kind_rejected() -> None:
    with pytest.raises(ValueError):
        Message(kind="SHOUT", sender="alice")


def test_wrong_field_types_rejected() -> None:
    with pytest.raises(TypeError):
        Message(kind=T_BROADCAST, sender=None, content="x")  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        Message(kind=T_BROADCAST, sender="alice", content=5)  # type: ignore[arg-type]


def test_equality_ignores_timestamp() -> None:
    a = Message(kind=T_BROADCAST, sender="alice", content="x", timestamp=_TS)
    b = Message(kind=T_BROADCAST, sender="alice", content="x")
    assert a == b


def test_system_and_error_constructors() -> None:
    s = system_message("hello")
    e = error_message("nope")
    assert (s.kind, s.sender) == (T_SYSTEM, SYSTEM_SENDER)
    assert (e.kind, e.sender) == (T_ERROR, SYSTEM_SENDER)
    assert make_message(T_BROADCAST, sender="alice", content="x").content == "x"


def test_with_sender_restamps() -> None:
    msg = Message(kind=T_BROADCAST, sender="mallory", content="x")
    fixed = with_sender(msg, "alice")
    assert fixed.sender == "alice"
    assert fixed.content == "x"
    assert with_sender(fixed, "alice") is fixed


def test_format_display() -> None:
    def line(kind, content, recipient=None) -> str:
        msg = Message(
            kind=kind, sender="alice", recipient=recipient, content=content, timestamp=_TS
        )
        return format_display(msg)

    assert line(T_BROADCAST, "hi") == "[10:30] alice: hi"
    assert line(T_PRIVATE, "psst", "bob") == "[10:30] alice (private): psst"
    assert line(T_SYSTEM, "bob joined the chat") == "[10:30] bob joined the chat"
    assert line(T_JOIN, "bob") == "[10:30] >>> bob"
    assert line(T_ERROR, "bad") == "[10:30] ERROR: bad"
