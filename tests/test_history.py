import re

import pytest

from relayd.config import RelayRuntimeConfig
from relayd.constants import T_PRIVATE
from relayd.envelope import Message, system_message
from relayd.history import FileHistorySink, NullHistorySink, build_history_sink

_LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[\d{2}:\d{2}\] ")


def test_file_sink_appends_lines(tmp_path) -> None:
    path = tmp_path / "logs" / "chat_history.txt"
    sink = FileHistorySink(path)

    sink.append(system_message("alice joined the chat"))
    sink.append(Message(kind=T_PRIVATE, sender="alice", recipient="bob", content="hi"))
    sink.close()

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert all(_LINE.match(line) for line in lines)
    assert lines[0].endswith("alice joined the chat")
    assert lines[1].endswith("alice (private): hi")


def test_file_sink_swallows_write_errors(tmp_path) -> None:
    sink = FileHistorySink(tmp_path)
    sink.append(system_message("x"))
    assert sink.failures == 1


def test_build_disabled_is_null() -> None:
    sink = build_history_sink(RelayRuntimeConfig(history_enabled=False))
    assert type(sink) is NullHistorySink


def test_build_uses_configured_path(tmp_path) -> None:
    target = tmp_path / "h.txt"
    sink = build_history_sink(RelayRuntimeConfig(history_path=str(target)))
    assert isinstance(sink, FileHistorySink)
    assert sink.path == target


def test_build_rejects_directory(tmp_path) -> None:
    with pytest.raises(ValueError):
        build_history_sink(RelayRuntimeConfig(history_path=str(tmp_path)))
