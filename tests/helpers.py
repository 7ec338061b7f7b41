"""Shared test doubles: an in-memory transport and a recording history sink."""

from __future__ import annotations

import contextlib
import queue
import threading
import time

from relayd.codec import DecodeError, decode
from relayd.config import RelayRuntimeConfig
from relayd.envelope import Message
from relayd.history import NullHistorySink
from relayd.service import RelayService
from relayd.session import Session


class FakeTransport:
    def __init__(self, peer: str = "test:0") -> None:
        self.peer = peer
        self.inbound: queue.Queue[str | None] = queue.Queue()
        self.frames: list[str] = []
        self.closed = False
        self.close_calls = 0
        self.aborted = False
        self.fail_writes = False
        self._lock = threading.Lock()

    def feed(self, *lines: str) -> None:
        for line in lines:
            self.inbound.put(line if line.endswith("\n") else line + "\n")

    def eof(self) -> None:
        self.inbound.put(None)

    def readline(self, timeout: float | None = None) -> str | None:
        deadline = time.monotonic() + timeout if timeout else None
        while not self.closed:
            wait = 0.05
            if deadline is not None:
                wait = min(wait, deadline - time.monotonic())
                if wait <= 0:
                    return None
            try:
                return self.inbound.get(timeout=wait)
            except queue.Empty:
                continue
        return None

    def write(self, data: str) -> None:
        if self.closed:
            raise OSError("transport closed")
        if self.fail_writes:
            raise OSError("broken pipe")
        with self._lock:
            self.frames.append(data)

    def abort(self) -> None:
        self.aborted = True
        self.inbound.put(None)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self.inbound.put(None)

    def messages(self) -> list[Message]:
        with self._lock:
            frames = list(self.frames)
        out = []
        for f in frames:
            m = decode(f)
            assert not isinstance(m, DecodeError), f
            out.append(m)
        return out

    def clear(self) -> None:
        with self._lock:
            self.frames.clear()


class MemoryHistory(NullHistorySink):
    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.closed = False
        self._lock = threading.Lock()

    def append(self, msg: Message) -> None:
        with self._lock:
            self.messages.append(msg)

    def close(self) -> None:
        self.closed = True


def make_hub(**overrides) -> RelayService:
    settings = {"history_enabled": False, "handshake_timeout_s": 2.0, **overrides}
    cfg = RelayRuntimeConfig(**settings)
    return RelayService(cfg, history=MemoryHistory())


def login(hub: RelayService, identity: str) -> tuple[Session, FakeTransport]:
    transport = FakeTransport(peer=f"{identity}:0")
    session = Session(hub, transport)  # type: ignore[arg-type]
    transport.feed(identity)
    assert session.handshake()
    return session, transport


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@contextlib.contextmanager
def running_server(**overrides):
    """A RelayService listening on an ephemeral loopback port."""
    settings = {
        "host": "127.0.0.1",
        "port": 0,
        "io_timeout_s": 0.5,
        "shutdown_timeout_s": 2.0,
        "history_enabled": False,
    }
    settings.update(overrides)
    svc = RelayService(RelayRuntimeConfig(**settings), history=MemoryHistory())
    svc.start()
    try:
        yield svc
    finally:
        svc.stop()


def next_matching(client, predicate, timeout: float = 5.0) -> Message | None:
    """Poll ``client`` until a queued message satisfies ``predicate``."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        msg = client.poll(timeout=remaining)
        if msg is not None and predicate(msg):
            return msg
