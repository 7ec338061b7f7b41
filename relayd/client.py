"""Client side of the relay protocol, for presentation layers (GUI or CLI)."""

from __future__ import annotations

import logging
import queue
import socket
import threading
from typing import Callable

from .codec import DecodeError, decode, encode
from .constants import (
    T_BROADCAST,
    T_ERROR,
    T_LEAVE,
    T_PRIVATE,
    T_SYSTEM,
    T_USER_LIST,
    TERMINATOR,
    TXT_DISCONNECTED,
    WELCOME_PREFIX,
)
from .envelope import Message, system_message
from .transport import SocketTransport
from .util import one_line


class RelayClient:
    """
    Connects to a relay server and exchanges messages.

    Inbound messages are decoded on a background receive thread and put on
    :attr:`inbox`. The network thread never calls into the consumer; the
    consumer reads the queue (``poll``/``drain``) on its own thread.
    """

    def __init__(self, *, io_timeout_s: float = 5.0) -> None:
        self.log = logging.getLogger("relayd.client")
        self.io_timeout_s = io_timeout_s
        self.transport: SocketTransport | None = None
        self.identity: str | None = None
        self.inbox: queue.Queue[Message] = queue.Queue()

        self._send_lock = threading.Lock()
        self._running = threading.Event()
        self._recv_thread: threading.Thread | None = None

    @property
    def connected(self) -> bool:
        return self.transport is not None and not self.transport.closed

    def connect(self, host: str, port: int, *, timeout: float = 10.0) -> bool:
        try:
            sock = socket.create_connection((host, int(port)), timeout=timeout)
        except OSError as e:
            self.log.warning("Failed to connect to %s:%s: %s", host, port, e)
            return False
        self.transport = SocketTransport(sock, io_timeout_s=self.io_timeout_s)
        self.log.info("Connected to %s:%s", host, port)
        return True

    def _read_message(self, timeout: float | None) -> Message | None:
        if self.transport is None:
            return None
        while True:
            line = self.transport.readline(timeout=timeout)
            if line is None:
                return None
            result = decode(line)
            if isinstance(result, DecodeError):
                self.log.debug("Ignoring bad frame %r: %s", line, result)
                continue
            return result

    def authenticate(
        self, identity: str, *, max_lines: int = 5, timeout: float = 10.0
    ) -> bool:
        """Claim ``identity``; True once the server's welcome arrives.

        Replies other than the welcome or an ERROR (for example the join
        notice) are queued on the inbox.
        """
        if self.transport is None:
            return False

        prompt = self._read_message(timeout)
        if prompt is None:
            return False
        if prompt.kind == T_ERROR:
            # Rejected before the handshake (server full).
            self.inbox.put(prompt)
            return False

        try:
            with self._send_lock:
                self.transport.write(one_line(identity) + TERMINATOR)
        except OSError as e:
            self.log.warning("Failed to send identity: %s", e)
            return False

        for _ in range(max(1, int(max_lines))):
            msg = self._read_message(timeout)
            if msg is None:
                self.log.warning("Login failed: connection closed")
                return False
            if msg.kind == T_ERROR:
                self.log.warning("Login failed: %s", msg.content)
                self.inbox.put(msg)
                return False
            if msg.kind == T_SYSTEM and msg.content.startswith(WELCOME_PREFIX):
                self.identity = identity.strip()
                self.log.info("Logged in as %s", self.identity)
                return True
            self.inbox.put(msg)

        self.log.warning("Login failed: no welcome within %s lines", max_lines)
        return False

    def start_listening(self) -> None:
        if self._recv_thread is not None and self._recv_thread.is_alive():
            return
        self._running.set()
        self._recv_thread = threading.Thread(
            target=self._recv_loop, name="relayd-client-recv", daemon=True
        )
        self._recv_thread.start()

    def _recv_loop(self) -> None:
        while self._running.is_set():
            msg = self._read_message(None)
            if msg is None:
                break
            self.inbox.put(msg)

        if self._running.is_set():
            # Server went away rather than a local disconnect().
            self._running.clear()
            self.log.info("Connection to server lost")
            transport = self.transport
            if transport is not None:
                transport.close()
            self.inbox.put(system_message(TXT_DISCONNECTED))

    def _send(self, msg: Message) -> bool:
        transport = self.transport
        if transport is None:
            return False
        try:
            with self._send_lock:
                transport.write(encode(msg))
        except OSError as e:
            self.log.warning("Send failed: %s", e)
            return False
        return True

    def send_broadcast(self, text: str) -> bool:
        return self._send(
            Message(kind=T_BROADCAST, sender=self.identity or "", content=one_line(text))
        )

    def send_directed(self, recipient: str, text: str) -> bool:
        try:
            msg = Message(
                kind=T_PRIVATE,
                sender=self.identity or "",
                recipient=recipient,
                content=one_line(text),
            )
        except ValueError as e:
            self.log.warning("Not sending to %r: %s", recipient, e)
            return False
        return self._send(msg)

    def request_directory_listing(self) -> bool:
        return self._send(Message(kind=T_USER_LIST, sender=self.identity or ""))

    def poll(self, timeout: float | None = None) -> Message | None:
        try:
            return self.inbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, handler: Callable[[Message], None]) -> int:
        """Hand every queued message to ``handler`` on the caller's thread."""
        n = 0
        while True:
            try:
                msg = self.inbox.get_nowait()
            except queue.Empty:
                return n
            handler(msg)
            n += 1

    def disconnect(self) -> None:
        self._running.clear()
        transport = self.transport
        if transport is None:
            return

        if not transport.closed:
            self._send(
                Message(kind=T_LEAVE, sender=self.identity or "", content="Disconnecting")
            )
        transport.close()

        thread = self._recv_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.io_timeout_s)
        self.log.info("Disconnected from server")
