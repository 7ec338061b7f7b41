from __future__ import annotations

import itertools
import logging
import threading
from typing import TYPE_CHECKING

from .codec import DecodeError, decode, encode, peek_kind
from .constants import KINDS, TXT_IDENTITY_RULE, TXT_INVALID_IDENTITY, TXT_PROMPT
from .envelope import Message, error_message, system_message, with_sender
from .util import normalize_identity

if TYPE_CHECKING:
    from .service import RelayService
    from .transport import SocketTransport


S_AUTHENTICATING = "authenticating"
S_ACTIVE = "active"
S_CLOSED = "closed"

_session_ids = itertools.count(1)


class Session:
    """
    One connected peer.

    Lifecycle: ``authenticating`` -> ``active`` -> ``closed``. ``closed`` is
    terminal and is reached through :meth:`close` on every path (handshake
    failure, LEAVE, EOF, write failure, server shutdown).

    All socket I/O goes through ``transport`` so the state machine can be
    driven by an in-memory transport in tests.

    Outbound writes are serialised by ``_send_lock``. The transport is only
    released while holding that lock, so a concurrent :meth:`send` either
    finishes its frame first or observes ``closed`` and does nothing.
    """

    def __init__(self, hub: RelayService, transport: SocketTransport) -> None:
        self.hub = hub
        self.transport = transport
        self.sid = next(_session_ids)
        self.log = logging.getLogger("relayd.session")

        self.identity: str | None = None
        self.state = S_AUTHENTICATING

        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._closed = threading.Event()

    def __repr__(self) -> str:
        return f"<Session sid={self.sid} identity={self.identity!r} state={self.state}>"

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def wait_closed(self, timeout: float | None = None) -> bool:
        return self._closed.wait(timeout)

    def run(self) -> None:
        """Handshake, then read until EOF; always ends closed."""
        try:
            if self.handshake():
                self.read_loop()
        except Exception:
            self.log.exception("Session failed sid=%s identity=%s", self.sid, self.identity)
        finally:
            self.close()

    def handshake(self) -> bool:
        self.send(system_message(TXT_PROMPT))

        timeout = float(self.hub.config.handshake_timeout_s or 0.0)
        line = self.transport.readline(timeout=timeout if timeout > 0 else None)
        claimed = line.strip() if line else ""

        if not claimed:
            self.log.info("Handshake failed sid=%s peer=%s: no identity", self.sid, self.transport.peer)
            self.hub.stats_manager.inc("handshakes_failed")
            self.send(system_message(TXT_INVALID_IDENTITY))
            return False

        identity = normalize_identity(claimed)
        if identity is None:
            self.log.info(
                "Handshake failed sid=%s peer=%s: invalid identity %r",
                self.sid,
                self.transport.peer,
                claimed,
            )
            self.hub.stats_manager.inc("handshakes_failed")
            self.send(error_message(TXT_IDENTITY_RULE))
            return False

        if not self.hub.directory.register_unique(identity, self):
            self.log.info(
                "Handshake failed sid=%s peer=%s: identity %s taken",
                self.sid,
                self.transport.peer,
                identity,
            )
            self.hub.stats_manager.inc("handshakes_failed")
            self.send(error_message(f"Username '{identity}' is already taken."))
            return False

        with self._state_lock:
            if self.state == S_CLOSED:
                # Closed (e.g. shutdown) while registering.
                lost = True
            else:
                lost = False
                self.identity = identity
                self.state = S_ACTIVE
        if lost:
            self.hub.directory.unregister(identity, self)
            return False

        self.log.info("Authenticated sid=%s identity=%s peer=%s", self.sid, identity, self.transport.peer)
        self.hub.router.on_joined(self)
        return True

    def read_loop(self) -> None:
        while self.state == S_ACTIVE:
            line = self.transport.readline()
            if line is None:
                self.log.debug("EOF sid=%s identity=%s", self.sid, self.identity)
                break

            self.hub.stats_manager.inc("frames_in")
            result = decode(line)
            if isinstance(result, DecodeError):
                self.hub.stats_manager.inc("frames_bad")
                self.log.debug(
                    "Bad frame identity=%s err=%s frame=%r", self.identity, result, line
                )
                continue

            if peek_kind(line) not in KINDS:
                self.hub.stats_manager.inc("kinds_defaulted")

            msg = with_sender(result, self.identity or "")
            try:
                self.hub.router.dispatch(self, msg)
            except Exception:
                self.log.exception(
                    "Dispatch failed identity=%s kind=%s", self.identity, msg.kind
                )

    def send(self, msg: Message) -> bool:
        frame = encode(msg)
        with self._send_lock:
            if self.state == S_CLOSED:
                return False
            try:
                self.transport.write(frame)
            except OSError as e:
                self.hub.stats_manager.inc("send_failures")
                self.log.info(
                    "Send failed sid=%s identity=%s err=%s", self.sid, self.identity, e
                )
                # Wake the reader so teardown happens on the session's own thread.
                self.transport.abort()
                return False
        return True

    def close(self) -> bool:
        """Tear the session down. Only the first call has any effect."""
        with self._state_lock:
            if self.state == S_CLOSED:
                return False
            self.state = S_CLOSED
            identity = self.identity

        if identity is not None and self.hub.directory.unregister(identity, self):
            self.hub.router.on_left(identity)

        with self._send_lock:
            self.transport.close()
        self._closed.set()

        self.log.info("Session closed sid=%s identity=%s", self.sid, identity)
        return True
