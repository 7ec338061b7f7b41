from __future__ import annotations

import logging
import signal
import socket
import threading
import time

from .codec import encode
from .config import RelayRuntimeConfig
from .constants import ENCODING, TXT_SERVER_FULL
from .directory import IdentityDirectory
from .envelope import error_message
from .history import NullHistorySink, build_history_sink
from .router import MessageRouter
from .session import Session
from .stats import StatsManager
from .transport import SocketTransport

_ACCEPT_POLL_S = 0.25


class RelayService:
    def __init__(
        self,
        config: RelayRuntimeConfig,
        *,
        history: NullHistorySink | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("relayd.server")

        self._shutdown = threading.Event()

        # Statistics counters
        self.stats_manager = StatsManager(self)

        # identity -> session for authenticated peers
        self.directory = IdentityDirectory()

        # Message router for broadcast/directed delivery
        self.router = MessageRouter(self)

        self.history = history if history is not None else build_history_sink(config)

        # Every live session (authenticating or active) counts against
        # max_sessions. Guarded by _sessions_lock.
        self._sessions_lock = threading.Lock()
        self._sessions: dict[Session, threading.Thread | None] = {}

        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._stop_lock = threading.Lock()
        self._stopped = False

    @property
    def address(self) -> tuple[str, int] | None:
        if self._listener is None:
            return None
        host, port = self._listener.getsockname()[:2]
        return host, port

    def session_count(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    def start(self) -> None:
        """Bind the listening socket and start accepting.

        A bind/listen failure propagates; it is the only fatal error.
        """
        if self._listener is not None:
            return

        self.stats_manager.set_start_time()
        self._listener = socket.create_server((self.config.host, int(self.config.port)))
        self._listener.settimeout(_ACCEPT_POLL_S)

        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="relayd-accept", daemon=True
        )
        self._accept_thread.start()

        host, port = self.address or ("-", 0)
        self.log.info("Relay listening host=%s port=%s", host, port)
        self.log.info(
            "Policy max_sessions=%s io_timeout_s=%s handshake_timeout_s=%s history=%s",
            self.config.max_sessions,
            self.config.io_timeout_s,
            self.config.handshake_timeout_s,
            type(self.history).__name__,
        )

    def _accept_loop(self) -> None:
        listener = self._listener
        if listener is None:
            return
        while not self._shutdown.is_set():
            try:
                conn, addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown.is_set():
                    break
                self.log.warning("Accept failed: %s", e)
                continue

            try:
                self.handle_connection(conn, addr)
            except Exception:
                self.log.exception("Failed to set up connection from %s", addr)
                try:
                    conn.close()
                except OSError:
                    pass

    def handle_connection(self, conn: socket.socket, addr) -> Session | None:
        """Admit or reject one accepted connection."""
        if self._shutdown.is_set():
            try:
                conn.close()
            except OSError:
                pass
            return None

        session: Session | None = None
        with self._sessions_lock:
            if len(self._sessions) < int(self.config.max_sessions):
                transport = SocketTransport(
                    conn,
                    io_timeout_s=self.config.io_timeout_s,
                    max_line_bytes=self.config.max_line_bytes,
                )
                session = Session(self, transport)
                self._sessions[session] = None

        if session is None:
            self._reject(conn, addr)
            return None

        self.stats_manager.inc("connections_accepted")
        thread = threading.Thread(
            target=self._run_session,
            args=(session,),
            name=f"relayd-session-{session.sid}",
            daemon=True,
        )
        with self._sessions_lock:
            if session in self._sessions:
                self._sessions[session] = thread
        thread.start()

        self.log.info(
            "Connection accepted sid=%s peer=%s sessions=%s",
            session.sid,
            session.transport.peer,
            self.session_count(),
        )
        return session

    def _reject(self, conn: socket.socket, addr) -> None:
        self.stats_manager.inc("connections_rejected")
        self.log.warning("Server full; rejecting connection from %s", addr)
        try:
            conn.settimeout(self.config.io_timeout_s or None)
            conn.sendall(encode(error_message(TXT_SERVER_FULL)).encode(ENCODING))
        except OSError:
            pass
        finally:
            try:
                conn.close()
            except OSError:
                pass

    def _run_session(self, session: Session) -> None:
        try:
            session.run()
        finally:
            with self._sessions_lock:
                self._sessions.pop(session, None)

    def run_forever(self) -> None:
        if self._listener is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self._shutdown.set())
        signal.signal(signal.SIGTERM, lambda *_: self._shutdown.set())

        while not self._shutdown.is_set():
            time.sleep(0.25)

        self.stop()

    def stop(self) -> None:
        """Stop accepting, tear down every session and wait for them."""
        self._shutdown.set()
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        listener, self._listener = self._listener, None
        if listener is not None:
            try:
                listener.close()
            except OSError:
                pass

        with self._sessions_lock:
            live = list(self._sessions.items())

        for session, _ in live:
            session.close()

        deadline = time.monotonic() + max(0.0, float(self.config.shutdown_timeout_s))
        for _, thread in live:
            if thread is None or thread is threading.current_thread():
                continue
            thread.join(max(0.0, deadline - time.monotonic()))

        accept_thread = self._accept_thread
        if accept_thread is not None and accept_thread is not threading.current_thread():
            accept_thread.join(max(0.0, deadline - time.monotonic()))

        self.history.close()
        self.log.info("Relay stopped\n%s", self.stats_manager.format_stats())
