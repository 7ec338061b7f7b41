"""Line-oriented socket I/O used by both the server sessions and the client."""

from __future__ import annotations

import logging
import socket
import threading
import time

from .constants import ENCODING, TERMINATOR

_RECV_SIZE = 4096
DEFAULT_MAX_LINE_BYTES = 65536


class SocketTransport:
    """
    Wraps a connected stream socket.

    - ``readline`` returns one decoded line (terminator included) or None on
      EOF, error, close, or when the optional deadline passes. A final line
      with no terminator is returned once at EOF.
    - A line longer than ``max_line_bytes`` aborts the connection.
    - ``write`` sends a whole frame and is bounded by ``io_timeout_s``.
    - ``abort`` shuts the socket down without releasing it so a blocked reader
      wakes up and performs teardown on its own thread.
    - ``close`` is idempotent.

    The socket timeout doubles as the read poll interval: an idle reader wakes
    up every ``io_timeout_s`` to check for close and deadlines.
    """

    def __init__(
        self,
        sock: socket.socket,
        *,
        io_timeout_s: float = 5.0,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        self.log = logging.getLogger("relayd.transport")
        self.sock = sock
        self._buf = bytearray()
        self.max_line_bytes = int(max_line_bytes)
        self._eof = False
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        timeout = float(io_timeout_s) if io_timeout_s and io_timeout_s > 0 else None
        sock.settimeout(timeout)
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass

        try:
            peer = sock.getpeername()
            self.peer = f"{peer[0]}:{peer[1]}"
        except (OSError, IndexError, TypeError):
            self.peer = "-"

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def readline(self, timeout: float | None = None) -> str | None:
        deadline = time.monotonic() + timeout if timeout and timeout > 0 else None
        term = TERMINATOR.encode(ENCODING)

        while True:
            nl = self._buf.find(term)
            if nl != -1:
                raw = bytes(self._buf[: nl + 1])
                del self._buf[: nl + 1]
                return raw.decode(ENCODING, errors="replace")

            if self._eof or self._closed.is_set():
                return None
            if self.max_line_bytes > 0 and len(self._buf) > self.max_line_bytes:
                self.log.warning(
                    "Line too long peer=%s limit=%s; dropping connection",
                    self.peer,
                    self.max_line_bytes,
                )
                self._buf.clear()
                self._eof = True
                self.abort()
                return None
            if deadline is not None and time.monotonic() >= deadline:
                return None

            try:
                chunk = self.sock.recv(_RECV_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._closed.is_set():
                    self.log.debug("Read failed peer=%s err=%s", self.peer, e)
                return None

            if not chunk:
                self._eof = True
                if self._buf:
                    raw = bytes(self._buf)
                    self._buf.clear()
                    return raw.decode(ENCODING, errors="replace")
                return None
            self._buf.extend(chunk)

    def write(self, data: str) -> None:
        """Send ``data`` completely; raises OSError (incl. timeout) on failure."""
        if self._closed.is_set():
            raise OSError("transport closed")
        self.sock.sendall(data.encode(ENCODING))

    def abort(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> None:
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
        self.abort()
        try:
            self.sock.close()
        except OSError:
            pass
