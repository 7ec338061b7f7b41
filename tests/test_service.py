import socket

from helpers import running_server, wait_for

from relayd.codec import decode
from relayd.constants import T_ERROR, T_SYSTEM, TXT_PROMPT
from relayd.transport import SocketTransport


def _dial(svc) -> SocketTransport:
    sock = socket.create_connection(svc.address, timeout=2.0)
    return SocketTransport(sock, io_timeout_s=0.5)


def _read_until(t: SocketTransport, content: str, limit: int = 10) -> list[str]:
    seen: list[str] = []
    for _ in range(limit):
        line = t.readline(timeout=3.0)
        if line is None:
            break
        seen.append(line)
        msg = decode(line)
        if getattr(msg, "content", None) == content:
            break
    return seen


def test_rejects_connections_over_capacity() -> None:
    with running_server(max_sessions=1) as svc:
        first = _dial(svc)
        prompt = decode(first.readline(timeout=3.0) or "")
        assert (prompt.kind, prompt.content) == (T_SYSTEM, TXT_PROMPT)

        second = _dial(svc)
        assert second.readline(timeout=3.0) == "ERROR|SERVER||Server is full. Try again later.\n"
        assert second.readline(timeout=3.0) is None
        assert svc.stats_manager.get("connections_rejected") == 1
        assert svc.session_count() == 1

        first.close()
        second.close()


def test_capacity_frees_after_disconnect() -> None:
    with running_server(max_sessions=1) as svc:
        first = _dial(svc)
        assert first.readline(timeout=3.0) is not None
        first.close()
        assert wait_for(lambda: svc.session_count() == 0)

        second = _dial(svc)
        prompt = decode(second.readline(timeout=3.0) or "")
        assert prompt.content == TXT_PROMPT
        second.close()


def test_abrupt_disconnect_announces_leave_once() -> None:
    with running_server() as svc:
        alice = _dial(svc)
        alice.write("alice\n")
        assert _read_until(alice, "Welcome to relayd!")

        bob = _dial(svc)
        bob.write("bob\n")
        assert _read_until(bob, "Welcome to relayd!")
        assert _read_until(alice, "bob joined the chat")

        # Drop the socket without a LEAVE frame.
        bob.close()
        assert _read_until(alice, "bob left the chat")[-1].endswith("bob left the chat\n")
        assert wait_for(lambda: "bob" not in svc.directory)

        extra = []
        line = alice.readline(timeout=1.0)
        while line is not None:
            extra.append(line)
            line = alice.readline(timeout=1.0)
        assert not any("left the chat" in f for f in extra)
        assert svc.stats_manager.get("leaves") == 1
        alice.close()


def test_invalid_identity_disconnects() -> None:
    with running_server() as svc:
        t = _dial(svc)
        assert t.readline(timeout=3.0) is not None
        t.write("x!\n")
        reply = decode(t.readline(timeout=3.0) or "")
        assert reply.kind == T_ERROR
        assert t.readline(timeout=3.0) is None
        assert wait_for(lambda: svc.session_count() == 0)
        t.close()


def test_stop_closes_sessions() -> None:
    with running_server() as svc:
        alice = _dial(svc)
        alice.write("alice\n")
        assert _read_until(alice, "Welcome to relayd!")

        svc.stop()
        svc.stop()

        assert svc.address is None
        assert svc.session_count() == 0
        assert svc.history.closed
        # Drain anything still buffered, then EOF.
        for _ in range(10):
            if alice.readline(timeout=2.0) is None:
                break
        else:
            raise AssertionError("connection stayed open after stop")
        alice.close()


def test_unterminated_frame_before_half_close_is_relayed() -> None:
    with running_server() as svc:
        alice = _dial(svc)
        alice.write("alice\n")
        assert _read_until(alice, "Welcome to relayd!")

        bob = _dial(svc)
        bob.write("bob\n")
        assert _read_until(bob, "Welcome to relayd!")

        bob.write("BROADCAST|bob||bye")
        bob.sock.shutdown(socket.SHUT_WR)

        seen = _read_until(alice, "bob left the chat")
        contents = [decode(line).content for line in seen]
        assert "bye" in contents
        assert contents.index("bye") < contents.index("bob left the chat")
        bob.close()
        alice.close()


def test_overlong_line_drops_session() -> None:
    with running_server(max_line_bytes=64) as svc:
        t = _dial(svc)
        t.write("alice\n")
        assert _read_until(t, "Welcome to relayd!")

        t.write("BROADCAST|alice||" + "x" * 200)
        assert wait_for(lambda: "alice" not in svc.directory)
        t.close()
