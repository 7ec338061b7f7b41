"""relayd-chat: a minimal terminal front end for RelayClient."""

from __future__ import annotations

import argparse
import sys
import threading

from .client import RelayClient
from .constants import CMD_EXIT, CMD_LIST_USERS, CMD_PRIVATE
from .envelope import format_display


def handle_input(client: RelayClient, line: str) -> bool:
    """Act on one line typed by the user. Returns False to quit."""
    text = line.strip()
    if not text:
        return True

    if text == CMD_EXIT:
        return False

    if text == CMD_LIST_USERS:
        client.request_directory_listing()
        return True

    if text == CMD_PRIVATE or text.startswith(CMD_PRIVATE + " "):
        parts = text.split(None, 2)
        if len(parts) < 3:
            print(f"usage: {CMD_PRIVATE} <user> <message>", file=sys.stderr)
            return True
        client.send_directed(parts[1], parts[2])
        return True

    client.send_broadcast(text)
    return True


def _printer(client: RelayClient, stop: threading.Event) -> None:
    while not stop.is_set():
        msg = client.poll(timeout=0.25)
        if msg is not None:
            print(format_display(msg), flush=True)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="relayd-chat", description="Chat on a relayd server")
    p.add_argument("identity", help="Username to claim (3-20 letters, digits or _)")
    p.add_argument("--host", default="localhost", help="Server host")
    p.add_argument("--port", type=int, default=8888, help="Server port")
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    client = RelayClient()
    if not client.connect(args.host, args.port):
        print(f"Could not connect to {args.host}:{args.port}", file=sys.stderr)
        raise SystemExit(1)

    if not client.authenticate(args.identity):
        client.drain(lambda m: print(format_display(m), file=sys.stderr))
        client.disconnect()
        raise SystemExit(1)

    client.start_listening()
    stop = threading.Event()
    printer = threading.Thread(target=_printer, args=(client, stop), daemon=True)
    printer.start()

    print(
        f"Type a message to broadcast; {CMD_PRIVATE} <user> <text>, "
        f"{CMD_LIST_USERS}, {CMD_EXIT}",
        flush=True,
    )
    try:
        for line in sys.stdin:
            if not client.connected or not handle_input(client, line):
                break
    except KeyboardInterrupt:
        pass
    finally:
        client.disconnect()
        stop.set()
        printer.join(timeout=1.0)
        client.drain(lambda m: print(format_display(m), flush=True))


if __name__ == "__main__":
    main()
