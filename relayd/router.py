from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import (
    SYSTEM_SENDER,
    T_BROADCAST,
    T_LEAVE,
    T_PRIVATE,
    T_USER_LIST,
    TXT_LISTING_PREFIX,
)
from .envelope import Message, error_message, system_message
from .util import one_line

if TYPE_CHECKING:
    from .service import RelayService
    from .session import Session


class MessageRouter:
    """
    Delivers messages between sessions.

    This class is responsible for:
    - Dispatching decoded messages by kind
    - Broadcast fan-out to every registered session
    - Directed delivery (recipient plus an echo to the sender)
    - Directory listings
    - Join/leave notices
    - Forwarding delivered traffic to the history sink

    No lock is held while writing to a session; fan-out iterates a snapshot
    taken from the directory.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("relayd.router")

    def dispatch(self, session: Session, msg: Message) -> None:
        """Entry point for each session's read loop."""
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX identity=%s kind=%s recipient=%s len=%s",
                session.identity,
                msg.kind,
                msg.recipient,
                len(msg.content),
            )

        if msg.kind == T_BROADCAST:
            self.broadcast(msg)
        elif msg.kind == T_PRIVATE:
            self.send_directed(session, msg)
        elif msg.kind == T_USER_LIST:
            self.send_directory_listing(session)
        elif msg.kind == T_LEAVE:
            self.log.info("LEAVE identity=%s", session.identity)
            session.close()
        else:
            self.hub.stats_manager.inc("dropped_kinds")
            self.log.warning(
                "Dropping unsupported kind=%s from identity=%s", msg.kind, session.identity
            )

    def broadcast(self, msg: Message) -> int:
        recipients = self.hub.directory.all_sessions()
        delivered = 0
        for other in recipients:
            if other.send(msg):
                delivered += 1

        self.hub.stats_manager.inc("broadcasts")
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Broadcast kind=%s sender=%s delivered=%s/%s",
                msg.kind,
                msg.sender,
                delivered,
                len(recipients),
            )
        self.hub.history.append(msg)
        return delivered

    def send_directed(self, session: Session, msg: Message) -> bool:
        recipient = msg.recipient or ""
        target = self.hub.directory.lookup(recipient)

        if target is None:
            self.hub.stats_manager.inc("directed_unreachable")
            self.log.info("Directed message from %s to absent %s", msg.sender, recipient)
            session.send(error_message(f"User '{recipient}' is not online."))
            return False

        target.send(msg)
        # Echo to the sender so its own view shows the sent message.
        session.send(msg)

        self.hub.stats_manager.inc("directed_delivered")
        self.log.debug("Directed %s -> %s", msg.sender, recipient)
        self.hub.history.append(msg)
        return True

    def send_directory_listing(self, session: Session) -> None:
        names = self.hub.directory.snapshot_identities()
        listing = Message(
            kind=T_USER_LIST,
            sender=SYSTEM_SENDER,
            content=TXT_LISTING_PREFIX + ", ".join(names),
        )
        self.hub.stats_manager.inc("listings_sent")
        session.send(listing)

    def on_joined(self, session: Session) -> None:
        identity = session.identity
        self.hub.stats_manager.inc("joins")
        self.broadcast(system_message(f"{identity} joined the chat"))

        # Config text may span lines; each notice must stay one frame.
        session.send(system_message(one_line(f"Welcome to {self.hub.config.server_name}!")))
        if self.hub.config.greeting:
            session.send(system_message(one_line(self.hub.config.greeting)))
        self.send_directory_listing(session)

    def on_left(self, identity: str) -> None:
        self.hub.stats_manager.inc("leaves")
        self.broadcast(system_message(f"{identity} left the chat"))
