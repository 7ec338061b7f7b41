"""Shared registry of who is online."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import Session


class IdentityDirectory:
    """
    Maps identity -> active Session.

    This is the single shared mutable structure of the relay. Mutations
    (``register_unique``/``unregister``) are atomic under one lock; reads used
    for delivery return copies taken under the same lock so callers never
    iterate the live mapping.

    The directory only references sessions for lookup. It never closes them.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("relayd.directory")
        self._lock = threading.Lock()
        self._by_identity: dict[str, Session] = {}

    def register_unique(self, identity: str, session: Session) -> bool:
        with self._lock:
            if identity in self._by_identity:
                return False
            self._by_identity[identity] = session
            total = len(self._by_identity)
        self.log.info("Registered identity=%s total=%s", identity, total)
        return True

    def unregister(self, identity: str, session: Session) -> bool:
        """Remove ``identity`` only if it still points at ``session``."""
        with self._lock:
            if self._by_identity.get(identity) is not session:
                return False
            del self._by_identity[identity]
            total = len(self._by_identity)
        self.log.info("Unregistered identity=%s total=%s", identity, total)
        return True

    def lookup(self, identity: str) -> Session | None:
        with self._lock:
            return self._by_identity.get(identity)

    def snapshot_identities(self) -> list[str]:
        with self._lock:
            names = list(self._by_identity.keys())
        return sorted(names)

    def all_sessions(self) -> list[Session]:
        with self._lock:
            return list(self._by_identity.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_identity)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._by_identity
