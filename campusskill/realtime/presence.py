"""
Presence registry: which users are online and through which connections.

In-process only. A deployment running several hub processes would put a
shared store behind the same register/unregister/lookup interface.
"""
import logging
from typing import Dict, List, Set

logger = logging.getLogger(__name__)


class PresenceRegistry:

    def __init__(self):
        self._connections: Dict[int, Set[str]] = {}

    def register(self, user_id: int, connection_id: str) -> None:
        self._connections.setdefault(user_id, set()).add(connection_id)

    def unregister(self, user_id: int, connection_id: str) -> None:
        """Drop one connection; the user stays online while any other remains."""
        connections = self._connections.get(user_id)
        if not connections:
            return
        connections.discard(connection_id)
        if not connections:
            del self._connections[user_id]

    def lookup(self, user_id: int) -> Set[str]:
        return set(self._connections.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return user_id in self._connections

    def online_users(self) -> List[int]:
        return sorted(self._connections)

    def __len__(self) -> int:
        return sum(len(c) for c in self._connections.values())
