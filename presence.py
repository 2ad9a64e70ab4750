from typing import Dict, NamedTuple, Optional

from logging_config import get_logger
from schemas.rooms import Room

logger = get_logger(__name__)


class Presence(NamedTuple):
    room_id: str
    email: str


class PresenceTracker:
    """Indexes which room each connection and each party belongs to.

    Kept in step with room membership by the coordinator so a closed
    connection resolves to its room without scanning every room.
    """

    def __init__(self):
        self._by_connection: Dict[str, Presence] = {}
        self._by_party: Dict[str, str] = {}

    def bind(self, connection_id: str, room_id: str, email: str) -> None:
        self._by_connection[connection_id] = Presence(room_id, email)
        self._by_party[email] = room_id
        logger.debug(f"Bound connection {connection_id} to {email} in room {room_id}")

    def release(self, connection_id: Optional[str]) -> Optional[Presence]:
        if connection_id is None:
            return None
        return self._by_connection.pop(connection_id, None)

    def forget(self, email: str, connection_id: Optional[str] = None) -> None:
        self._by_party.pop(email, None)
        if connection_id is not None:
            presence = self._by_connection.get(connection_id)
            if presence is not None and presence.email == email:
                del self._by_connection[connection_id]

    def forget_room(self, room: Room) -> None:
        for member in room.members.values():
            self.forget(member.email, member.connection_id)

    def track(self, room: Room) -> None:
        """Index every member of ``room``, bound or not."""
        for member in room.members.values():
            self._by_party[member.email] = room.id
            if member.connection_id is not None:
                self._by_connection[member.connection_id] = Presence(room.id, member.email)

    def lookup(self, connection_id: str) -> Optional[Presence]:
        return self._by_connection.get(connection_id)

    def room_of(self, email: str) -> Optional[str]:
        return self._by_party.get(email)

    def clear(self) -> None:
        self._by_connection.clear()
        self._by_party.clear()
