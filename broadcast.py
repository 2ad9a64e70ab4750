from typing import Any, Dict, Optional

from connections import ConnectionRegistry
from errors import DeliveryFailure
from logging_config import get_logger
from schemas.rooms import Room

logger = get_logger(__name__)


def make_message(kind: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": kind, "payload": payload if payload is not None else {}}


class Broadcaster:
    """Best-effort delivery of messages to live connections.

    Members without a live connection are skipped, and a failed send is
    logged and skipped so the rest of the batch still goes out.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def send(self, connection_id: Optional[str], kind: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        connection = self.registry.get(connection_id)
        if connection is None:
            logger.debug(f"No live connection {connection_id} for {kind}, skipping")
            return False
        try:
            connection.send(make_message(kind, payload))
        except DeliveryFailure as e:
            logger.warning(f"Dropped {kind} for connection {connection_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error delivering {kind} to connection {connection_id}: {e}", exc_info=True)
            return False
        return True

    def broadcast_room(self, room: Room, kind: str, payload: Optional[Dict[str, Any]] = None, exclude: Optional[str] = None) -> int:
        """Send to every member of ``room`` except the party identified by ``exclude``."""
        delivered = 0
        for email, member in list(room.members.items()):
            if email == exclude:
                continue
            if self.send(member.connection_id, kind, payload):
                delivered += 1
        logger.debug(f"Broadcast {kind} to {delivered} members of room {room.id}")
        return delivered

    def broadcast_all(self, kind: str, payload: Optional[Dict[str, Any]] = None) -> int:
        delivered = 0
        for connection in self.registry:
            if self.send(connection.connection_id, kind, payload):
                delivered += 1
        logger.debug(f"Broadcast {kind} to {delivered} connections")
        return delivered
