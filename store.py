from typing import Any, Dict, Iterator, List, Optional

from errors import RoomNotFound
from logging_config import get_logger
from schemas.rooms import HistoryRecord, Member, Outcome, Room, RoomSummary

logger = get_logger(__name__)


class RoomStore:
    """Authoritative in-memory table of live rooms, plus the history of ended ones.

    Only durable room data lives here. Live connection handles are kept by
    the ``ConnectionRegistry`` and joined by connection id.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._history: Dict[str, HistoryRecord] = {}

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def create(self, room_id: str, challenge: Any) -> Room:
        if room_id in self._rooms:
            raise ValueError(f"Room {room_id} already exists")
        room = Room(id=room_id, challenge=challenge)
        self._rooms[room_id] = room
        logger.info(f"Room {room_id} created")
        return room

    def get(self, room_id: Any) -> Optional[Room]:
        if not isinstance(room_id, str):
            return None
        return self._rooms.get(room_id)

    def require(self, room_id: Any) -> Room:
        room = self.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def delete(self, room_id: str) -> Optional[Room]:
        room = self._rooms.pop(room_id, None)
        if room is not None:
            logger.info(f"Room {room_id} removed")
        return room

    def archive(self, room: Room, outcome: Outcome, departed: Optional[Member] = None) -> HistoryRecord:
        """End ``room`` with ``outcome`` and move it from the live table to history.

        ``departed`` is the member who already left; it is listed in the
        record next to the remaining members.
        """
        room.end(outcome)
        self._rooms.pop(room.id, None)
        users = room.profiles()
        if departed is not None:
            users.append(departed.profile)
        record = HistoryRecord(
            room_id=room.id,
            challenge=room.challenge,
            users=users,
            outcome=outcome,
            started_at=room.started_at,
        )
        self._history[room.id] = record
        logger.info(f"Room {room.id} archived: winner={outcome.winner}, loser={outcome.loser}, reason={outcome.reason}")
        return record

    def history(self, room_id: str) -> Optional[HistoryRecord]:
        return self._history.get(room_id)

    def history_records(self) -> List[HistoryRecord]:
        return list(self._history.values())

    def summaries(self) -> List[RoomSummary]:
        return [room.summary() for room in self._rooms.values()]

    def snapshot(self) -> List[Dict[str, Any]]:
        return [room.to_record() for room in self._rooms.values()]

    def restore(self, records: List[Dict[str, Any]]) -> List[Room]:
        """Replace the live table with rooms rebuilt from ``records``.

        Records that cannot be rebuilt are skipped and logged.
        """
        self._rooms = {}
        for record in records:
            try:
                room = Room.from_record(record)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping unreadable room record: {e}")
                continue
            self._rooms[room.id] = room
        logger.info(f"Restored {len(self._rooms)} rooms")
        return list(self._rooms.values())
