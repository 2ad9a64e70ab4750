import json
import secrets
from typing import Any, Callable, Dict, List, Optional, Tuple

from broadcast import Broadcaster
from challenges import get_random_challenge
from connections import Connection, ConnectionRegistry
from constants import (
    REASON_OPPONENT_LEFT,
    REASON_YOU_LEFT,
    ROOM_ID_ATTEMPTS,
    ROOM_ID_BYTES,
    SESSION_TIME_BUDGET_SECONDS,
)
from errors import AlreadyInRoom, JoinError, MalformedMessage, MissingIdentity, RoomFull
from logging_config import get_logger
from persistence import SnapshotWriter
from presence import Presence, PresenceTracker
from schemas.rooms import Member, Outcome, Phase, Room
from store import RoomStore

logger = get_logger(__name__)


def new_room_id() -> str:
    return secrets.token_hex(ROOM_ID_BYTES)


def parse_envelope(raw: Any) -> Tuple[str, Dict[str, Any]]:
    """Split an inbound frame into its message type and payload.

    ``raw`` may be text or UTF-8 bytes.
    Raises ``MalformedMessage`` with ``invalid_json`` when the frame does not
    parse, or ``missing_type`` when it carries no type.
    """
    try:
        message = json.loads(raw)
    except (ValueError, TypeError, RecursionError):
        raise MalformedMessage("invalid_json")
    if not isinstance(message, dict):
        raise MalformedMessage("missing_type")
    kind = message.get("type") or message.get("kind")
    if not kind or not isinstance(kind, str):
        raise MalformedMessage("missing_type")
    payload = message.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    return kind, payload


class RoomCoordinator:
    """Drives the room lifecycle: create, join/rejoin, leave, disconnect and relay.

    Every operation is synchronous. Handlers never await, so each one runs
    to completion on the event loop and no other event sees a room halfway
    through a change. Outbound messages are queued per connection and
    snapshots are written by the ``SnapshotWriter`` task, so neither holds
    up the next event.
    """

    def __init__(
        self,
        store: RoomStore,
        registry: ConnectionRegistry,
        presence: PresenceTracker,
        broadcaster: Broadcaster,
        persistence: SnapshotWriter,
        challenge_factory: Callable[[], Any] = get_random_challenge,
        room_id_factory: Callable[[], str] = new_room_id,
        session_time_budget: int = SESSION_TIME_BUDGET_SECONDS,
    ):
        self.store = store
        self.registry = registry
        self.presence = presence
        self.broadcaster = broadcaster
        self.persistence = persistence
        self.challenge_factory = challenge_factory
        self.room_id_factory = room_id_factory
        self.session_time_budget = session_time_budget
        self._handlers: Dict[str, Callable[[str, Dict[str, Any]], None]] = {
            "create_room": self._on_create_room,
            "list_rooms": self._on_list_rooms,
            "join_room": self._on_join_room,
            "leave_room": self._on_leave_room,
            "chat_message": self._on_chat_message,
            "relay": self._on_relay,
        }

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, connection: Connection) -> None:
        self.registry.register(connection)
        self.broadcaster.send(connection.connection_id, "welcome", {"socketId": connection.connection_id})
        logger.info(f"Connected: {connection.connection_id}")

    def disconnect(self, connection_id: str) -> Optional[Outcome]:
        """Forget a closed connection and treat it as leaving its room, without a reply."""
        self.registry.unregister(connection_id)
        logger.info(f"Disconnected: {connection_id}")
        presence = self.presence.release(connection_id)
        if presence is None:
            return None
        room = self.store.get(presence.room_id)
        member = room.members.get(presence.email) if room is not None else None
        if member is None or member.connection_id != connection_id:
            logger.warning(f"Stale presence for connection {connection_id}: {presence}")
            return None
        return self._depart(room, member, requester=None)

    def handle_message(self, connection_id: str, raw: Any) -> None:
        try:
            kind, payload = parse_envelope(raw)
        except MalformedMessage as e:
            logger.debug(f"Malformed message from connection {connection_id}: {e.code}")
            self.broadcaster.send(connection_id, "error", {"message": e.code})
            return

        handler = self._handlers.get(kind)
        if handler is None:
            logger.debug(f"Unknown message type {kind!r} from connection {connection_id}")
            self.broadcaster.send(connection_id, "error", {"message": "unknown_type", "type": kind})
            return

        logger.debug(f"Handling {kind} from connection {connection_id}")
        try:
            handler(connection_id, payload)
        except Exception as e:
            logger.error(f"Error handling {kind} from connection {connection_id}: {e}", exc_info=True)
            self.broadcaster.send(connection_id, "error", {"message": "internal_error"})

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_room(self, connection_id: Optional[str] = None) -> Room:
        room = self.store.create(self._allocate_room_id(), self.challenge_factory())
        if connection_id is not None:
            self.broadcaster.send(connection_id, "room_created", {"roomId": room.id, "challenge": room.challenge})
        self._publish_listing()
        self._persist()
        return room

    def list_rooms(self) -> List[Dict[str, Any]]:
        return [summary.model_dump(by_alias=True) for summary in self.store.summaries()]

    def join_room(self, connection_id: str, room_id: Any, user_data: Any) -> Room:
        """Join or rejoin ``room_id`` as the party in ``user_data``.

        Raises ``MissingIdentity``, ``RoomNotFound``, ``RoomFull`` or
        ``AlreadyInRoom`` without changing anything.
        """
        email = user_data.get("email") if isinstance(user_data, dict) else None
        if not email or not isinstance(email, str):
            raise MissingIdentity()
        room = self.store.require(room_id)

        member = room.members.get(email)
        if member is not None:
            self._check_connection(connection_id, room, email)
            self._rejoin(room, member, connection_id, user_data)
        else:
            if room.is_full:
                raise RoomFull(room.id)
            self._check_connection(connection_id, room, email)
            other_room = self.presence.room_of(email)
            if other_room is not None and other_room != room.id and other_room in self.store:
                raise AlreadyInRoom(other_room)

            room.add_member(email, user_data, connection_id)
            self.presence.bind(connection_id, room.id, email)
            self.broadcaster.send(connection_id, "joined_room", self._room_state(room))
            self.broadcaster.broadcast_room(room, "user_joined", {"userData": user_data}, exclude=email)
            logger.info(f"{email} joined room {room.id}")

        self._publish_listing()

        if room.phase == Phase.WAITING and room.is_full:
            room.start()
            self.broadcaster.broadcast_room(room, "game_started", {"time": self.session_time_budget})
            logger.info(f"Game started in room {room.id}")

        self._persist()
        return room

    def leave_room(self, connection_id: str, room_id: Any) -> Optional[Outcome]:
        room = self.store.get(room_id)
        if room is None:
            return None
        member = room.member_by_connection(connection_id)
        if member is None:
            return None
        return self._depart(room, member, requester=connection_id)

    def relay_chat(self, connection_id: str, room_id: Any, message: Any) -> int:
        if not message:
            return 0
        found = self._sender(connection_id, room_id)
        if found is None:
            return 0
        room, sender = found
        return self.broadcaster.broadcast_room(
            room,
            "chat_message",
            {"sender": sender.profile.get("fullName"), "message": message},
            exclude=sender.email,
        )

    def relay_event(self, connection_id: str, room_id: Any, data: Any) -> int:
        if data is None:
            return 0
        found = self._sender(connection_id, room_id)
        if found is None:
            return 0
        room, sender = found
        return self.broadcaster.broadcast_room(
            room,
            "relay",
            {"roomId": room.id, "sender": sender.email, "payload": data},
            exclude=sender.email,
        )

    def restore(self, records: List[Dict[str, Any]]) -> int:
        """Rebuild live rooms from a snapshot. Members stay unbound until they rejoin."""
        self.presence.clear()
        rooms = self.store.restore(records)
        for room in rooms:
            self.presence.track(room)
        return len(rooms)

    # ------------------------------------------------------------------
    # Message handlers
    # ------------------------------------------------------------------

    def _on_create_room(self, connection_id: str, payload: Dict[str, Any]) -> None:
        self.create_room(connection_id)

    def _on_list_rooms(self, connection_id: str, payload: Dict[str, Any]) -> None:
        self.broadcaster.send(connection_id, "rooms_list", {"rooms": self.list_rooms()})

    def _on_join_room(self, connection_id: str, payload: Dict[str, Any]) -> None:
        try:
            self.join_room(connection_id, payload.get("roomId"), payload.get("userData"))
        except JoinError as e:
            logger.info(f"Join rejected for connection {connection_id}: {e}")
            self.broadcaster.send(connection_id, "join_error", e.to_payload())

    def _on_leave_room(self, connection_id: str, payload: Dict[str, Any]) -> None:
        room_id = payload.get("roomId")
        if not room_id:
            return
        self.leave_room(connection_id, room_id)

    def _on_chat_message(self, connection_id: str, payload: Dict[str, Any]) -> None:
        self.relay_chat(connection_id, payload.get("roomId"), payload.get("message"))

    def _on_relay(self, connection_id: str, payload: Dict[str, Any]) -> None:
        self.relay_event(connection_id, payload.get("roomId"), payload.get("payload"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _allocate_room_id(self) -> str:
        for _ in range(ROOM_ID_ATTEMPTS):
            candidate = self.room_id_factory()
            if candidate not in self.store:
                return candidate
        raise RuntimeError("Unable to generate unique room id")

    def _check_connection(self, connection_id: str, room: Room, email: str) -> None:
        # One connection speaks for one party in one room
        current = self.presence.lookup(connection_id)
        if current is not None and current != Presence(room.id, email):
            raise AlreadyInRoom(current.room_id)

    def _rejoin(self, room: Room, member: Member, connection_id: str, user_data: Dict[str, Any]) -> None:
        previous = member.connection_id
        if previous is not None and previous != connection_id:
            self.presence.release(previous)
        member.connection_id = connection_id
        member.profile = user_data
        self.presence.bind(connection_id, room.id, member.email)
        self.broadcaster.send(connection_id, "joined_room", self._room_state(room))
        logger.info(f"{member.email} rejoined room {room.id}")

    def _depart(self, room: Room, member: Member, requester: Optional[str]) -> Optional[Outcome]:
        room.remove_member(member.email)
        self.presence.forget(member.email, member.connection_id)

        outcome = None
        if room.phase == Phase.ACTIVE and room.members:
            winner = next(iter(room.members.values()))
            outcome = Outcome(winner=winner.email, loser=member.email, reason=REASON_OPPONENT_LEFT)
            self.store.archive(room, outcome, departed=member)
            self.presence.forget_room(room)
            result = {"winner": winner.profile, "loser": member.profile}
            self.broadcaster.broadcast_room(room, "game_ended", {**result, "reason": REASON_OPPONENT_LEFT})
            if requester is not None:
                self.broadcaster.send(requester, "game_ended", {**result, "reason": REASON_YOU_LEFT})
            logger.info(f"Game ended in {room.id}: Winner {winner.email}, Loser {member.email}")
        else:
            self.broadcaster.broadcast_room(room, "user_left", {"userData": member.profile, "users": room.profiles()})
            if requester is not None:
                self.broadcaster.send(requester, "left_room", {"roomId": room.id})
            logger.info(f"{member.email} left room {room.id}")
            if not room.members:
                self.store.delete(room.id)

        self._publish_listing()
        self._persist()
        return outcome

    def _sender(self, connection_id: str, room_id: Any) -> Optional[Tuple[Room, Member]]:
        room = self.store.get(room_id)
        if room is None:
            return None
        sender = room.member_by_connection(connection_id)
        if sender is None:
            return None
        return room, sender

    def _room_state(self, room: Room) -> Dict[str, Any]:
        return {
            "roomId": room.id,
            "users": room.profiles(),
            "challenge": room.challenge,
            "started": room.started,
            "phase": room.phase.value,
        }

    def _publish_listing(self) -> None:
        self.broadcaster.broadcast_all("rooms_list", {"rooms": self.list_rooms()})

    def _persist(self) -> None:
        self.persistence.schedule(self.store.snapshot())
