from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from constants import MAX_MEMBERS
from errors import RoomFull


def _now() -> str:
    return datetime.now().isoformat()


class Phase(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    ENDED = "ended"


class WireModel(BaseModel):
    """Models sent to clients use camelCase keys, like the WebSocket payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Member(BaseModel):
    email: str
    profile: Dict[str, Any] = Field(default_factory=dict)
    # None while the party has no live connection (disconnected or restored from a snapshot)
    connection_id: Optional[str] = None


class Outcome(WireModel):
    winner: str
    loser: str
    reason: str


class RoomSummary(WireModel):
    room_id: str
    user_count: int
    challenge: Any = None


class Room(BaseModel):
    id: str
    challenge: Any = None
    members: Dict[str, Member] = Field(default_factory=dict)
    phase: Phase = Phase.WAITING
    created_at: str = Field(default_factory=_now)
    started_at: Optional[str] = None
    outcome: Optional[Outcome] = None

    @property
    def started(self) -> bool:
        return self.phase != Phase.WAITING

    @property
    def is_full(self) -> bool:
        return len(self.members) >= MAX_MEMBERS

    def add_member(self, email: str, profile: Dict[str, Any], connection_id: Optional[str]) -> Member:
        if email in self.members:
            raise ValueError(f"{email} is already a member of room {self.id}")
        if self.is_full:
            raise RoomFull(self.id)
        member = Member(email=email, profile=profile, connection_id=connection_id)
        self.members[email] = member
        return member

    def remove_member(self, email: str) -> Optional[Member]:
        return self.members.pop(email, None)

    def member_by_connection(self, connection_id: str) -> Optional[Member]:
        for member in self.members.values():
            if member.connection_id == connection_id:
                return member
        return None

    def profiles(self) -> List[Dict[str, Any]]:
        return [member.profile for member in self.members.values()]

    def start(self) -> None:
        if self.phase != Phase.WAITING:
            raise ValueError(f"Room {self.id} cannot start from phase {self.phase.value}")
        self.phase = Phase.ACTIVE
        self.started_at = _now()

    def end(self, outcome: Outcome) -> None:
        if self.phase != Phase.ACTIVE or self.outcome is not None:
            raise ValueError(f"Room {self.id} cannot end from phase {self.phase.value}")
        self.phase = Phase.ENDED
        self.outcome = outcome

    def summary(self) -> RoomSummary:
        return RoomSummary(room_id=self.id, user_count=len(self.members), challenge=self.challenge)

    def to_record(self) -> Dict[str, Any]:
        """Durable form of the room. Connection ids are never part of it."""
        return {
            "roomId": self.id,
            "id": self.id,
            "challenge": self.challenge,
            "phase": self.phase.value,
            "started": self.started,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "users": [
                {"email": member.email, "userData": member.profile}
                for member in self.members.values()
            ],
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Room":
        """Rebuild a room from its durable form with every member unbound.

        Accepts records written before ``phase`` existed, in which case the
        ``started`` flag decides between waiting and active.
        """
        room_id = record.get("roomId") or record.get("id")
        if not room_id:
            raise ValueError("Room record has no id")

        phase_value = record.get("phase")
        if phase_value is None:
            phase = Phase.ACTIVE if record.get("started") else Phase.WAITING
        else:
            phase = Phase(phase_value)
        if phase == Phase.ENDED:
            raise ValueError(f"Room {room_id} is already ended")

        users = record.get("users") or []
        if len(users) > MAX_MEMBERS:
            raise ValueError(f"Room {room_id} has {len(users)} members")

        members: Dict[str, Member] = {}
        for user in users:
            member = Member(email=user["email"], profile=user.get("userData") or {})
            members[member.email] = member

        return cls(
            id=str(room_id),
            challenge=record.get("challenge"),
            members=members,
            phase=phase,
            created_at=record.get("createdAt") or _now(),
            started_at=record.get("startedAt"),
        )


class HistoryRecord(WireModel):
    room_id: str
    challenge: Any = None
    users: List[Dict[str, Any]]
    outcome: Outcome
    started_at: Optional[str] = None
    completed_at: str = Field(default_factory=_now)


class RoomDetailsResponse(WireModel):
    room_id: str
    challenge: Any = None
    phase: Phase
    started: bool
    user_count: int
    connected_count: int
    users: List[Dict[str, Any]]
    created_at: str
    started_at: Optional[str] = None
