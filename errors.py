from typing import Optional


class CoordinatorError(Exception):
    """Base class for every error the room coordinator reports or logs."""

    code = "internal_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)


class MalformedMessage(CoordinatorError):
    """Inbound frame is not valid JSON or carries no message type."""

    code = "invalid_json"

    def __init__(self, code: str = "invalid_json"):
        self.code = code
        super().__init__(code)


class JoinError(CoordinatorError):
    """Join rejected; reported to the requester as ``join_error``."""

    def to_payload(self) -> dict:
        return {"message": self.code}


class RoomNotFound(JoinError):
    code = "room_not_found"

    def __init__(self, room_id: Optional[str] = None):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class RoomFull(JoinError):
    code = "room_full"

    def __init__(self, room_id: Optional[str] = None):
        self.room_id = room_id
        super().__init__(f"Room {room_id} is full")


class MissingIdentity(JoinError):
    code = "missing_email"


class AlreadyInRoom(JoinError):
    code = "already_in_room"

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Already a member of room {room_id}")

    def to_payload(self) -> dict:
        return {"message": self.code, "roomId": self.room_id}


class DeliveryFailure(CoordinatorError):
    code = "delivery_failure"


class PersistenceFailure(CoordinatorError):
    code = "persistence_failure"
