from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from coordinator import RoomCoordinator
from logging_config import get_logger
from schemas.rooms import HistoryRecord, RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_coordinator(request: Request) -> RoomCoordinator:
    return request.app.state.coordinator


@rooms_router.get("", response_model=List[RoomSummary])
async def list_rooms(coordinator: RoomCoordinator = Depends(get_coordinator)):
    """Same summaries the WebSocket ``rooms_list`` message carries."""
    return coordinator.store.summaries()


@rooms_router.get("/history/{room_id}", response_model=HistoryRecord)
async def get_room_history(room_id: str, coordinator: RoomCoordinator = Depends(get_coordinator)):
    record = coordinator.store.history(room_id)
    if record is None:
        logger.info(f"History request failed: Room {room_id} has no history record")
        raise HTTPException(status_code=404, detail="Room history not found")
    return record


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, coordinator: RoomCoordinator = Depends(get_coordinator)):
    """
    Get live room details.

    Returns:
    - room_id: Room identifier
    - challenge: Challenge assigned at creation
    - phase: waiting or active
    - user_count: Members, connected or not
    - connected_count: Members with a live connection
    - users: Member profiles in join order
    """
    room = coordinator.store.get(room_id)
    if room is None:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    connected_count = sum(
        1 for member in room.members.values() if member.connection_id in coordinator.registry
    )
    return RoomDetailsResponse(
        room_id=room.id,
        challenge=room.challenge,
        phase=room.phase,
        started=room.started,
        user_count=len(room.members),
        connected_count=connected_count,
        users=room.profiles(),
        created_at=room.created_at,
        started_at=room.started_at,
    )
