from fastapi import APIRouter, HTTPException, Depends

from screenlink.deps import get_registry
from screenlink.models.room_info import RoomCode, RoomSummary
from screenlink.service.room_registry import RoomRegistry

router = APIRouter()


@router.post("/rooms", response_model=RoomCode)
async def allocate_room_code(registry: RoomRegistry = Depends(get_registry)) -> RoomCode:
    # The room itself is created by the first join-room on the relay
    return RoomCode(code=await registry.new_room_code())


@router.get("/rooms/{code}", response_model=RoomSummary)
async def get_room(code: str, registry: RoomRegistry = Depends(get_registry)) -> RoomSummary:
    room = await registry.get(code)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomSummary(code=room.code, host_id=room.host_id, member_count=len(room.members))
