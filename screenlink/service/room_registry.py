from __future__ import annotations

import logging
import secrets
from typing import Optional

from screenlink.models.participant import ParticipantInfo
from screenlink.models.room_info import RoomInfo
from screenlink.persistence.room_repository import RoomRepository
from screenlink.settings import settings

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Maps room codes to their membership and designated host.

    - The first participant to join a room that does not exist becomes its host
    - A participant belongs to at most one room at a time
    - When the host leaves, the room is deleted; there is no host re-election
    """

    def __init__(self, repo: RoomRepository, code_length: int = settings.room_code_length):
        self._repo = repo
        self._code_length = code_length
        # participant id -> room code
        self._membership: dict[str, str] = {}

    async def join(self, code: str, participant_id: str) -> ParticipantInfo:
        current = self._membership.get(participant_id)
        if current is not None and current != code:
            await self.leave(participant_id)

        room = await self._repo.get(code)
        if room is None:
            room = RoomInfo(code=code, host_id=participant_id)
            await self._repo.create(room)
            logger.info("room %s created with host %s", code, participant_id)
        await self._repo.add_member(code, participant_id)
        self._membership[participant_id] = code

        role = "host" if room.host_id == participant_id else "guest"
        logger.info("participant %s joined room %s as %s", participant_id, code, role)
        return ParticipantInfo(id=participant_id, role=role)

    async def leave(self, participant_id: str) -> list[str]:
        """Removes a participant from every room; returns codes of rooms deleted as a result."""
        self._membership.pop(participant_id, None)
        deleted: list[str] = []
        for code in await self._repo.list_rooms():
            room = await self._repo.get(code)
            if room is None:
                continue
            if room.host_id == participant_id:
                await self._delete_room(code)
                deleted.append(code)
            elif participant_id in room.members:
                await self._repo.remove_member(code, participant_id)
                logger.info("participant %s left room %s", participant_id, code)
        return deleted

    async def _delete_room(self, code: str) -> None:
        for pid in await self._repo.list_members(code):
            if self._membership.get(pid) == code:
                del self._membership[pid]
        await self._repo.delete(code)
        logger.info("room %s deleted after host departure", code)

    # ---- lookups ----
    async def get(self, code: str) -> Optional[RoomInfo]:
        return await self._repo.get(code)

    async def members(self, code: str) -> list[str]:
        return await self._repo.list_members(code)

    async def is_member(self, code: str, participant_id: str) -> bool:
        return participant_id in await self._repo.list_members(code)

    def room_of(self, participant_id: str) -> Optional[str]:
        return self._membership.get(participant_id)

    async def new_room_code(self) -> str:
        low = 10 ** (self._code_length - 1)
        while True:
            code = str(low + secrets.randbelow(9 * low))
            if await self._repo.get(code) is None:
                return code
