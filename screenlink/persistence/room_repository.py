from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional

from screenlink.models.room_info import RoomInfo


class RoomRepository(ABC):
    @abstractmethod
    async def create(self, room: RoomInfo) -> None:
        """Creates a new Room."""
        ...

    @abstractmethod
    async def get(self, code: str) -> Optional[RoomInfo]:
        """Gets a Room from its code."""
        ...

    @abstractmethod
    async def delete(self, code: str) -> None:
        """Deletes a Room along with its membership."""
        ...

    @abstractmethod
    async def list_rooms(self) -> list[str]:
        """Returns the list of existing room codes."""
        ...

    @abstractmethod
    async def add_member(self, code: str, participant_id: str) -> None:
        """Adds a participant to the Room's member set."""
        ...

    @abstractmethod
    async def remove_member(self, code: str, participant_id: str) -> None:
        """Removes a participant from the Room's member set."""
        ...

    @abstractmethod
    async def list_members(self, code: str) -> list[str]:
        """Gets the list of participant IDs in a Room."""
        ...


class InMemoryRoomRepository(RoomRepository):
    """Process-local room store.

    None of the methods suspend, so each call is atomic with respect to the
    other coroutines sharing the event loop.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, RoomInfo] = {}

    async def create(self, room: RoomInfo) -> None:
        if room.code in self._rooms:
            raise ValueError(f"room {room.code} already exists")
        self._rooms[room.code] = room

    async def get(self, code: str) -> Optional[RoomInfo]:
        return self._rooms.get(code)

    async def delete(self, code: str) -> None:
        self._rooms.pop(code, None)

    async def list_rooms(self) -> list[str]:
        return list(self._rooms)

    async def add_member(self, code: str, participant_id: str) -> None:
        room = self._rooms.get(code)
        if room is None:
            raise ValueError(f"room {code} not found")
        room.members.add(participant_id)

    async def remove_member(self, code: str, participant_id: str) -> None:
        room = self._rooms.get(code)
        if room is not None:
            room.members.discard(participant_id)

    async def list_members(self, code: str) -> list[str]:
        room = self._rooms.get(code)
        if room is None:
            return []
        return sorted(room.members)
