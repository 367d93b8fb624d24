from __future__ import annotations

from typing import Optional

from fastapi import WebSocket
from pydantic import BaseModel


class Participant:
    """Relay-side representation of one attached participant.

    Holds the participant's WebSocket and provides helpers to send messages.
    A Participant is in at most one room at a time.
    """

    def __init__(self,
                 participant_id: str,
                 websocket: WebSocket) -> None:
        self.id = participant_id
        self.websocket: Optional[WebSocket] = websocket

    @property
    def is_attached(self) -> bool:
        return self.websocket is not None

    async def send_message(self, msg: BaseModel) -> None:
        assert self.is_attached, f"participant {self.id} is no longer attached"
        payload = msg.model_dump(by_alias=True)
        await self.websocket.send_json(payload)

    async def disconnect(self) -> None:
        if self.websocket is None:
            return
        websocket, self.websocket = self.websocket, None
        await websocket.close()
