from __future__ import annotations

import logging
import secrets
from typing import Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from screenlink.errors import RoutingError
from screenlink.models.messages import (
    ClientMessage,
    JoinRoom,
    RequestConnection,
    SendOffer,
    SendAnswer,
    SendCandidate,
    Welcome,
    RoomJoined,
    ParticipantJoined,
    ConnectionRequested,
    Offer,
    Answer,
    IceCandidate,
)
from screenlink.service.participant import Participant
from screenlink.service.room_registry import RoomRegistry

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_urlsafe(12)}"


class SignalingRelay:
    """
    Routes connection-setup messages between participants of the same room.

    Payloads (descriptions, candidates) are forwarded untouched; the relay only
    looks at the room code and target id. Delivery is best-effort with no
    retries. Messages from one sender to one target keep their order because
    each inbound message is fully forwarded before the next is read.
    """

    def __init__(self, registry: RoomRegistry):
        self._registry = registry
        self._participants: Dict[str, Participant] = {}

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    # --- attachment ---
    async def attach(self, websocket: WebSocket) -> Participant:
        participant = Participant(new_id("p"), websocket)
        self._participants[participant.id] = participant
        logger.info("participant %s attached", participant.id)
        await self._deliver(participant, Welcome(participant_id=participant.id))
        return participant

    async def detach(self, participant: Participant) -> None:
        self._participants.pop(participant.id, None)
        participant.websocket = None
        deleted = await self._registry.leave(participant.id)
        logger.info("participant %s detached (rooms closed: %s)", participant.id, deleted or "none")

    async def shutdown(self) -> None:
        for participant in list(self._participants.values()):
            try:
                await participant.disconnect()
            except RuntimeError as exc:
                logger.debug("socket for %s already closed: %s", participant.id, exc)
        self._participants.clear()

    def get(self, participant_id: str) -> Optional[Participant]:
        return self._participants.get(participant_id)

    # --- Message dispatcher ---
    async def handle_incoming_message(self, sender: Participant, msg: ClientMessage) -> None:
        match msg:
            case JoinRoom(room_code=code):
                info = await self._registry.join(code, sender.id)
                # membership is updated before anyone is told about it
                await self._deliver(sender, RoomJoined(room_code=code, participant_id=sender.id, role=info.role))
                for pid in await self._registry.members(code):
                    if pid == sender.id:
                        continue
                    peer = self._participants.get(pid)
                    if peer is not None:
                        await self._deliver(peer, ParticipantJoined(participant_id=sender.id))
            case RequestConnection(room_code=code):
                await self._require_member(code, sender.id)
                logger.info("participant %s requests a connection in room %s", sender.id, code)
                for pid in await self._registry.members(code):
                    if pid == sender.id:
                        continue
                    peer = self._participants.get(pid)
                    if peer is not None:
                        await self._deliver(peer, ConnectionRequested(requester_id=sender.id))
            case SendOffer(room_code=code, target_id=tid, description=desc):
                await self._forward(sender, code, tid, Offer(sender_id=sender.id, description=desc))
            case SendAnswer(room_code=code, target_id=tid, description=desc):
                await self._forward(sender, code, tid, Answer(sender_id=sender.id, description=desc))
            case SendCandidate(room_code=code, target_id=tid, candidate=cand):
                await self._forward(sender, code, tid, IceCandidate(sender_id=sender.id, candidate=cand))

    async def _require_member(self, code: str, participant_id: str) -> None:
        if not await self._registry.is_member(code, participant_id):
            raise RoutingError(f"{participant_id} is not a member of room {code}")

    async def _forward(self, sender: Participant, code: str, target_id: str, msg: BaseModel) -> None:
        await self._require_member(code, sender.id)
        await self._require_member(code, target_id)
        target = self._participants.get(target_id)
        if target is None:
            raise RoutingError(f"{target_id} is not attached")
        logger.debug("%s %s -> %s in room %s", msg.type, sender.id, target_id, code)
        await self._deliver(target, msg)

    async def _deliver(self, target: Participant, msg: BaseModel) -> None:
        if not target.is_attached:
            logger.warning("dropping %s for detached participant %s", msg.type, target.id)
            return
        try:
            await target.send_message(msg)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.warning("lost %s for participant %s: %s", msg.type, target.id, exc)
