import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from pydantic import TypeAdapter, ValidationError

from screenlink.deps import get_relay_ws
from screenlink.errors import RoutingError
from screenlink.models.messages import ClientMessage, RelayError
from screenlink.service.relay import SignalingRelay

router = APIRouter()
logger = logging.getLogger(__name__)

adapter = TypeAdapter(ClientMessage)


@router.websocket("/ws")
async def relay_ws(
    websocket: WebSocket,
    relay: SignalingRelay = Depends(get_relay_ws),
):
    await websocket.accept()
    participant = await relay.attach(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            # Validate into a typed union instance
            try:
                msg = adapter.validate_json(raw)
            except ValidationError as exc:
                logger.warning("malformed message from %s: %s", participant.id, exc.errors(include_url=False))
                await participant.send_message(RelayError(detail="malformed message"))
                continue
            try:
                await relay.handle_incoming_message(participant, msg)
            except RoutingError as exc:
                logger.warning("dropping %s from %s: %s", msg.type, participant.id, exc)
                await participant.send_message(RelayError(detail=str(exc)))
    except WebSocketDisconnect:
        logger.info("web socket disconnected: pid=%s", participant.id)
    finally:
        await relay.detach(participant)
