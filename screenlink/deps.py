from __future__ import annotations
from fastapi import Request, WebSocket

from screenlink.service.relay import SignalingRelay
from screenlink.service.room_registry import RoomRegistry

def get_registry(req: Request) -> RoomRegistry:
    return req.app.state.registry

def get_relay_ws(ws: WebSocket) -> SignalingRelay:
    return ws.app.state.relay
