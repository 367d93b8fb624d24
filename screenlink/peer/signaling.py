from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, suppress
from typing import Any, AsyncIterator, Callable, Iterable, Optional

import websockets
from pydantic import BaseModel, TypeAdapter, ValidationError

from screenlink.models.messages import ServerMessage
from screenlink.peer.negotiator import Negotiator
from screenlink.peer.remote_control import InputValidator, RemoteControl
from screenlink.settings import settings

logger = logging.getLogger(__name__)


class RelayClient:
    """A peer's persistent duplex connection to the signaling relay."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.relay_url
        self._ws = None
        self._adapter = TypeAdapter(ServerMessage)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def connect(self) -> None:
        self._ws = await websockets.connect(self.url)
        logger.info("connected to relay at %s", self.url)

    async def close(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        await ws.close()

    async def send(self, msg: BaseModel) -> None:
        if self._ws is None:
            raise RuntimeError("relay client is not connected")
        await self._ws.send(msg.model_dump_json(by_alias=True))

    async def messages(self) -> AsyncIterator[ServerMessage]:
        async for raw in self._ws:
            try:
                yield self._adapter.validate_json(raw)
            except ValidationError as exc:
                logger.warning("ignoring malformed relay message: %s", exc)


class PeerSession:
    """Wires a Negotiator to a RelayClient for one visit to a room.

    Entering connects to the relay, starts listening and joins the room.
    Leaving (normally or through an error, including one raised half-way
    through entering) stops the listener, tears down every remote
    connection and closes the relay connection, in that order.
    """

    def __init__(self,
                 room_code: str,
                 *,
                 relay_url: Optional[str] = None,
                 local_tracks: Iterable[Any] = (),
                 peer_connection_factory: Optional[Callable[[], Any]] = None):
        self.room_code = room_code
        self._relay_url = relay_url
        self._local_tracks = list(local_tracks)
        self._factory = peer_connection_factory
        self.client: Optional[RelayClient] = None
        self.negotiator: Optional[Negotiator] = None
        self.remote_control: Optional[RemoteControl] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._stack: Optional[AsyncExitStack] = None

    async def __aenter__(self):
        async with AsyncExitStack() as stack:
            client = await stack.enter_async_context(RelayClient(self._relay_url))
            negotiator = await stack.enter_async_context(Negotiator(
                client.send,
                local_tracks=self._local_tracks,
                peer_connection_factory=self._factory,
            ))
            self._listen_task = asyncio.create_task(self._listen(client, negotiator))
            stack.push_async_callback(self._stop_listening)
            await negotiator.join(self.room_code)
            self.client, self.negotiator = client, negotiator
            self.remote_control = RemoteControl(negotiator.send_input_event, validator=InputValidator())
            self._stack = stack.pop_all()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        stack, self._stack = self._stack, None
        if stack is not None:
            await stack.aclose()

    async def _listen(self, client: RelayClient, negotiator: Negotiator) -> None:
        try:
            async for msg in client.messages():
                try:
                    await negotiator.handle_signal(msg)
                except Exception:
                    logger.exception("error handling %s from relay", msg.type)
        except websockets.ConnectionClosed as exc:
            logger.warning("relay connection lost: %s", exc)
        else:
            logger.info("relay connection closed")

    async def _stop_listening(self) -> None:
        if self._listen_task:
            self._listen_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None
