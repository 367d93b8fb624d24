from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Iterable, Optional

from aiortc import RTCPeerConnection
from pydantic import BaseModel, ValidationError

from screenlink.models.input_event import InputEvent
from screenlink.models.messages import (
    ServerMessage,
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
    RelayError,
)
from screenlink.peer.candidate_buffer import CandidateBuffer
from screenlink.peer.events import (
    TransportEvent,
    ConnectionStateChanged,
    LocalCandidate,
    TrackReceived,
    ChannelReceived,
    ChannelOpened,
    ChannelClosed,
    ChannelMessage,
    ChannelFailed,
)
from screenlink.peer.input_channel import decode_event, send_on_channels, within_bounds
from screenlink.peer.records import ConnectionRegistry, NegotiationState, RemoteConnectionRecord
from screenlink.peer.transport import (
    candidate_payload,
    default_configuration,
    describe,
    parse_candidate,
    parse_description,
)
from screenlink.settings import settings

logger = logging.getLogger(__name__)

SendSignal = Callable[[BaseModel], Awaitable[None]]
InputCallback = Callable[[InputEvent, str], None]

TRANSPORT_DOWN = ("disconnected", "failed")


class Negotiator:
    """
    Drives one offer/answer handshake per remote participant.

    Responsible for:
    (1) reacting to relay messages (offers, answers, candidates, membership notices)
    (2) owning a RemoteConnectionRecord per remote participant, created idempotently
    (3) buffering candidates until the matching remote description is installed
    (4) the input channel: sending events out and handing received ones to a callback

    Every transport and channel callback is turned into a tagged event on the
    record's queue and handled by that record's dispatcher task, so records for
    different remote participants progress independently.
    """

    def __init__(self,
                 send: SendSignal,
                 *,
                 role: Optional[str] = None,
                 room_code: Optional[str] = None,
                 local_tracks: Iterable[Any] = (),
                 peer_connection_factory: Optional[Callable[[], Any]] = None,
                 records: Optional[ConnectionRegistry] = None,
                 candidates: Optional[CandidateBuffer] = None,
                 channel_label: str = settings.input_channel_label):
        self._send = send
        self.role = role
        self.room_code = room_code
        self.local_id: Optional[str] = None
        self._local_tracks = list(local_tracks)
        self._factory = peer_connection_factory or (lambda: RTCPeerConnection(default_configuration()))
        self.records = records if records is not None else ConnectionRegistry()
        self.candidates = candidates if candidates is not None else CandidateBuffer()
        self._channel_label = channel_label
        self._input_callback: Optional[InputCallback] = None
        # ordered by connection completion
        self.connected_users: list[str] = []

    @property
    def is_host(self) -> bool:
        return self.role == "host"

    @property
    def remote_stream(self) -> list:
        tracks: list = []
        for record in self.records:
            tracks.extend(record.tracks)
        return tracks

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- relay-facing API ---
    async def join(self, room_code: str) -> None:
        self.room_code = room_code
        await self._send(JoinRoom(room_code=room_code))

    async def request_connection(self) -> None:
        await self._send(RequestConnection(room_code=self.room_code))

    async def handle_signal(self, msg: ServerMessage) -> None:
        match msg:
            case Welcome(participant_id=pid):
                self.local_id = pid
            case RoomJoined(room_code=code, role=role):
                self.room_code = code
                self.role = role
                logger.info("joined room %s as %s", code, role)
            case ParticipantJoined(participant_id=pid):
                if self.is_host:
                    await self.start_call(pid)
                else:
                    await self.request_connection()
            case ConnectionRequested(requester_id=rid):
                # only the host answers connection requests
                if self.is_host:
                    await self.start_call(rid)
            case Offer(sender_id=sid, description=desc):
                await self.handle_offer(sid, desc)
            case Answer(sender_id=sid, description=desc):
                await self.handle_answer(sid, desc)
            case IceCandidate(sender_id=sid, candidate=cand):
                await self.handle_candidate(sid, cand)
            case RelayError(detail=detail):
                logger.warning("relay rejected a message: %s", detail)

    # --- records ---
    def create_connection(self, remote_id: str) -> RemoteConnectionRecord:
        """Returns the record for remote_id, creating it (and its transport) only once."""
        record = self.records.get(remote_id)
        if record is not None:
            return record

        record = RemoteConnectionRecord(remote_id=remote_id, transport=self._factory())
        self.records.add(record)
        self._watch_transport(record)
        for track in self._local_tracks:
            record.transport.addTrack(track)
        record.dispatcher = asyncio.create_task(self._dispatch(record))
        return record

    # --- handshake ---
    async def start_call(self, remote_id: str) -> RemoteConnectionRecord:
        record = self.create_connection(remote_id)
        if record.state is not NegotiationState.IDLE:
            logger.info("connection with %s is already %s; not offering again", remote_id, record.state.value)
            return record

        record.state = NegotiationState.OFFERING
        pc = record.transport
        if self.is_host and record.channel is None:
            channel = pc.createDataChannel(self._channel_label, ordered=True)
            self._watch_channel(record, channel)
            record.channel = channel

        try:
            offer = await pc.createOffer()
            await pc.setLocalDescription(offer)
        except Exception:
            logger.exception("could not create an offer for %s", remote_id)
            return record
        if record.finished:
            logger.info("connection with %s ended while creating an offer", remote_id)
            return record

        logger.info("sending offer to %s", remote_id)
        await self._send(SendOffer(room_code=self.room_code, target_id=remote_id,
                                   description=describe(pc.localDescription)))
        return record

    async def handle_offer(self, sender_id: str, description: dict[str, Any]) -> None:
        record = self.records.get(sender_id)
        if record is not None and record.transport.signalingState == "have-local-offer":
            # glare: the host's offer always wins
            if self.is_host:
                logger.warning("glare with %s: keeping our offer, dropping theirs", sender_id)
                # those candidates belong to the transport the guest is abandoning
                self.candidates.discard(sender_id)
                return
            logger.info("glare with %s: discarding our offer for the host's", sender_id)
            await self._teardown(record, NegotiationState.CLOSED, keep_candidates=True)

        record = self.create_connection(sender_id)
        pc = record.transport
        if pc.signalingState != "stable":
            logger.warning("dropping offer from %s in signaling state %s", sender_id, pc.signalingState)
            return
        if record.state is not NegotiationState.CONNECTED:
            record.state = NegotiationState.ANSWERING

        try:
            await pc.setRemoteDescription(parse_description(description))
            answer = await pc.createAnswer()
            await pc.setLocalDescription(answer)
        except Exception:
            logger.exception("could not answer offer from %s", sender_id)
            return
        if record.finished:
            logger.info("connection with %s ended while answering; not sending the answer", sender_id)
            return

        logger.info("sending answer to %s", sender_id)
        await self._send(SendAnswer(room_code=self.room_code, target_id=sender_id,
                                    description=describe(pc.localDescription)))
        if not record.finished:
            await self._drain_candidates(record)

    async def handle_answer(self, sender_id: str, description: dict[str, Any]) -> None:
        record = self.records.get(sender_id)
        if record is None:
            logger.warning("dropping answer from %s: no connection", sender_id)
            return
        pc = record.transport
        if pc.signalingState != "have-local-offer":
            logger.warning("dropping answer from %s in signaling state %s", sender_id, pc.signalingState)
            return

        try:
            await pc.setRemoteDescription(parse_description(description))
        except Exception:
            logger.exception("could not install answer from %s", sender_id)
            return

        if not record.finished:
            await self._drain_candidates(record)
        if record.finished:
            logger.info("connection with %s ended while installing its answer", sender_id)
            return
        record.state = NegotiationState.CONNECTED
        self._mark_connected(sender_id)

    async def handle_candidate(self, sender_id: str, candidate: dict[str, Any]) -> None:
        record = self.records.get(sender_id)
        if record is None or record.transport.remoteDescription is None:
            logger.debug("buffering candidate from %s", sender_id)
            self.candidates.add(sender_id, candidate)
            return
        await self._apply_candidate(record, candidate)

    async def _drain_candidates(self, record: RemoteConnectionRecord) -> None:
        for candidate in self.candidates.drain(record.remote_id):
            await self._apply_candidate(record, candidate)

    async def _apply_candidate(self, record: RemoteConnectionRecord, payload: dict[str, Any]) -> None:
        try:
            candidate = parse_candidate(payload)
            if candidate is None:
                return
            await record.transport.addIceCandidate(candidate)
        except Exception as exc:
            logger.warning("could not add candidate from %s: %r", record.remote_id, exc)

    def _mark_connected(self, remote_id: str) -> None:
        if remote_id not in self.connected_users:
            self.connected_users.append(remote_id)
            logger.info("connected to %s", remote_id)

    # --- input channel ---
    def set_input_callback(self, callback: Optional[InputCallback]) -> None:
        self._input_callback = callback

    def send_input_event(self, event: InputEvent, target_id: Optional[str] = None) -> int:
        """Best-effort send; returns the number of channels the event went out on."""
        if target_id is not None:
            record = self.records.get(target_id)
            channels = [record.channel] if record is not None else []
        else:
            channels = [record.channel for record in self.records]
        return send_on_channels(event, channels)

    def _receive_input(self, sender_id: str, data) -> None:
        try:
            event = decode_event(data)
        except ValidationError as exc:
            logger.warning("dropping malformed input event from %s: %s", sender_id, exc)
            return
        if not within_bounds(event):
            logger.warning("dropping %s from %s outside the 0-100 range", event.type, sender_id)
            return
        if self._input_callback is not None:
            self._input_callback(event, sender_id)

    # --- transport events ---
    def _watch_transport(self, record: RemoteConnectionRecord) -> None:
        pc = record.transport
        events = record.events

        @pc.on("icecandidate")
        def on_icecandidate(candidate):
            events.put_nowait(LocalCandidate(candidate))

        @pc.on("track")
        def on_track(track):
            events.put_nowait(TrackReceived(track))

        @pc.on("datachannel")
        def on_datachannel(channel):
            if channel.label != self._channel_label:
                logger.warning("ignoring unexpected channel %r from %s", channel.label, record.remote_id)
                return
            # listeners go on now so no channel event is missed
            self._watch_channel(record, channel)
            events.put_nowait(ChannelReceived(channel))

        @pc.on("connectionstatechange")
        def on_connectionstatechange():
            events.put_nowait(ConnectionStateChanged(pc.connectionState))

    def _watch_channel(self, record: RemoteConnectionRecord, channel) -> None:
        events = record.events

        @channel.on("open")
        def on_open():
            events.put_nowait(ChannelOpened(channel))

        @channel.on("close")
        def on_close():
            events.put_nowait(ChannelClosed(channel))

        @channel.on("message")
        def on_message(data):
            events.put_nowait(ChannelMessage(channel, data))

        @channel.on("error")
        def on_error(error):
            events.put_nowait(ChannelFailed(channel, error))

    async def _dispatch(self, record: RemoteConnectionRecord) -> None:
        while not record.finished:
            event = await record.events.get()
            try:
                await self._on_event(record, event)
            except Exception:
                logger.exception("error handling %s for %s", type(event).__name__, record.remote_id)

    async def _on_event(self, record: RemoteConnectionRecord, event: TransportEvent) -> None:
        rid = record.remote_id
        match event:
            case ConnectionStateChanged(state=state):
                logger.info("connection state with %s: %s", rid, state)
                if state in TRANSPORT_DOWN:
                    await self._teardown(record, NegotiationState.FAILED)
                elif state == "connected" and record.state is NegotiationState.ANSWERING:
                    record.state = NegotiationState.CONNECTED
                    self._mark_connected(rid)
            case LocalCandidate(candidate=candidate):
                if candidate is not None:
                    await self._send(SendCandidate(room_code=self.room_code, target_id=rid,
                                                   candidate=candidate_payload(candidate)))
            case TrackReceived(track=track):
                logger.info("received remote %s track from %s", getattr(track, "kind", "?"), rid)
                record.tracks.append(track)
            case ChannelReceived(channel=channel):
                logger.info("input channel received from %s", rid)
                record.channel = channel
            case ChannelOpened():
                logger.info("input channel opened for %s", rid)
            case ChannelClosed(channel=channel):
                logger.info("input channel closed for %s", rid)
                if record.channel is channel:
                    record.channel = None
            case ChannelMessage(channel=channel, data=data):
                if channel is not record.channel:
                    logger.warning("dropping message on a stale channel from %s", rid)
                    return
                self._receive_input(rid, data)
            case ChannelFailed(error=error):
                logger.error("input channel error for %s: %r", rid, error)

    # --- teardown ---
    async def _teardown(self,
                        record: RemoteConnectionRecord,
                        final_state: NegotiationState,
                        keep_candidates: bool = False) -> None:
        if record.finished:
            return
        rid = record.remote_id
        record.state = final_state
        if self.records.get(rid) is record:
            self.records.remove(rid)
        if not keep_candidates:
            self.candidates.discard(rid)
        if rid in self.connected_users:
            self.connected_users.remove(rid)

        channel, record.channel = record.channel, None
        if channel is not None:
            channel.remove_all_listeners()
            channel.close()
        record.transport.remove_all_listeners()
        await record.transport.close()

        task = record.dispatcher
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        logger.info("connection with %s %s", rid, final_state.value)

    async def close(self) -> None:
        for record in self.records:
            await self._teardown(record, NegotiationState.CLOSED)
        self.connected_users.clear()
