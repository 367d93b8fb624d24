"""In-memory stand-ins for aiortc transports and relay sockets.

FakePeerConnection/FakeDataChannel mimic the parts of aiortc's
RTCPeerConnection/RTCDataChannel the negotiator uses, including the
signaling-state rules. A FakeNetwork links an offerer and an answerer once
the answer is installed: channels open on both ends, tracks are delivered
and both transports report "connected".
"""
from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from aiortc import RTCSessionDescription
from aiortc.exceptions import InvalidStateError
from pydantic import TypeAdapter
from pyee.asyncio import AsyncIOEventEmitter

from screenlink.models.messages import (
    Answer,
    IceCandidate,
    Offer,
    SendAnswer,
    SendCandidate,
    SendOffer,
    ServerMessage,
)
from screenlink.peer.negotiator import Negotiator
from screenlink.service.relay import SignalingRelay

_ids = itertools.count(1)


@dataclass
class FakeTrack:
    kind: str = "video"


class FakeDataChannel(AsyncIOEventEmitter):
    def __init__(self, label: str, ordered: bool = True):
        super().__init__()
        self.label = label
        self.ordered = ordered
        self.readyState = "connecting"
        self.peer: Optional["FakeDataChannel"] = None
        self.sent: list = []

    def send(self, data) -> None:
        if self.readyState != "open":
            raise InvalidStateError
        self.sent.append(data)
        if self.peer is not None and self.peer.readyState == "open":
            self.peer.emit("message", data)

    def open(self) -> None:
        self.readyState = "open"
        self.emit("open")

    def close(self) -> None:
        if self.readyState == "closed":
            return
        self.readyState = "closed"
        self.emit("close")
        if self.peer is not None:
            self.peer.close()


class FakePeerConnection(AsyncIOEventEmitter):
    def __init__(self, network: "FakeNetwork"):
        super().__init__()
        self.id = str(next(_ids))
        self.network = network
        self.signalingState = "stable"
        self.connectionState = "new"
        self.localDescription: Optional[RTCSessionDescription] = None
        self.remoteDescription: Optional[RTCSessionDescription] = None
        self.channels: list[FakeDataChannel] = []
        self.local_tracks: list = []
        self.added_candidates: list = []
        self.rejected_ips: set[str] = set()
        self.closed = False

    def addTrack(self, track) -> None:
        self.local_tracks.append(track)

    def createDataChannel(self, label: str, ordered: bool = True) -> FakeDataChannel:
        channel = FakeDataChannel(label, ordered)
        self.channels.append(channel)
        return channel

    async def createOffer(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp=f"fake-offer {self.id}", type="offer")

    async def createAnswer(self) -> RTCSessionDescription:
        if self.signalingState != "have-remote-offer":
            raise InvalidStateError
        return RTCSessionDescription(sdp=f"fake-answer {self.id}", type="answer")

    async def setLocalDescription(self, description: RTCSessionDescription) -> None:
        self.localDescription = description
        self.signalingState = "have-local-offer" if description.type == "offer" else "stable"

    async def setRemoteDescription(self, description: RTCSessionDescription) -> None:
        if description.type == "offer":
            if self.signalingState != "stable":
                raise InvalidStateError
            self.remoteDescription = description
            self.signalingState = "have-remote-offer"
            return
        if self.signalingState != "have-local-offer":
            raise InvalidStateError
        self.remoteDescription = description
        self.signalingState = "stable"
        answerer = self.network.peers[description.sdp.split()[1]]
        self.network.link(self, answerer)

    async def addIceCandidate(self, candidate) -> None:
        if self.remoteDescription is None:
            raise InvalidStateError
        if candidate.ip in self.rejected_ips:
            raise ValueError(f"unreachable candidate {candidate.ip}")
        self.added_candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True
        self.signalingState = "closed"
        self.connectionState = "closed"

    def set_connection_state(self, state: str) -> None:
        self.connectionState = state
        self.emit("connectionstatechange")


class FakeNetwork:
    def __init__(self):
        self.peers: dict[str, FakePeerConnection] = {}
        self.created: list[FakePeerConnection] = []

    def create(self) -> FakePeerConnection:
        pc = FakePeerConnection(self)
        self.peers[pc.id] = pc
        self.created.append(pc)
        return pc

    def link(self, offerer: FakePeerConnection, answerer: FakePeerConnection) -> None:
        if answerer.closed:
            return
        pairs = []
        for channel in offerer.channels:
            remote = FakeDataChannel(channel.label, channel.ordered)
            channel.peer, remote.peer = remote, channel
            answerer.channels.append(remote)
            answerer.emit("datachannel", remote)
            pairs.append((channel, remote))
        for track in offerer.local_tracks:
            answerer.emit("track", track)
        for track in answerer.local_tracks:
            offerer.emit("track", track)
        for local, remote in pairs:
            local.open()
            remote.open()
        offerer.set_connection_state("connected")
        answerer.set_connection_state("connected")


def candidate(ip: str, port: int = 50000) -> dict[str, Any]:
    return {
        "candidate": f"candidate:1 1 udp 2130706431 {ip} {port} typ host",
        "sdpMid": "0",
        "sdpMLineIndex": 0,
    }


def as_delivered(msg, sender_id: str):
    """What the relay hands the target for a message sent by sender_id."""
    match msg:
        case SendOffer(description=desc):
            return Offer(sender_id=sender_id, description=desc)
        case SendAnswer(description=desc):
            return Answer(sender_id=sender_id, description=desc)
        case SendCandidate(candidate=cand):
            return IceCandidate(sender_id=sender_id, candidate=cand)
    raise AssertionError(f"not a relayed message: {msg!r}")


class Outbox:
    """Collects what a negotiator sends, for tests that play the relay by hand."""

    def __init__(self):
        self.messages: list = []

    async def send(self, msg) -> None:
        self.messages.append(msg)

    def take(self, kind) -> list:
        taken = [m for m in self.messages if isinstance(m, kind)]
        self.messages = [m for m in self.messages if not isinstance(m, kind)]
        return taken


class LoopbackSocket:
    """Relay-side socket whose frames are queued for an in-process peer."""

    def __init__(self):
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.received_types: list[str] = []
        self.closed = False

    async def send_json(self, payload: dict) -> None:
        if self.closed:
            raise RuntimeError("socket closed")
        self.received_types.append(payload["type"])
        self.inbox.put_nowait(payload)

    async def close(self, code: int = 1000) -> None:
        self.closed = True


@dataclass
class Peer:
    participant: Any
    negotiator: Negotiator
    socket: LoopbackSocket
    pump: asyncio.Task
    inputs: list = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.participant.id


async def attach_peer(relay: SignalingRelay, network: FakeNetwork, local_tracks=()) -> Peer:
    socket = LoopbackSocket()
    participant = await relay.attach(socket)

    async def send(msg):
        await relay.handle_incoming_message(participant, msg)

    negotiator = Negotiator(send, local_tracks=local_tracks, peer_connection_factory=network.create)
    adapter = TypeAdapter(ServerMessage)

    async def pump():
        while True:
            payload = await socket.inbox.get()
            await negotiator.handle_signal(adapter.validate_python(payload))

    peer = Peer(participant, negotiator, socket, asyncio.create_task(pump()))
    negotiator.set_input_callback(lambda event, sender: peer.inputs.append((event, sender)))
    return peer


async def detach_peer(relay: SignalingRelay, peer: Peer) -> None:
    peer.pump.cancel()
    try:
        await peer.pump
    except asyncio.CancelledError:
        pass
    await peer.negotiator.close()
    await relay.detach(peer.participant)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)
