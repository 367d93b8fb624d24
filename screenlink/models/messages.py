from __future__ import annotations

from typing import Any, Annotated, Literal, Union

from pydantic import Field

from screenlink.models.camel_case import CamelCase
from screenlink.models.participant import Role

# ===== Participant -> Relay messages =====


class JoinRoom(CamelCase):
    type: Literal["join-room"] = "join-room"
    room_code: str


# Broadcast to the rest of the room; whoever is host answers with an offer
class RequestConnection(CamelCase):
    type: Literal["request-connection"] = "request-connection"
    room_code: str


class SendOffer(CamelCase):
    type: Literal["send-offer"] = "send-offer"
    room_code: str
    target_id: str
    description: dict[str, Any]


class SendAnswer(CamelCase):
    type: Literal["send-answer"] = "send-answer"
    room_code: str
    target_id: str
    description: dict[str, Any]


class SendCandidate(CamelCase):
    type: Literal["send-candidate"] = "send-candidate"
    room_code: str
    target_id: str
    candidate: dict[str, Any]


ClientMessage = Annotated[
    Union[
        JoinRoom,
        RequestConnection,
        SendOffer,
        SendAnswer,
        SendCandidate,
    ],
    Field(discriminator="type"),
]


# ===== Relay -> Participant messages =====


# Sent once on attach; carries the relay-assigned participant id
class Welcome(CamelCase):
    type: Literal["welcome"] = "welcome"
    participant_id: str


# Join acknowledgement, sent to the joiner only
class RoomJoined(CamelCase):
    type: Literal["room-joined"] = "room-joined"
    room_code: str
    participant_id: str
    role: Role


class ParticipantJoined(CamelCase):
    type: Literal["participant-joined"] = "participant-joined"
    participant_id: str


class ConnectionRequested(CamelCase):
    type: Literal["connection-requested"] = "connection-requested"
    requester_id: str


class Offer(CamelCase):
    type: Literal["offer"] = "offer"
    sender_id: str
    description: dict[str, Any]


class Answer(CamelCase):
    type: Literal["answer"] = "answer"
    sender_id: str
    description: dict[str, Any]


class IceCandidate(CamelCase):
    type: Literal["ice-candidate"] = "ice-candidate"
    sender_id: str
    candidate: dict[str, Any]


class RelayError(CamelCase):
    type: Literal["error"] = "error"
    detail: str


ServerMessage = Annotated[
    Union[
        Welcome,
        RoomJoined,
        ParticipantJoined,
        ConnectionRequested,
        Offer,
        Answer,
        IceCandidate,
        RelayError,
    ],
    Field(discriminator="type"),
]


# ===== Payloads carried opaquely by the relay =====


class SessionDescription(CamelCase):
    sdp: str
    type: Literal["offer", "answer"]


class IceCandidateInit(CamelCase):
    candidate: str = ""
    sdp_mid: str | None = None
    sdp_m_line_index: int | None = None
