from __future__ import annotations

from typing import Any, Optional

from aiortc import RTCConfiguration, RTCIceCandidate, RTCIceServer, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from screenlink.models.messages import IceCandidateInit, SessionDescription
from screenlink.settings import settings


def default_configuration() -> RTCConfiguration:
    return RTCConfiguration(
        iceServers=[RTCIceServer(urls=url) for url in settings.ice_servers]
    )


def describe(description: RTCSessionDescription) -> dict[str, Any]:
    """Session description in the browser's RTCSessionDescriptionInit shape."""
    return SessionDescription(sdp=description.sdp, type=description.type).dump()


def parse_description(payload: dict[str, Any]) -> RTCSessionDescription:
    desc = SessionDescription.model_validate(payload)
    return RTCSessionDescription(sdp=desc.sdp, type=desc.type)


def candidate_payload(candidate: RTCIceCandidate) -> dict[str, Any]:
    return IceCandidateInit(
        candidate="candidate:" + candidate_to_sdp(candidate),
        sdp_mid=candidate.sdpMid,
        sdp_m_line_index=candidate.sdpMLineIndex,
    ).dump()


def parse_candidate(payload: dict[str, Any]) -> Optional[RTCIceCandidate]:
    """Returns None for the empty end-of-candidates marker."""
    init = IceCandidateInit.model_validate(payload)
    line = init.candidate
    if not line:
        return None
    if line.startswith("candidate:"):
        line = line.split(":", 1)[1]
    candidate = candidate_from_sdp(line)
    candidate.sdpMid = init.sdp_mid
    candidate.sdpMLineIndex = init.sdp_m_line_index
    return candidate
