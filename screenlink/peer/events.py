"""Tagged events raised by a transport or its input channel.

Transport and channel callbacks only enqueue one of these on the owning
record; the record's dispatcher is the single consumer that acts on them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class ConnectionStateChanged:
    state: str


@dataclass(frozen=True)
class LocalCandidate:
    candidate: Optional[Any]


@dataclass(frozen=True)
class TrackReceived:
    track: Any


@dataclass(frozen=True)
class ChannelReceived:
    channel: Any


@dataclass(frozen=True)
class ChannelOpened:
    channel: Any


@dataclass(frozen=True)
class ChannelClosed:
    channel: Any


@dataclass(frozen=True)
class ChannelMessage:
    channel: Any
    data: Union[str, bytes]


@dataclass(frozen=True)
class ChannelFailed:
    channel: Any
    error: Any


TransportEvent = Union[
    ConnectionStateChanged,
    LocalCandidate,
    TrackReceived,
    ChannelReceived,
    ChannelOpened,
    ChannelClosed,
    ChannelMessage,
    ChannelFailed,
]
