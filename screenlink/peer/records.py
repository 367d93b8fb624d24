from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from screenlink.peer.events import TransportEvent


class NegotiationState(Enum):
    IDLE = "idle"
    OFFERING = "offering"
    ANSWERING = "answering"
    CONNECTED = "connected"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = (NegotiationState.CLOSED, NegotiationState.FAILED)


@dataclass(eq=False)
class RemoteConnectionRecord:
    """Everything the local participant holds for one remote participant."""

    remote_id: str
    transport: Any
    state: NegotiationState = NegotiationState.IDLE
    channel: Optional[Any] = None
    tracks: list = field(default_factory=list)
    events: "asyncio.Queue[TransportEvent]" = field(default_factory=asyncio.Queue)
    dispatcher: Optional[asyncio.Task] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class ConnectionRegistry:
    """Owns the Remote Connection Records of one local participant, keyed by remote id."""

    def __init__(self) -> None:
        self._records: Dict[str, RemoteConnectionRecord] = {}

    def get(self, remote_id: str) -> Optional[RemoteConnectionRecord]:
        return self._records.get(remote_id)

    def add(self, record: RemoteConnectionRecord) -> None:
        if record.remote_id in self._records:
            raise ValueError(f"record for {record.remote_id} already exists")
        self._records[record.remote_id] = record

    def remove(self, remote_id: str) -> Optional[RemoteConnectionRecord]:
        return self._records.pop(remote_id, None)

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._records

    def __iter__(self) -> Iterator[RemoteConnectionRecord]:
        # snapshot, so callers may tear records down while iterating
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)
