from __future__ import annotations

from typing import Any, Dict, List


class CandidateBuffer:
    """Holds connectivity candidates that arrived before they could be applied.

    Candidates are kept per remote participant, in arrival order, until the
    remote session description for that participant is installed.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, List[dict[str, Any]]] = {}

    def add(self, remote_id: str, candidate: dict[str, Any]) -> None:
        self._pending.setdefault(remote_id, []).append(candidate)

    def pending(self, remote_id: str) -> List[dict[str, Any]]:
        return list(self._pending.get(remote_id, ()))

    def drain(self, remote_id: str) -> List[dict[str, Any]]:
        """Removes and returns everything buffered for remote_id."""
        return self._pending.pop(remote_id, [])

    def discard(self, remote_id: str) -> None:
        self._pending.pop(remote_id, None)

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._pending

    def __len__(self) -> int:
        return sum(len(c) for c in self._pending.values())
