from __future__ import annotations

from typing import Set

from pydantic import Field

from screenlink.models.camel_case import CamelCase


class RoomInfo(CamelCase):
    code: str
    host_id: str
    members: Set[str] = Field(default_factory=set)


class RoomSummary(CamelCase):
    code: str
    host_id: str
    member_count: int


class RoomCode(CamelCase):
    code: str
