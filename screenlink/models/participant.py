from __future__ import annotations

from typing import Literal

from screenlink.models.camel_case import CamelCase

Role = Literal["host", "guest"]


class ParticipantInfo(CamelCase):
    id: str
    role: Role
