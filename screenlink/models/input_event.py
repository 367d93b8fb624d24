from __future__ import annotations

import time
from typing import Annotated, Literal, Union

from pydantic import Field

from screenlink.models.camel_case import CamelCase


def now_ms() -> float:
    return time.time() * 1000


# Pointer coordinates are percentages of the shared surface (0-100)


class PointerMove(CamelCase):
    type: Literal["mousemove"] = "mousemove"
    x: float
    y: float
    timestamp: float = Field(default_factory=now_ms)


class PointerDown(CamelCase):
    type: Literal["mousedown"] = "mousedown"
    x: float
    y: float
    button: int = 0
    timestamp: float = Field(default_factory=now_ms)


class PointerUp(CamelCase):
    type: Literal["mouseup"] = "mouseup"
    x: float
    y: float
    button: int = 0
    timestamp: float = Field(default_factory=now_ms)


class Click(CamelCase):
    type: Literal["click"] = "click"
    x: float
    y: float
    button: int = 0
    timestamp: float = Field(default_factory=now_ms)


class KeyDown(CamelCase):
    type: Literal["keydown"] = "keydown"
    key: str
    code: str
    timestamp: float = Field(default_factory=now_ms)


class KeyUp(CamelCase):
    type: Literal["keyup"] = "keyup"
    key: str
    code: str
    timestamp: float = Field(default_factory=now_ms)


class Wheel(CamelCase):
    type: Literal["wheel"] = "wheel"
    delta_y: float
    timestamp: float = Field(default_factory=now_ms)


InputEvent = Annotated[
    Union[
        PointerMove,
        PointerDown,
        PointerUp,
        Click,
        KeyDown,
        KeyUp,
        Wheel,
    ],
    Field(discriminator="type"),
]

POINTER_EVENTS = (PointerMove, PointerDown, PointerUp, Click)
KEY_EVENTS = (KeyDown, KeyUp)
