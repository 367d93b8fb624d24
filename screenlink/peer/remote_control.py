from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

from screenlink.models.input_event import (
    InputEvent,
    KEY_EVENTS,
    Click,
    KeyDown,
    KeyUp,
    PointerDown,
    PointerMove,
    PointerUp,
    Wheel,
)
from screenlink.peer.input_channel import within_bounds
from screenlink.settings import settings

logger = logging.getLogger(__name__)

# pointer moves smaller than this (in percent) are not sent
POINTER_DEADZONE = 1.0


def normalize_pointer(px: float, py: float, width: float, height: float) -> Optional[Tuple[float, float]]:
    """Converts surface-relative pixels to percentages; None for a zero-sized surface."""
    if width <= 0 or height <= 0:
        return None
    return (px / width) * 100, (py / height) * 100


class InputValidator:
    """Rejects out-of-range pointers, blocked keys and input bursts."""

    def __init__(self,
                 max_clicks_per_second: int = settings.max_clicks_per_second,
                 max_keys_per_second: int = settings.max_keys_per_second,
                 blocked_keys: Iterable[str] = tuple(settings.blocked_keys),
                 allowed_keys: Optional[Iterable[str]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.max_clicks_per_second = max_clicks_per_second
        self.max_keys_per_second = max_keys_per_second
        self.blocked_keys = set(blocked_keys)
        self.allowed_keys = set(allowed_keys) if allowed_keys is not None else None
        self._clock = clock
        self._window_start = clock()
        self._clicks = 0
        self._keys = 0

    def validate(self, event: InputEvent) -> bool:
        now = self._clock()
        if now - self._window_start > 1.0:
            self._clicks = 0
            self._keys = 0
            self._window_start = now

        if not within_bounds(event):
            logger.warning("invalid coordinates for %s", event.type)
            return False

        if isinstance(event, Click):
            self._clicks += 1
            if self._clicks > self.max_clicks_per_second:
                logger.warning("click rate limit exceeded")
                return False

        if isinstance(event, KEY_EVENTS):
            self._keys += 1
            if self._keys > self.max_keys_per_second:
                logger.warning("key rate limit exceeded")
                return False
            if event.key in self.blocked_keys:
                logger.warning("blocked key: %s", event.key)
                return False
            if self.allowed_keys is not None and event.key not in self.allowed_keys:
                logger.warning("key not allowed: %s", event.key)
                return False

        return True


class RemoteControl:
    """Guest-side input helper.

    Builds input events from pointer/key/wheel actions and passes the ones that
    survive validation and per-kind throttling to ``send`` (usually
    ``Negotiator.send_input_event``).
    """

    def __init__(self,
                 send: Callable[[InputEvent], int],
                 throttle_ms: int = settings.input_throttle_ms,
                 validator: Optional[InputValidator] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._send = send
        self._throttle = throttle_ms / 1000
        self._validator = validator
        self._clock = clock
        self._last_sent: Dict[str, float] = {}
        self._last_pointer: Optional[Tuple[float, float]] = None

    def _should_send(self, kind: str) -> bool:
        now = self._clock()
        last = self._last_sent.get(kind)
        if last is not None and now - last < self._throttle:
            return False
        self._last_sent[kind] = now
        return True

    def send(self, event: InputEvent) -> bool:
        if self._validator is not None and not self._validator.validate(event):
            return False
        if not self._should_send(event.type):
            return False
        self._send(event)
        return True

    def pointer_move(self, x: float, y: float) -> bool:
        if self._last_pointer is not None:
            lx, ly = self._last_pointer
            if abs(x - lx) <= POINTER_DEADZONE and abs(y - ly) <= POINTER_DEADZONE:
                return False
        sent = self.send(PointerMove(x=x, y=y))
        if sent:
            self._last_pointer = (x, y)
        return sent

    def pointer_down(self, x: float, y: float, button: int = 0) -> bool:
        return self.send(PointerDown(x=x, y=y, button=button))

    def pointer_up(self, x: float, y: float, button: int = 0) -> bool:
        return self.send(PointerUp(x=x, y=y, button=button))

    def click(self, x: float, y: float, button: int = 0) -> bool:
        return self.send(Click(x=x, y=y, button=button))

    def key_down(self, key: str, code: str) -> bool:
        return self.send(KeyDown(key=key, code=code))

    def key_up(self, key: str, code: str) -> bool:
        return self.send(KeyUp(key=key, code=code))

    def wheel(self, delta_y: float) -> bool:
        return self.send(Wheel(delta_y=delta_y))
