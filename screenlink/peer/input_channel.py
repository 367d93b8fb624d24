from __future__ import annotations

import logging
from typing import Iterable, Union

from pydantic import TypeAdapter

from screenlink.models.input_event import InputEvent, POINTER_EVENTS

logger = logging.getLogger(__name__)

_adapter = TypeAdapter(InputEvent)

COORDINATE_MIN = 0.0
COORDINATE_MAX = 100.0


def encode_event(event: InputEvent) -> str:
    return event.model_dump_json(by_alias=True)


def decode_event(data: Union[str, bytes]) -> InputEvent:
    """Raises pydantic.ValidationError for anything that is not a known input event."""
    return _adapter.validate_json(data)


def within_bounds(event: InputEvent) -> bool:
    if not isinstance(event, POINTER_EVENTS):
        return True
    # NaN fails both comparisons
    return (COORDINATE_MIN <= event.x <= COORDINATE_MAX
            and COORDINATE_MIN <= event.y <= COORDINATE_MAX)


def send_on_channels(event: InputEvent, channels: Iterable) -> int:
    """Sends event on every open channel; returns how many channels it went out on.

    Closed or half-open channels are skipped without error.
    """
    if not within_bounds(event):
        logger.debug("not sending %s outside the 0-100 range", event.type)
        return 0
    payload = encode_event(event)
    sent = 0
    for channel in channels:
        if channel is None or channel.readyState != "open":
            continue
        channel.send(payload)
        sent += 1
    return sent
