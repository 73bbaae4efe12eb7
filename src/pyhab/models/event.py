"""Event bus envelopes received over the change stream.

An ``ItemStateChangedEvent`` arrives as an SSE ``data:`` line shaped like::

    {"topic": "smarthome/items/Temp/statechanged",
     "type": "ItemStateChangedEvent",
     "payload": "{\\"type\\":\\"Decimal\\",\\"value\\":\\"20\\",
                  \\"oldType\\":\\"Decimal\\",\\"oldValue\\":\\"19\\"}"}

The inner payload is itself a JSON document encoded as a string.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyhab._constants import STATE_CHANGED_EVENT


class EventEnvelope(BaseModel):
    """Outer event bus message."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    topic: str
    type: str
    payload: str = ""


class StateChangePayload(BaseModel):
    """Inner payload of an ``ItemStateChangedEvent``."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    value: str
    value_type: str | None = Field(default=None, alias="type")
    old_value: str | None = Field(default=None, alias="oldValue")
    old_value_type: str | None = Field(default=None, alias="oldType")

    @field_validator("value", "old_value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float, bool)):
            return json.dumps(value)
        return value


class ItemStateChangedEvent(BaseModel):
    """A normalized state change for one item."""

    model_config = ConfigDict(frozen=True)

    item: str
    value: str
    value_type: str | None = None
    old_value: str | None = None
    old_value_type: str | None = None


def item_from_topic(topic: str) -> str | None:
    """Extract the item name from ``<prefix>/items/<item>/statechanged``."""
    parts = topic.split("/")
    if len(parts) != 4 or parts[1] != "items" or parts[3] != "statechanged" or not parts[2]:
        return None
    return parts[2]


def parse_state_changed_event(data: str) -> ItemStateChangedEvent | None:
    """Parse an SSE data field into an :class:`ItemStateChangedEvent`.

    Returns ``None`` for malformed messages and for any other event type.
    """
    try:
        envelope = EventEnvelope.model_validate_json(data)
    except ValidationError:
        return None
    if envelope.type != STATE_CHANGED_EVENT:
        return None
    item = item_from_topic(envelope.topic)
    if item is None:
        return None
    try:
        payload = StateChangePayload.model_validate_json(envelope.payload)
    except ValidationError:
        return None
    return ItemStateChangedEvent(
        item=item,
        value=payload.value,
        value_type=payload.value_type,
        old_value=payload.old_value,
        old_value_type=payload.old_value_type,
    )
