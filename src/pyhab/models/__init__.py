"""Pydantic models for REST and event stream payloads."""

from pyhab.models.event import (
    EventEnvelope,
    ItemStateChangedEvent,
    StateChangePayload,
    item_from_topic,
    parse_state_changed_event,
)
from pyhab.models.item import ItemTypeInfo

__all__ = [
    "EventEnvelope",
    "ItemStateChangedEvent",
    "ItemTypeInfo",
    "StateChangePayload",
    "item_from_topic",
    "parse_state_changed_event",
]
