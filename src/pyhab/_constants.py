"""Internal constants shared across the library."""

#: Cached item states live for 30 minutes.
VALUE_CACHE_TTL: float = 30 * 60
#: The value cache is swept for expired states every 10 minutes.
MONITOR_INTERVAL: float = 10 * 60
#: Fixed delay before a closed change stream is reopened.
RECONNECT_DELAY: float = 1.0
#: Default delay between stream reconnects after a transient transport error.
STREAM_RETRY_INTERVAL: float = 1.0
REQUEST_TIMEOUT: float = 10.0

DEFAULT_PORT = 8080
DEFAULT_TOPIC_PREFIX = "smarthome"

ITEMS_PATH = "/rest/items"
EVENTS_PATH = "/rest/events"
STATE_CHANGED_EVENT = "ItemStateChangedEvent"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


def state_changed_topic(prefix: str, item: str) -> str:
    """Return the event bus topic carrying state changes for *item*."""
    return f"{prefix}/items/{item}/statechanged"
