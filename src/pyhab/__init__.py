"""pyhab - Async cached state client for openHAB items."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyhab")
except PackageNotFoundError:
    __version__ = "0+local"
from pyhab._cache import TimedCache
from pyhab.client import HabClient
from pyhab.config import HabConfig
from pyhab.exceptions import (
    HabConfigError,
    HabEmptyResponseError,
    HabError,
    HabInvalidInputError,
    HabNotFoundError,
    HabStreamClosedError,
    HabSyncError,
    HabTransportError,
)
from pyhab.models import ItemStateChangedEvent, ItemTypeInfo
from pyhab.state.store import StateStore
from pyhab.subscriptions import StateCallback, StreamState, SubscriptionManager

__all__ = [
    "__version__",
    "HabClient",
    "HabConfig",
    "HabConfigError",
    "HabEmptyResponseError",
    "HabError",
    "HabInvalidInputError",
    "HabNotFoundError",
    "HabStreamClosedError",
    "HabSyncError",
    "HabTransportError",
    "ItemStateChangedEvent",
    "ItemTypeInfo",
    "StateCallback",
    "StateStore",
    "StreamState",
    "SubscriptionManager",
    "TimedCache",
]
