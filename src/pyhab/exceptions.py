"""Custom exception hierarchy for pyhab."""

from __future__ import annotations


class HabError(Exception):
    """Base exception for all pyhab errors."""


class HabConfigError(HabError):
    """Invalid or missing configuration."""


class HabTransportError(HabError):
    """HTTP-level failure (network, unexpected status, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class HabStreamClosedError(HabTransportError):
    """Change stream reached a terminal state (closed by the server or rejected).

    Unlike a plain :class:`HabTransportError`, this is reported to every
    subscriber of the item and triggers a reconnect.
    """


class HabNotFoundError(HabError):
    """The remote item does not exist (HTTP 404)."""

    def __init__(self, message: str, *, item: str = "", endpoint: str = "") -> None:
        self.item = item
        self.endpoint = endpoint
        super().__init__(message)


class HabEmptyResponseError(HabError):
    """The remote side answered without a usable body."""


class HabInvalidInputError(HabError):
    """The remote side rejected a command or state payload (HTTP 400)."""


class HabSyncError(HabError):
    """Bulk item type sync failed because no items were returned."""
