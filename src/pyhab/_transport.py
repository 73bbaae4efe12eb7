"""REST transport for the item registry and its change stream."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, Callable
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from pyhab._constants import EVENTS_PATH, ITEMS_PATH, state_changed_topic
from pyhab._sse import EventStream, ServerSentEvent
from pyhab.config import HabConfig
from pyhab.exceptions import (
    HabEmptyResponseError,
    HabInvalidInputError,
    HabNotFoundError,
    HabTransportError,
)
from pyhab.models.item import ItemTypeInfo

_logger = logging.getLogger(__name__)

_TEXT_HEADERS = {"content-type": "text/plain", "accept": "application/json"}


class Transport(Protocol):
    """Structural transport interface used by the state store and subscriptions.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestTransport`) concrete.
    """

    async def fetch_value(self, item: str) -> str: ...

    async def send_command(self, item: str, command: str) -> None: ...

    async def update_state(self, item: str, state: str) -> None: ...

    async def fetch_item_types(self) -> list[ItemTypeInfo]: ...

    def open_change_stream(
        self,
        item: str,
        *,
        on_open: Callable[[], None] | None = None,
        on_error: Callable[[HabTransportError], None] | None = None,
    ) -> AsyncGenerator[ServerSentEvent, None]: ...


def _item_path(item: str, suffix: str = "") -> str:
    return f"{ITEMS_PATH}/{quote(item, safe='')}{suffix}"


class RestTransport:
    """aiohttp implementation of :class:`Transport`."""

    def __init__(
        self,
        config: HabConfig,
        http_session: aiohttp.ClientSession,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._logger = logger or _logger
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _url(self, path: str) -> str:
        return f"{self._config.base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: str | None = None,
        params: dict[str, str] | None = None,
    ) -> tuple[int, str]:
        url = self._url(path)
        self._logger.debug("%s %s", method, url)
        try:
            async with self._http.request(
                method,
                url,
                data=body.encode("utf-8") if body is not None else None,
                params=params,
                headers=_TEXT_HEADERS if body is not None else None,
                timeout=self._timeout,
            ) as resp:
                body_bytes = await resp.read()
                status = resp.status
                charset = resp.charset or "utf-8"
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise HabTransportError(f"Request to {path} failed: {exc}", endpoint=path) from exc
        try:
            text = body_bytes.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise HabTransportError(
                f"Undecodable {charset} response from {path}: {exc}",
                status_code=status,
                endpoint=path,
            ) from exc
        return status, text

    @staticmethod
    def _raise_for_status(status: int, text: str, path: str) -> None:
        if 200 <= status < 300:
            return
        raise HabTransportError(
            f"HTTP {status} from {path}: {text[:200]}",
            status_code=status,
            endpoint=path,
        )

    async def is_online(self) -> bool:
        """Return ``True`` when the item listing answers with HTTP 200."""
        try:
            status, _ = await self._request("GET", ITEMS_PATH)
        except HabTransportError:
            self._logger.debug("Online check for %s failed", self._config.base_url, exc_info=True)
            return False
        self._logger.debug("Online check for %s resulted in status code %s", self._config.base_url, status)
        return status == 200

    async def fetch_value(self, item: str) -> str:
        path = _item_path(item, "/state")
        status, text = await self._request("GET", path)
        if status == 404:
            raise HabNotFoundError(f"Item {item} does not exist", item=item, endpoint=path)
        self._raise_for_status(status, text, path)
        if not text:
            raise HabEmptyResponseError(f"Unable to retrieve state of {item}: empty response")
        return text

    async def send_command(self, item: str, command: str) -> None:
        path = _item_path(item)
        status, text = await self._request("POST", path, body=command)
        if status == 404:
            raise HabNotFoundError(f"Item {item} does not exist", item=item, endpoint=path)
        if status == 400:
            raise HabInvalidInputError(f"Command {command!r} rejected for {item}")
        self._raise_for_status(status, text, path)

    async def update_state(self, item: str, state: str) -> None:
        path = _item_path(item, "/state")
        status, text = await self._request("PUT", path, body=state)
        if status == 404:
            raise HabNotFoundError(f"Item {item} does not exist", item=item, endpoint=path)
        if status == 400:
            raise HabInvalidInputError(f"State {state!r} rejected for {item}")
        self._raise_for_status(status, text, path)

    async def fetch_item_types(self) -> list[ItemTypeInfo]:
        status, text = await self._request(
            "GET",
            ITEMS_PATH,
            params={"recursive": "false", "fields": "name,type"},
        )
        if status != 200:
            raise HabTransportError(
                f"Unable to get items: HTTP {status}",
                status_code=status,
                endpoint=ITEMS_PATH,
            )
        try:
            raw: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            raise HabTransportError(f"Invalid JSON from {ITEMS_PATH}: {text[:200]}", endpoint=ITEMS_PATH) from exc
        if not isinstance(raw, list):
            raise HabTransportError(f"Item listing from {ITEMS_PATH} is not an array", endpoint=ITEMS_PATH)

        items: list[ItemTypeInfo] = []
        for entry in raw:
            try:
                items.append(ItemTypeInfo.model_validate(entry))
            except ValidationError:
                self._logger.debug("Skipping malformed item entry %r", entry)
        return items

    def open_change_stream(
        self,
        item: str,
        *,
        on_open: Callable[[], None] | None = None,
        on_error: Callable[[HabTransportError], None] | None = None,
    ) -> AsyncGenerator[ServerSentEvent, None]:
        """Open the SSE stream filtered to state changes of *item*."""
        stream = EventStream(
            self._http,
            self._url(EVENTS_PATH),
            params={"topics": state_changed_topic(self._config.topic_prefix, item)},
            retry_interval=self._config.stream_retry_interval,
            connect_timeout=self._config.request_timeout,
            on_open=on_open,
            on_error=on_error,
            logger=self._logger,
        )
        return stream.events()
