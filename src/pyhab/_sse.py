"""Internal Server-Sent Events decoding and stream runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from pyhab._constants import EVENT_STREAM_CONTENT_TYPE
from pyhab.exceptions import HabNotFoundError, HabStreamClosedError, HabTransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSentEvent:
    """One dispatched SSE message."""

    data: str
    event: str = "message"
    id: str | None = None
    retry: int | None = None


@dataclass
class SseDecoder:
    """Incremental decoder for the ``text/event-stream`` line format.

    Feed it one line at a time (with or without the trailing newline); a
    blank line dispatches the buffered event.
    """

    last_event_id: str | None = None
    retry: int | None = None
    _event: str = ""
    _data: list[str] = field(default_factory=list)

    def feed(self, line: str) -> ServerSentEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        data = self._data
        event = self._event or "message"
        self._data = []
        self._event = ""
        if not data:
            return None
        return ServerSentEvent(
            data="\n".join(data),
            event=event,
            id=self.last_event_id,
            retry=self.retry,
        )


class EventStream:
    """Async iterator over the events of one SSE endpoint.

    Transient connection failures (``aiohttp.ClientError``, timeouts) are
    reported through ``on_error`` and retried after the retry interval,
    resuming with ``Last-Event-ID`` when the server supplied ids. Terminal
    conditions end the iteration with an exception:

    * HTTP 404 raises :class:`HabNotFoundError`.
    * Any other non-200 status, a wrong content type, or the server closing
      the stream raises :class:`HabStreamClosedError`.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        url: str,
        *,
        params: dict[str, str] | None = None,
        retry_interval: float = 1.0,
        connect_timeout: float | None = None,
        on_open: Callable[[], None] | None = None,
        on_error: Callable[[HabTransportError], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._http = http_session
        self._url = url
        self._params = params or {}
        self._retry_interval = retry_interval
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout)
        self._on_open = on_open
        self._on_error = on_error
        self._logger = logger or _logger
        self._last_event_id: str | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def retry_interval(self) -> float:
        return self._retry_interval

    def __aiter__(self) -> AsyncGenerator[ServerSentEvent, None]:
        return self.events()

    def _headers(self) -> dict[str, str]:
        headers = {"accept": EVENT_STREAM_CONTENT_TYPE, "cache-control": "no-cache"}
        if self._last_event_id:
            headers["last-event-id"] = self._last_event_id
        return headers

    def _check_response(self, resp: Any) -> None:
        if resp.status == 404:
            raise HabNotFoundError(f"Event stream {self._url} not found", endpoint=self._url)
        if resp.status != 200:
            raise HabStreamClosedError(
                f"Event stream {self._url} rejected with HTTP {resp.status}",
                status_code=resp.status,
                endpoint=self._url,
            )
        if resp.content_type != EVENT_STREAM_CONTENT_TYPE:
            raise HabStreamClosedError(
                f"Event stream {self._url} answered with {resp.content_type!r}",
                status_code=resp.status,
                endpoint=self._url,
            )

    async def events(self) -> AsyncGenerator[ServerSentEvent, None]:
        while True:
            self._logger.debug("GET %s (event stream) params=%s", self._url, self._params)
            try:
                async with self._http.get(
                    self._url,
                    params=self._params,
                    headers=self._headers(),
                    timeout=self._timeout,
                ) as resp:
                    self._check_response(resp)
                    if self._on_open is not None:
                        self._on_open()

                    decoder = SseDecoder(last_event_id=self._last_event_id)
                    async for raw in resp.content:
                        event = decoder.feed(raw.decode("utf-8", errors="replace"))
                        if decoder.retry is not None:
                            self._retry_interval = decoder.retry / 1000.0
                        if event is None:
                            continue
                        self._last_event_id = decoder.last_event_id
                        yield event
            except (aiohttp.ClientError, TimeoutError) as exc:
                error = HabTransportError(f"Event stream {self._url} failed: {exc}", endpoint=self._url)
                if self._on_error is not None:
                    self._on_error(error)
                else:
                    self._logger.debug("Event stream error", exc_info=True)
                await asyncio.sleep(self._retry_interval)
                continue

            raise HabStreamClosedError(f"Event stream {self._url} closed by server", endpoint=self._url)
