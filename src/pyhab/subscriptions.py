"""Per-item change stream subscriptions.

Owns:
- the registry of item -> ordered state callbacks
- one self-healing stream supervisor per subscribed item
- dispatching parsed state changes to callbacks and into the state store
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum

from pyhab._constants import RECONNECT_DELAY
from pyhab._sse import ServerSentEvent
from pyhab._transport import Transport
from pyhab.exceptions import HabError, HabNotFoundError, HabStreamClosedError, HabTransportError
from pyhab.models.event import parse_state_changed_event
from pyhab.state.store import StateStore

_logger = logging.getLogger(__name__)

#: Called as ``callback(value, item)`` on a state change and as
#: ``callback(error, item)`` when the item's stream fails.
StateCallback = Callable[[str | HabError, str], None]


class StreamState(StrEnum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class StreamConnection:
    """One transport session of the change stream for a single item.

    The connection shares its callback list with the registry, so callbacks
    added later are seen by the running stream. :meth:`run` returns the
    failure that ended the session; a supervisor then builds a fresh
    connection for the same item and list.
    """

    def __init__(
        self,
        item: str,
        callbacks: list[StateCallback],
        transport: Transport,
        *,
        on_event: Callable[[StreamConnection, ServerSentEvent], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self.item = item
        self.callbacks = callbacks
        self.state = StreamState.CONNECTING
        self._transport = transport
        self._on_event = on_event
        self._logger = logger or _logger

    def _mark_open(self) -> None:
        if self.state is StreamState.CONNECTING:
            self._logger.debug("Subscription for %s is open", self.item)
            self.state = StreamState.OPEN

    def _on_transport_error(self, error: HabTransportError) -> None:
        self._logger.error("Subscription for %s: %s", self.item, error)
        if self.state is StreamState.OPEN:
            self._logger.debug("Subscription for %s is reconnecting", self.item)
            self.state = StreamState.CONNECTING

    async def run(self) -> HabError:
        """Consume the stream until it fails; return the failure."""
        stream = self._transport.open_change_stream(
            self.item,
            on_open=self._mark_open,
            on_error=self._on_transport_error,
        )
        failure: HabError
        try:
            async with contextlib.aclosing(stream):
                async for message in stream:
                    self._mark_open()
                    self._on_event(self, message)
            failure = HabStreamClosedError(f"Subscription stream for {self.item} ended")
        except (HabNotFoundError, HabTransportError) as exc:
            failure = exc
        finally:
            self.state = StreamState.CLOSED
        return failure


class SubscriptionManager:
    """Registry of item callbacks driven by per-item change streams."""

    def __init__(
        self,
        transport: Transport,
        store: StateStore | None = None,
        *,
        reconnect_delay: float = RECONNECT_DELAY,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._store = store
        self._reconnect_delay = reconnect_delay
        self._logger = logger or _logger
        self._subscriptions: dict[str, list[StateCallback]] = {}
        self._connections: dict[str, StreamConnection] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def items(self) -> list[str]:
        return list(self._subscriptions)

    def callbacks(self, item: str) -> list[StateCallback]:
        return self._subscriptions.get(item, [])

    def connection(self, item: str) -> StreamConnection | None:
        return self._connections.get(item)

    def state(self, item: str) -> StreamState | None:
        connection = self._connections.get(item)
        return connection.state if connection is not None else None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def subscribe(self, item: str, callback: StateCallback) -> None:
        """Register *callback* for state changes of *item*.

        Before :meth:`start_all` this only queues the subscription. Once
        streams are running, a new item gets its own stream right away and an
        already streamed item picks up the callback on its next event.
        """
        callbacks = self._subscriptions.setdefault(item, [])
        self._logger.debug("Queueing subscription for %s", item)
        callbacks.append(callback)
        if self._started and item not in self._tasks:
            self._start_item(item)

    def start_all(self) -> None:
        """Open one change stream per subscribed item on the running loop."""
        self._started = True
        for item, callbacks in self._subscriptions.items():
            if callbacks and item not in self._tasks:
                self._start_item(item)

    def _start_item(self, item: str) -> None:
        loop = asyncio.get_running_loop()
        self._tasks[item] = loop.create_task(self._supervise(item), name=f"pyhab-subscription-{item}")

    async def close(self) -> None:
        """Stop every stream and reconnect timer."""
        self._started = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._connections.clear()

    # ------------------------------------------------------------------
    # Stream supervision
    # ------------------------------------------------------------------

    async def _supervise(self, item: str) -> None:
        callbacks = self._subscriptions[item]
        while True:
            connection = StreamConnection(
                item,
                callbacks,
                self._transport,
                on_event=self._dispatch,
                logger=self._logger,
            )
            self._connections[item] = connection
            self._logger.debug(
                "Starting subscription for %s with %d subscribed callback(s)",
                item,
                len(callbacks),
            )
            failure = await connection.run()

            if isinstance(failure, (HabNotFoundError, HabStreamClosedError)):
                self._logger.error(
                    "Subscription closed for %s (%s), trying to reconnect in %ss...",
                    item,
                    failure,
                    self._reconnect_delay,
                )
                self._notify_failure(connection, failure)
            else:
                self._logger.error("Subscription for %s failed: %s", item, failure)

            await asyncio.sleep(self._reconnect_delay)
            self._logger.warning("Trying to reconnect subscription for %s...", item)

    def _notify_failure(self, connection: StreamConnection, error: HabError) -> None:
        for callback in list(connection.callbacks):
            try:
                callback(error, connection.item)
            except Exception:
                self._logger.exception("Subscription callback for %s failed", connection.item)

    def _dispatch(self, connection: StreamConnection, message: ServerSentEvent) -> None:
        event = parse_state_changed_event(message.data)
        if event is None:
            self._logger.debug("Ignoring event for %s: %r", connection.item, message.data[:200])
            return

        self._logger.debug("State of %s changed to %s", event.item, event.value)
        for callback in list(connection.callbacks):
            try:
                callback(event.value, event.item)
            except Exception:
                self._logger.exception("Subscription callback for %s failed", event.item)

        if self._store is not None:
            self._store.apply_stream_value(event.item, event.value)
