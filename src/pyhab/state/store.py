"""Read-through / write-invalidate item state store.

This is the only component that decides when the value cache is populated,
invalidated, or re-warmed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from pyhab._cache import TimedCache
from pyhab._constants import MONITOR_INTERVAL, VALUE_CACHE_TTL
from pyhab._transport import Transport
from pyhab.exceptions import HabError, HabSyncError

_logger = logging.getLogger(__name__)


class StateStore:
    """Item state cache in front of a :class:`Transport`.

    Owns two caches: item values expire after ``value_ttl`` and are re-fetched
    in the background when swept; item types never expire and are loaded in
    bulk by :meth:`sync_types`.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        value_ttl: float = VALUE_CACHE_TTL,
        sweep_interval: float = MONITOR_INTERVAL,
        value_cache: TimedCache[str] | None = None,
        type_cache: TimedCache[str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._logger = logger or _logger
        self._values: TimedCache[str] = (
            value_cache if value_cache is not None else TimedCache(value_ttl, sweep_interval, logger=self._logger)
        )
        self._types: TimedCache[str] = type_cache if type_cache is not None else TimedCache(logger=self._logger)
        self._refresh_tasks: set[asyncio.Task[None]] = set()
        self._values.add_expiry_listener(self._on_value_expired)

    @property
    def value_cache(self) -> TimedCache[str]:
        return self._values

    @property
    def type_cache(self) -> TimedCache[str]:
        return self._types

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the value cache sweep on the running event loop."""
        self._values.start()

    async def close(self) -> None:
        """Stop the sweep and cancel pending background refreshes."""
        await self._values.stop()
        tasks = list(self._refresh_tasks)
        self._refresh_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_cached(self, item: str) -> str | None:
        return self._values.get(item)

    async def get(self, item: str) -> str:
        """Return the cached state of *item*, fetching it on a miss."""
        cached = self._values.get(item)
        if cached is not None:
            self._logger.debug("Getting value for %s from the cache", item)
            return cached
        self._logger.warning("Getting value for %s from the remote store, because no cached state exists", item)
        return await self.get_fresh(item)

    async def get_fresh(self, item: str) -> str:
        """Fetch *item* bypassing the cache and store the result."""
        self._logger.debug("Getting value for %s from the remote store", item)
        value = await self._transport.fetch_value(item)
        self._values.set(item, value)
        return value

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _invalidate(self, item: str) -> None:
        if self._values.exists(item):
            self._logger.debug("Invalidating cache for %s", item)
            self._values.delete(item)

    async def send_command(self, item: str, command: str) -> None:
        """Send *command* to *item*; the cached state is dropped first."""
        self._invalidate(item)
        await self._transport.send_command(item, command)

    async def update_state(self, item: str, state: str) -> None:
        """Post *state* as the new state of *item*; the cached state is dropped first."""
        self._invalidate(item)
        await self._transport.update_state(item, state)

    def apply_stream_value(self, item: str, value: str) -> None:
        """Store a pushed value as-is, resetting its TTL.

        An empty value is never cached: it drops the entry so the next read
        fetches the state.
        """
        if not value:
            self._logger.debug("Ignoring empty pushed state for %s", item)
            self._invalidate(item)
            return
        self._values.set(item, value)

    # ------------------------------------------------------------------
    # Item types
    # ------------------------------------------------------------------

    def get_type(self, item: str) -> str | None:
        return self._types.get(item)

    async def sync_types(self) -> int:
        """Load every item's type into the type cache.

        Raises :class:`HabSyncError` when the remote store lists no items;
        the type cache is left untouched in that case.
        """
        self._logger.info("Syncing all items & types from the remote store")
        items = await self._transport.fetch_item_types()
        if not items:
            self._logger.error("Received no items from the remote store, unable to sync types")
            raise HabSyncError("Received no items from the remote store")
        self._logger.debug("Got %d item(s)", len(items))
        for info in items:
            self._logger.debug("Got item %s of type %s, adding to type cache", info.name, info.type)
            self._types.set(info.name, info.type)
        return len(items)

    # ------------------------------------------------------------------
    # Expiry refresh
    # ------------------------------------------------------------------

    def _on_value_expired(self, item: str) -> None:
        self._logger.warning("State of %s was cleared from the cache, getting the current value", item)
        task = asyncio.get_running_loop().create_task(self._refresh(item))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh(self, item: str) -> None:
        try:
            value = await self._transport.fetch_value(item)
        except HabError as exc:
            self._logger.error("Unable to get new state of %s: %s", item, exc)
            return
        except Exception:
            self._logger.exception("Unable to get new state of %s", item)
            return
        self._logger.debug("Updating cache entry for %s with new value %s", item, value)
        self._values.set(item, value)
