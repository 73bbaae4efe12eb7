"""High-level async client for an openHAB item registry."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pyhab._transport import RestTransport
from pyhab.config import HabConfig
from pyhab.exceptions import HabError
from pyhab.state.store import StateStore
from pyhab.subscriptions import StateCallback, StreamState, SubscriptionManager

_logger = logging.getLogger(__name__)


class HabClient:
    """Async client with a cached view of item states.

    Usage::

        async with HabClient(HabConfig.from_host("openhab.local", 8080)) as client:
            await client.sync_item_types()
            client.subscribe("Temperature", on_change)
            client.start_subscriptions()
            value = await client.get_state("Temperature")
    """

    def __init__(
        self,
        config: HabConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._logger = logger or _logger
        self._transport: RestTransport | None = None
        self._store: StateStore | None = None
        self._subscriptions: SubscriptionManager | None = None

    @property
    def config(self) -> HabConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HabClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = RestTransport(self._config, self._http_session, logger=self._logger)
        self._store = StateStore(
            self._transport,
            value_ttl=self._config.value_cache_ttl,
            sweep_interval=self._config.monitor_interval,
            logger=self._logger,
        )
        self._subscriptions = SubscriptionManager(
            self._transport,
            self._store,
            reconnect_delay=self._config.reconnect_delay,
            logger=self._logger,
        )
        self._store.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._subscriptions is not None:
            await self._subscriptions.close()
            self._subscriptions = None
        if self._store is not None:
            await self._store.close()
            self._store = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> RestTransport:
        if self._transport is None:
            raise HabError("Client not initialized. Use 'async with HabClient(...) as client:'")
        return self._transport

    def _require_store(self) -> StateStore:
        if self._store is None:
            raise HabError("Client not initialized. Use 'async with HabClient(...) as client:'")
        return self._store

    def _require_subscriptions(self) -> SubscriptionManager:
        if self._subscriptions is None:
            raise HabError("Client not initialized. Use 'async with HabClient(...) as client:'")
        return self._subscriptions

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def is_online(self) -> bool:
        """One-shot health check against the item listing."""
        return await self._require_transport().is_online()

    async def get_state(self, item: str) -> str:
        """Return the state of *item*, from the cache when possible."""
        return await self._require_store().get(item)

    async def get_state_fresh(self, item: str) -> str:
        """Fetch the state of *item* from the remote store, refreshing the cache."""
        return await self._require_store().get_fresh(item)

    def get_cached_state(self, item: str) -> str | None:
        return self._require_store().get_cached(item)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send_command(self, item: str, command: str) -> None:
        await self._require_store().send_command(item, command)

    async def update_state(self, item: str, state: str) -> None:
        await self._require_store().update_state(item, state)

    # ------------------------------------------------------------------
    # Item types
    # ------------------------------------------------------------------

    def get_item_type(self, item: str) -> str | None:
        """Return the cached type of *item*; requires :meth:`sync_item_types`."""
        return self._require_store().get_type(item)

    async def sync_item_types(self) -> int:
        return await self._require_store().sync_types()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, item: str, callback: StateCallback) -> None:
        self._require_subscriptions().subscribe(item, callback)

    def start_subscriptions(self) -> None:
        self._require_subscriptions().start_all()

    def subscription_state(self, item: str) -> StreamState | None:
        return self._require_subscriptions().state(item)
