"""Time-bounded key/value cache with background expiry notification."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

V = TypeVar("V")

ExpiryListener = Callable[[str], None]

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry(Generic[V]):
    """A single cached value and its expiry deadline (monotonic seconds)."""

    key: str
    value: V
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class TimedCache(Generic[V]):
    """Key/value map whose entries expire after a fixed TTL.

    Expired entries are only removed by :meth:`sweep`, which runs
    periodically once :meth:`start` has been called. Reads never expire
    entries lazily: an entry past its deadline stays visible until the next
    sweep. Every swept key is reported once to each registered expiry
    listener.

    Constructed without ``ttl`` the cache is a plain unbounded map: entries
    never expire and no sweep task is started.
    """

    def __init__(
        self,
        ttl: float | None = None,
        sweep_interval: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        if ttl is not None and (sweep_interval is None or sweep_interval <= 0):
            raise ValueError("sweep_interval must be positive when ttl is set")
        self._ttl = ttl
        self._sweep_interval = sweep_interval if ttl is not None else None
        self._clock = clock
        self._logger = logger or _logger
        self._entries: dict[str, CacheEntry[V]] = {}
        self._listeners: list[ExpiryListener] = []
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def ttl(self) -> float | None:
        return self._ttl

    @property
    def sweep_interval(self) -> float | None:
        return self._sweep_interval

    @property
    def is_running(self) -> bool:
        """Whether the periodic sweep task is active."""
        return self._sweep_task is not None and not self._sweep_task.done()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    # ------------------------------------------------------------------
    # Map operations
    # ------------------------------------------------------------------

    def set(self, key: str, value: V) -> None:
        """Insert or overwrite *key*, resetting its deadline."""
        expires_at = self._clock() + self._ttl if self._ttl is not None else None
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.value

    def exists(self, key: str) -> bool:
        return key in self._entries

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry without emitting expiry notifications."""
        self._entries.clear()

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def add_expiry_listener(self, listener: ExpiryListener) -> None:
        self._listeners.append(listener)

    def remove_expiry_listener(self, listener: ExpiryListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def sweep(self) -> list[str]:
        """Remove every expired entry and notify listeners once per key.

        Returns the removed keys in sweep order.
        """
        if self._ttl is None:
            return []
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._entries.pop(key, None)
            self._notify_expired(key)
        if expired:
            self._logger.debug("Swept %d expired cache entries", len(expired))
        return expired

    def _notify_expired(self, key: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                self._logger.exception("Expiry listener failed for %s", key)

    async def _run_sweeps(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep on the running event loop.

        No-op when TTL is disabled or the sweep is already running.
        """
        if self._sweep_interval is None or self.is_running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._run_sweeps(self._sweep_interval))

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> TimedCache[V]:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
