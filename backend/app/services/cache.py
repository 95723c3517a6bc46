# app/services/cache.py
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from app.services.logging import get_logger, log_kv

LOG = get_logger("cache")

DEFAULT_TTL_SECONDS = 5 * 60
SWEEP_INTERVAL_SECONDS = 10 * 60

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        if self.ttl <= 0:
            return True
        return (now - self.stored_at) > self.ttl


class TTLCache:
    """
    In-memory key -> value store with per-entry expiry.

    Expiry is lazy on reads (get/has evict what they find stale); sweep()
    removes entries nobody reads again. Every mutation takes the lock so a
    reader always sees one consistent map.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._store)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        entry = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        with self._lock:
            self._store[key] = entry

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._store[key]
                return None
            return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._live_entry(key)
        return default if entry is None else entry.value

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def sweep(self) -> int:
        """Evict every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._store.items() if e.expired(now)]
            for k in expired:
                del self._store[k]
        return len(expired)


class CacheSweeper:
    """
    Runs cache.sweep() every `interval` seconds on the event loop.

    start()/stop() are explicit so the owner (the app lifespan, or a test)
    controls the timer's lifetime. Ticks never overlap: the next sleep only
    starts after the previous sweep returns.
    """

    def __init__(self, cache: TTLCache, interval: float = SWEEP_INTERVAL_SECONDS):
        self.cache = cache
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        log_kv(LOG, logging.INFO, "cache.sweeper.started", interval_s=self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        # wait() does not raise the task's CancelledError; a cancel of the caller still propagates
        await asyncio.wait([task])
        log_kv(LOG, logging.INFO, "cache.sweeper.stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            evicted = self.cache.sweep()
            log_kv(LOG, logging.INFO, "cache.sweep", evicted=evicted, remaining=len(self.cache))


# Cache keys: "<collection>_<discriminator>"
class CacheKeys:
    CUISINES = "cuisines"
    SERVICES = "services_all"
    REWARDS = "rewards"

    @staticmethod
    def restaurants(city_id: str) -> str:
        return f"restaurants_{city_id}"

    @staticmethod
    def restaurant_details(restaurant_id: str) -> str:
        return f"restaurant_{restaurant_id}"

    @staticmethod
    def menu_items(restaurant_id: str) -> str:
        return f"menu_{restaurant_id}"


async def cached(
    cache: TTLCache,
    key: str,
    loader: Callable[[], Awaitable[Any]],
    ttl: Optional[float] = None,
) -> Any:
    """
    Read-through: return the cached value for `key`, or await `loader()`,
    store its result and return it. A loader that raises stores nothing.
    """
    value = cache.get(key, _MISSING)
    if value is not _MISSING:
        log_kv(LOG, logging.DEBUG, "cache.hit", key=key)
        return value
    log_kv(LOG, logging.DEBUG, "cache.miss", key=key)
    value = await loader()
    cache.set(key, value, ttl)
    return value
