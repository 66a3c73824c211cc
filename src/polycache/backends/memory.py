"""
In-memory cache backend.

Single-process store built on ``cachetools.TLRUCache`` with a per-entry
expiry. Values are kept as JSON text, encoded the same way the Redis
adapter encodes them, so the values accepted and the values read back
match the network backends. All work is synchronous; the coroutine
signatures only exist so the backend is interchangeable with the network
ones. Because nothing awaits between a read and the following write,
``incr``, ``expire`` and ``pop`` are atomic on the event loop without any
locking.

Capabilities: native ``pop``; ``getset`` is composed by the service.
"""

import json
import math
import time
from dataclasses import dataclass
from typing import Any

import structlog
from cachetools import TLRUCache

from polycache.backends.base import MISSING, CacheBackend, ItemEntry
from polycache.exceptions import CacheTypeError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _Entry:
    data: str  # JSON text
    exp: float | None  # epoch seconds, None = no expiry


def _time_to_use(key: str, entry: _Entry, now: float) -> float:
    return entry.exp if entry.exp is not None else math.inf


def _dumps(val: Any) -> str:
    return json.dumps(val, separators=(",", ":"))


def _is_number(val: Any) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


class InMemoryBackend(CacheBackend):
    """In-memory backend with per-key expiry."""

    name = "memory"
    supports_pop = True

    def __init__(self, max_size: int = 10000) -> None:
        self._cache = TLRUCache(
            maxsize=max_size, ttu=_time_to_use, timer=time.time
        )
        self.max_size = max_size

    def _store(self, key: str, data: str, exp: float | None) -> None:
        self._cache[key] = _Entry(data, exp)

    async def set(self, key: str, val: Any, ttl: int = 0) -> bool:
        exp = time.time() + ttl if ttl > 0 else None
        self._store(key, _dumps(val), exp)
        return True

    async def get(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return MISSING
        return json.loads(entry.data)

    async def mset(self, entries: list[ItemEntry]) -> bool:
        # Encode the whole batch first so a bad value stores nothing
        encoded = [(entry.key, _dumps(entry.val), entry.ttl) for entry in entries]
        now = time.time()
        for key, data, ttl in encoded:
            self._store(key, data, now + ttl if ttl > 0 else None)
        return True

    async def mget(self, keys: list[str]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in keys:
            val = await self.get(key)
            if val is not MISSING:
                result[key] = val
        return result

    async def pop(self, key: str) -> Any:
        entry = self._cache.pop(key, None)
        if entry is None:
            return MISSING
        return json.loads(entry.data)

    async def incr(self, key: str, delta: int | float) -> int | float:
        entry = self._cache.get(key)
        if entry is None:
            self._store(key, _dumps(delta), None)
            return delta

        val = json.loads(entry.data)
        if not _is_number(val):
            raise CacheTypeError(f"@key [{key}] does not hold a number value.")

        new_val = val + delta
        self._store(key, _dumps(new_val), entry.exp)
        return new_val

    async def keys(self) -> list[str]:
        self._cache.expire()
        return list(self._cache.keys())

    async def has(self, key: str) -> bool:
        return key in self._cache

    async def delete(self, key: str) -> bool:
        try:
            del self._cache[key]
        except KeyError:
            return False
        return True

    async def expire(self, key: str, ttl: int) -> bool:
        entry = self._cache.get(key)
        if entry is None:
            return False
        self._store(key, entry.data, time.time() + ttl if ttl > 0 else None)
        return True

    async def ttl(self, key: str) -> int | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.exp is None:
            return 0
        # ceil keeps a live key from reporting 0 (= no expiry)
        return max(math.ceil((entry.exp - time.time()) * 1000), 1)

    async def close(self) -> None:
        # Shared instances outlive any single service, keep the data
        logger.debug("memory.close", size=len(self._cache))

    def clear(self) -> None:
        """Drop every entry."""
        self._cache.clear()
