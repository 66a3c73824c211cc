"""
Memcached cache backend.

Built on ``pymemcache``'s thread-safe ``PooledClient``; every blocking
call runs in a worker thread through ``asyncio.to_thread``.

The protocol has no negative/float increment, no way to change a TTL
without rewriting the value, and no key listing. So every value is stored
wrapped as ``{"val": <value>, "exp": <epoch ms or 0>}`` and:

- ``incr`` and ``expire`` run a compare-and-swap loop (``gets`` + ``cas``)
  with a bounded number of attempts; giving up raises
  :class:`~polycache.exceptions.CacheRetryExhaustedError`.
- ``keys`` walks ``stats items`` / ``stats cachedump``. The dump lags
  behind writes, so a freshly written key may be missing from the result.
  Treat it as a debugging aid, never as a source of truth.

Capabilities: neither ``getset`` nor ``pop`` is native; the service
composes them from two round trips, which is not atomic on this backend.
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import structlog
from pymemcache.client.base import PooledClient

from polycache.backends.base import MISSING, CacheBackend, ItemEntry
from polycache.exceptions import CacheRetryExhaustedError, CacheTypeError
from polycache.ttl import from_ttl, now_ms

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINT = "localhost:11211"
CAS_MAX_ATTEMPTS = 5
CAS_RETRY_DELAY = 0.01  # seconds


class JsonSerde:
    """pymemcache serde writing entries as UTF-8 JSON text."""

    def serialize(self, key: str, value: Any) -> tuple[bytes, int]:
        return json.dumps(value, separators=(",", ":")).encode("utf-8"), 0

    def deserialize(self, key: str, value: bytes, flags: int) -> Any:
        return json.loads(value)


def parse_endpoint(endpoint: str | None) -> tuple[str, int]:
    """Turn ``[memcached://]host[:port]`` into a server tuple."""
    host_port = (endpoint or DEFAULT_ENDPOINT).replace("memcached://", "")
    host, _, port = host_port.partition(":")
    return host or "localhost", int(port) if port else 11211


def _is_number(val: Any) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


class MemcachedBackend(CacheBackend):
    """Memcached backend with self-tracked expiry."""

    name = "memcached"

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        connect_timeout: float = 5.0,
        timeout: float = 5.0,
        max_pool_size: int = 50,
        client: Any | None = None,
    ) -> None:
        self.endpoint = endpoint or DEFAULT_ENDPOINT
        self._client = client or PooledClient(
            parse_endpoint(endpoint),
            serde=JsonSerde(),
            connect_timeout=connect_timeout,
            timeout=timeout,
            max_pool_size=max_pool_size,
            allow_unicode_keys=True,
        )

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(func, *args, **kwargs)

    @staticmethod
    def _wrap(val: Any, ttl: int) -> dict[str, Any]:
        return {"val": val, "exp": from_ttl(ttl)}

    @staticmethod
    def _remaining_ttl(entry: dict[str, Any], now: int) -> int:
        """Best-effort seconds left on an entry (0 = no expiry)."""
        if not entry.get("exp"):
            return 0
        # Never round an expiring entry into a persistent one
        return max(round((entry["exp"] - now) / 1000), 1)

    async def set(self, key: str, val: Any, ttl: int = 0) -> bool:
        entry = self._wrap(val, ttl)
        logger.debug("memcached.set", key=key, exp=entry["exp"])
        return bool(await self._call(self._client.set, key, entry, expire=ttl, noreply=False))

    async def get(self, key: str) -> Any:
        entry = await self._call(self._client.get, key)
        if entry is None:
            return MISSING
        return entry["val"]

    async def mset(self, entries: list[ItemEntry]) -> bool:
        results = await asyncio.gather(
            *(self.set(entry.key, entry.val, entry.ttl) for entry in entries)
        )
        return all(results)

    async def mget(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        found = await self._call(self._client.get_many, keys)
        return {key: entry["val"] for key, entry in found.items()}

    async def incr(self, key: str, delta: int | float) -> int | float:
        # Native incr/decr is unsigned-integer only, so increments go
        # through gets + cas on the wrapped entry.
        for attempt in range(1, CAS_MAX_ATTEMPTS + 1):
            entry, cas = await self._call(self._client.gets, key)

            if entry is None:
                # First writer wins; a lost race retries against the new entry
                created = await self._call(
                    self._client.add, key, self._wrap(delta, 0), expire=0, noreply=False
                )
                if created:
                    return delta
            else:
                if not _is_number(entry["val"]):
                    raise CacheTypeError(f"@key [{key}] has non-numeric value.")

                now = now_ms()
                ttl = self._remaining_ttl(entry, now)
                new_entry = {"val": entry["val"] + delta, "exp": now + ttl * 1000 if ttl else 0}
                if await self._call(
                    self._client.cas, key, new_entry, cas, expire=ttl, noreply=False
                ):
                    return new_entry["val"]

            logger.debug("memcached.cas_retry", key=key, operation="increment", attempt=attempt)
            if attempt < CAS_MAX_ATTEMPTS:
                await asyncio.sleep(CAS_RETRY_DELAY)

        logger.warning("memcached.cas_exhausted", key=key, operation="increment")
        raise CacheRetryExhaustedError(key, "increment", CAS_MAX_ATTEMPTS)

    async def keys(self) -> list[str]:
        items = await self._call(self._client.stats, "items")

        # STAT items:<slab>:number <count>
        slabs: dict[str, int] = {}
        for stat, value in items.items():
            stat = stat.decode() if isinstance(stat, bytes) else stat
            parts = stat.split(":")
            if len(parts) == 3 and parts[0] == "items" and parts[2] == "number":
                slabs[parts[1]] = int(value)

        keys: list[str] = []
        for slab, number in slabs.items():
            dump = await self._call(self._client.stats, "cachedump", slab, str(number))
            keys.extend(k.decode() if isinstance(k, bytes) else k for k in dump)
        return keys

    async def has(self, key: str) -> bool:
        return (await self._call(self._client.get, key)) is not None

    async def delete(self, key: str) -> bool:
        return bool(await self._call(self._client.delete, key, noreply=False))

    async def expire(self, key: str, ttl: int) -> bool:
        for attempt in range(1, CAS_MAX_ATTEMPTS + 1):
            entry, cas = await self._call(self._client.gets, key)
            if entry is None:
                return False

            new_entry = self._wrap(entry["val"], ttl)
            if await self._call(self._client.cas, key, new_entry, cas, expire=ttl, noreply=False):
                return True

            logger.debug("memcached.cas_retry", key=key, operation="expire", attempt=attempt)
            if attempt < CAS_MAX_ATTEMPTS:
                await asyncio.sleep(CAS_RETRY_DELAY)

        logger.warning("memcached.cas_exhausted", key=key, operation="expire")
        raise CacheRetryExhaustedError(key, "expire", CAS_MAX_ATTEMPTS)

    async def ttl(self, key: str) -> int | None:
        entry = await self._call(self._client.get, key)
        if entry is None:
            return None
        if not entry.get("exp"):
            return 0
        return max(entry["exp"] - now_ms(), 1)

    async def close(self) -> None:
        await self._call(self._client.close)
