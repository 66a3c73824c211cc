"""
Redis cache backend.

Uses ``redis.asyncio`` with values stored as JSON text. Redis provides
the atomic primitives natively: exact integer ``INCRBY`` with float-capable
``INCRBYFLOAT`` as fallback, ``GETSET`` and ``MULTI`` transactions, so
nothing here needs a retry loop.

Capabilities: native ``getset`` (``GETSET``) and ``pop`` (``GET`` + ``DEL``
inside one ``MULTI``/``EXEC``), both atomic.
"""

import json
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import ResponseError

from polycache.backends.base import MISSING, CacheBackend, ItemEntry
from polycache.exceptions import CacheTypeError

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINT = "localhost:6379"


def redis_url(endpoint: str | None) -> str:
    """Build Redis URL from ``host:port`` or pass a full URL through."""
    endpoint = endpoint or DEFAULT_ENDPOINT
    if "://" in endpoint:
        return endpoint
    return f"redis://{endpoint}"


def _dumps(val: Any) -> str:
    return json.dumps(val, separators=(",", ":"))


def _loads(data: str | None) -> Any:
    if data is None:
        return MISSING
    return json.loads(data)


def _parse_number(raw: str | float) -> int | float:
    """Normalize an INCRBYFLOAT reply, returning integral results as int."""
    if isinstance(raw, str) and raw.lstrip("-").isdigit():
        return int(raw)
    result = float(raw)
    return int(result) if result.is_integer() else result


class RedisBackend(CacheBackend):
    """Redis backend."""

    name = "redis"
    supports_getset = True
    supports_pop = True

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        max_connections: int = 50,
        client: "Redis[str] | None" = None,
    ) -> None:
        self.endpoint = endpoint or DEFAULT_ENDPOINT
        self._redis = client or Redis.from_url(
            redis_url(endpoint),
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            max_connections=max_connections,
        )

    async def set(self, key: str, val: Any, ttl: int = 0) -> bool:
        if ttl > 0:
            await self._redis.set(key, _dumps(val), ex=ttl)
        else:
            await self._redis.set(key, _dumps(val))
        return True  # SET always replies OK

    async def get(self, key: str) -> Any:
        return _loads(await self._redis.get(key))

    async def mset(self, entries: list[ItemEntry]) -> bool:
        # MSET cannot carry a TTL per key, so queue individual SETs in one transaction
        async with self._redis.pipeline(transaction=True) as pipe:
            for entry in entries:
                if entry.ttl > 0:
                    pipe.set(entry.key, _dumps(entry.val), ex=entry.ttl)
                else:
                    pipe.set(entry.key, _dumps(entry.val))
            results = await pipe.execute()
        return all(results)

    async def mget(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        values = await self._redis.mget(keys)
        return {key: json.loads(data) for key, data in zip(keys, values) if data is not None}

    async def getset(self, key: str, val: Any) -> Any:
        return _loads(await self._redis.getset(key, _dumps(val)))

    async def pop(self, key: str) -> Any:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.delete(key)
            data, _ = await pipe.execute()
        return _loads(data)

    async def incr(self, key: str, delta: int | float) -> int | float:
        try:
            if isinstance(delta, int):
                try:
                    return await self._redis.incrby(key, delta)
                except ResponseError:
                    # Stored value is a float or leaves the 64-bit range
                    logger.debug("redis.incrby_fallback", key=key)
            raw = await self._redis.incrbyfloat(key, delta)
        except ResponseError as e:
            raise CacheTypeError(f"@key [{key}] has non-numeric value.") from e
        return _parse_number(raw)

    async def keys(self) -> list[str]:
        return [key async for key in self._redis.scan_iter(match="*")]

    async def has(self, key: str) -> bool:
        return await self._redis.exists(key) > 0

    async def delete(self, key: str) -> bool:
        return await self._redis.delete(key) == 1

    async def expire(self, key: str, ttl: int) -> bool:
        if ttl > 0:
            return bool(await self._redis.expire(key, ttl))
        # EXPIRE 0 would delete the key; PERSIST replies 0 for a key without expiry too
        if await self._redis.persist(key):
            return True
        return await self.has(key)

    async def ttl(self, key: str) -> int | None:
        ms = await self._redis.pttl(key)  # -2: no key / -1: no expiry
        if ms >= 0:
            return max(ms, 1)
        if ms == -1:
            return 0
        return None

    async def close(self) -> None:
        await self._redis.aclose()
        logger.debug("redis.closed", endpoint=self.endpoint)
