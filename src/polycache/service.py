"""
Cache Service.

Namespaced key/value cache on top of any :class:`CacheBackend`. The
service validates keys and values before any I/O, prefixes every key with
``<ns>::`` and delegates to the backend. Two services bound to different
namespaces can share one backend without seeing each other's keys.

``get_and_set`` and ``get_and_delete`` use the backend's native ``getset``
/ ``pop`` when it has them. Otherwise they run ``get`` followed by
``set``/``delete``; a concurrent writer between the two steps can make
the returned old value stale. That is the case for Memcached
(``get_and_set`` and ``get_and_delete``) and the in-memory backend
(``get_and_set`` only, which cannot interleave on one event loop anyway).
"""

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any, ClassVar

from pydantic import ValidationError

from polycache.backends import create_backend
from polycache.backends.base import MISSING, CacheBackend, ItemEntry
from polycache.backends.memory import InMemoryBackend
from polycache.exceptions import CacheConfigError, CacheError, CacheValidationError
from polycache.logging import get_logger
from polycache.settings import NAMESPACE_DELIMITER, CacheSettings, get_settings
from polycache.ttl import TimeoutLike, to_ttl

logger = get_logger(__name__)

CacheKey = str | int


@dataclass(frozen=True)
class CacheEntry:
    """Parameter type of ``set_multi``."""

    key: CacheKey
    val: Any = MISSING
    timeout: TimeoutLike = None


def _check_key(key: Any, where: str = "") -> None:
    if key is None or isinstance(key, bool) or not isinstance(key, (str, int)) or key == "":
        raise CacheValidationError(f"@key (CacheKey) is required{where}.")


def _check_val(val: Any, where: str = "") -> None:
    if val is MISSING:
        raise CacheValidationError(f"@val (CacheValue) cannot be missing{where}.")


class CacheService:
    """Namespaced cache facade over one backend adapter."""

    def __init__(self, backend: CacheBackend, ns: str = "global", def_timeout: int = 0) -> None:
        if not isinstance(ns, str) or not ns or NAMESPACE_DELIMITER in ns:
            raise CacheValidationError(
                f"@ns must be a non-empty string without '{NAMESPACE_DELIMITER}'."
            )
        if isinstance(def_timeout, bool) or not isinstance(def_timeout, int) or def_timeout < 0:
            raise CacheValidationError("@def_timeout must be a non-negative integer.")

        self._backend = backend
        self._ns = ns
        self._def_timeout = def_timeout
        logger.info("cache.initialized", backend=backend.name, ns=ns, def_timeout=def_timeout)

    @classmethod
    def create(cls, settings: CacheSettings | None = None, **overrides: Any) -> "CacheService":
        """
        Factory method.

        Args:
            settings: cache settings (defaults to the environment-backed singleton)
            **overrides: individual settings fields, e.g. ``type="memcached"``

        Raises:
            CacheConfigError: if the resulting settings are invalid
        """
        try:
            if settings is None:
                settings = CacheSettings(**overrides) if overrides else get_settings()
            elif overrides:
                settings = CacheSettings(**{**settings.model_dump(), **overrides})
        except ValidationError as e:
            raise CacheConfigError(f"invalid cache settings: {e}") from e

        logger.info(
            "cache.constructing",
            type=settings.type,
            endpoint=settings.endpoint,
            ns=settings.ns,
        )
        return cls(create_backend(settings), settings.ns, settings.default_timeout)

    @property
    def ns(self) -> str:
        """Namespace of cache keys."""
        return self._ns

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def def_timeout(self) -> int:
        return self._def_timeout

    def hello(self) -> str:
        return f"cache-service:{self._backend.name}:{self._ns}"

    async def __aenter__(self) -> "CacheService":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _make_key(self, key: CacheKey) -> str:
        return f"{self._ns}{NAMESPACE_DELIMITER}{key}"

    def _resolve_ttl(self, timeout: TimeoutLike) -> int:
        if timeout is None:
            return self._def_timeout
        return to_ttl(timeout)

    async def exists(self, key: CacheKey) -> bool:
        """Check whether the key is cached."""
        _check_key(key)
        namespaced_key = self._make_key(key)
        ret = await self._backend.has(namespaced_key)
        logger.debug("cache.exists", key=namespaced_key, ret=ret)
        return ret

    async def keys(self) -> list[str]:
        """
        List the keys of this namespace.

        Accuracy depends on the backend; see ``MemcachedBackend.keys``.
        """
        prefix = f"{self._ns}{NAMESPACE_DELIMITER}"
        ret = [
            namespaced_key[len(prefix):]
            for namespaced_key in await self._backend.keys()
            if namespaced_key.startswith(prefix)
        ]
        logger.debug("cache.keys", ns=self._ns, count=len(ret))
        return ret

    async def set(self, key: CacheKey, val: Any, timeout: TimeoutLike = None) -> bool:
        """
        Store a key.

        Args:
            key: cache key
            val: any JSON-serialisable value, ``None`` included
            timeout: seconds or Timeout; omitted uses the service default

        Returns:
            True on success
        """
        _check_key(key)
        _check_val(val)
        namespaced_key = self._make_key(key)
        ttl = self._resolve_ttl(timeout)
        ret = await self._backend.set(namespaced_key, val, ttl)
        logger.debug("cache.set", key=namespaced_key, ttl=ttl, ret=ret)
        return ret

    async def set_multi(self, entries: Iterable[CacheEntry | Mapping[str, Any]]) -> bool:
        """Store multiple keys, each with its own timeout."""
        items: list[ItemEntry] = []
        for idx, entry in enumerate(entries):
            if isinstance(entry, Mapping):
                entry = CacheEntry(
                    key=entry.get("key"),
                    val=entry.get("val", MISSING),
                    timeout=entry.get("timeout"),
                )
            _check_key(entry.key, f" (at @entries[{idx}])")
            _check_val(entry.val, f" (at @entries[{idx}])")
            items.append(
                ItemEntry(self._make_key(entry.key), entry.val, self._resolve_ttl(entry.timeout))
            )

        ret = await self._backend.mset(items)
        logger.debug("cache.set_multi", keys=[item.key for item in items], ret=ret)
        return ret

    async def get(self, key: CacheKey, default: Any = None) -> Any:
        """Retrieve a key, or ``default`` when it is not cached."""
        _check_key(key)
        namespaced_key = self._make_key(key)
        ret = await self._backend.get(namespaced_key)
        logger.debug("cache.get", key=namespaced_key, hit=ret is not MISSING)
        return default if ret is MISSING else ret

    async def get_multi(self, keys: Iterable[CacheKey]) -> dict[CacheKey, Any]:
        """Retrieve multiple keys. Keys that are not cached are left out."""
        key_map: dict[str, CacheKey] = {}
        for idx, key in enumerate(keys):
            _check_key(key, f" (at @keys[{idx}])")
            key_map[self._make_key(key)] = key

        found = await self._backend.mget(list(key_map))
        ret = {key_map[namespaced_key]: val for namespaced_key, val in found.items()}
        logger.debug("cache.get_multi", keys=list(key_map), hits=len(ret))
        return ret

    async def increment(self, key: CacheKey, delta: int | float) -> int | float:
        """
        Increment the numeric value of a key.

        A key that is not cached starts from 0.

        Raises:
            CacheTypeError: if the stored value is not a number
            CacheRetryExhaustedError: if a CAS-based backend could not commit
        """
        _check_key(key)
        if isinstance(delta, bool) or not isinstance(delta, (int, float)):
            raise CacheValidationError("@delta (number) is required.")
        namespaced_key = self._make_key(key)
        ret = await self._backend.incr(namespaced_key, delta)
        logger.debug("cache.increment", key=namespaced_key, delta=delta, ret=ret)
        return ret

    async def get_and_set(self, key: CacheKey, val: Any, default: Any = None) -> Any:
        """Set the value of a key and return its old value (``default`` if none)."""
        _check_key(key)
        _check_val(val)
        namespaced_key = self._make_key(key)

        if self._backend.supports_getset:
            ret = await self._backend.getset(namespaced_key, val)
        else:
            ret = await self._backend.get(namespaced_key)
            if not await self._backend.set(namespaced_key, val):
                raise CacheError(f"get_and_set() failed for key [{namespaced_key}]")
        logger.debug("cache.get_and_set", key=namespaced_key, hit=ret is not MISSING)
        return default if ret is MISSING else ret

    async def get_and_delete(self, key: CacheKey, default: Any = None) -> Any:
        """Get the value of a key and delete it."""
        _check_key(key)
        namespaced_key = self._make_key(key)

        if self._backend.supports_pop:
            ret = await self._backend.pop(namespaced_key)
        else:
            ret = await self._backend.get(namespaced_key)
            await self._backend.delete(namespaced_key)
        logger.debug("cache.get_and_delete", key=namespaced_key, hit=ret is not MISSING)
        return default if ret is MISSING else ret

    async def delete(self, key: CacheKey) -> bool:
        """Delete a key. True if the key was cached."""
        _check_key(key)
        namespaced_key = self._make_key(key)
        ret = await self._backend.delete(namespaced_key)
        logger.debug("cache.delete", key=namespaced_key, ret=ret)
        return ret

    async def delete_multi(self, keys: Iterable[CacheKey]) -> list[bool]:
        """Delete multiple keys. Results follow the order of ``keys``."""
        namespaced_keys = []
        for idx, key in enumerate(keys):
            _check_key(key, f" (at @keys[{idx}])")
            namespaced_keys.append(self._make_key(key))

        ret = list(await asyncio.gather(*(self._backend.delete(k) for k in namespaced_keys)))
        logger.debug("cache.delete_multi", keys=namespaced_keys, ret=ret)
        return ret

    async def set_timeout(self, key: CacheKey, timeout: TimeoutLike) -> bool:
        """Set or update the timeout of a key."""
        _check_key(key)
        namespaced_key = self._make_key(key)
        ttl = to_ttl(timeout)
        ret = await self._backend.expire(namespaced_key, ttl)
        logger.debug("cache.set_timeout", key=namespaced_key, ttl=ttl, ret=ret)
        return ret

    async def get_timeout(self, key: CacheKey) -> int | None:
        """
        Get remaining time to live in milliseconds.

        Returns:
            - milliseconds to expiry
            - 0 if the key has no timeout
            - None if the key is not cached
        """
        _check_key(key)
        namespaced_key = self._make_key(key)
        ret = await self._backend.ttl(namespaced_key)
        logger.debug("cache.get_timeout", key=namespaced_key, ret=ret)
        return ret

    async def remove_timeout(self, key: CacheKey) -> bool:
        """Remove the timeout from a key."""
        _check_key(key)
        namespaced_key = self._make_key(key)
        ret = await self._backend.expire(namespaced_key, 0)
        logger.debug("cache.remove_timeout", key=namespaced_key, ret=ret)
        return ret

    async def close(self) -> None:
        """Close the backend connection."""
        await self._backend.close()
        logger.debug("cache.closed", backend=self._backend.name, ns=self._ns)


class DummyCacheService(CacheService):
    """
    Cache service over a process-wide in-memory backend.

    Used where no cache server is configured (local runs, tests). Every
    instance created in the process shares one backend, so writes made
    through one instance are visible to the others, as with a real
    shared cache.
    """

    _shared_backend: ClassVar[InMemoryBackend | None] = None

    @classmethod
    def shared_backend(cls) -> InMemoryBackend:
        """Get the process-wide backend, creating it on first use."""
        if DummyCacheService._shared_backend is None:
            DummyCacheService._shared_backend = InMemoryBackend(get_settings().memory_max_size)
        return DummyCacheService._shared_backend

    @classmethod
    def create(  # type: ignore[override]
        cls, ns: str = "global", def_timeout: int = 0
    ) -> "DummyCacheService":
        logger.debug("cache.constructing", type="dummy", ns=ns)
        return cls(cls.shared_backend(), ns, def_timeout)

    @classmethod
    def reset(cls) -> None:
        """Drop the shared backend (mainly for testing)."""
        DummyCacheService._shared_backend = None

    def hello(self) -> str:
        return f"dummy-{super().hello()}"


def create_cache_service(settings: CacheSettings | None = None, **overrides: Any) -> CacheService:
    """Create a cache service from settings; see :meth:`CacheService.create`."""
    return CacheService.create(settings, **overrides)
