"""
polycache - one cache contract over memory, Memcached and Redis.

Example:
    ```python
    cache = CacheService.create(type="redis", endpoint="localhost:6379", ns="users")
    await cache.set("user:1", {"name": "lemon"}, 60)
    await cache.get("user:1")
    ```
"""

from polycache.backends import (
    MISSING,
    CacheBackend,
    InMemoryBackend,
    ItemEntry,
    MemcachedBackend,
    RedisBackend,
    create_backend,
)
from polycache.exceptions import (
    CacheConfigError,
    CacheError,
    CacheRetryExhaustedError,
    CacheTypeError,
    CacheValidationError,
)
from polycache.service import CacheEntry, CacheService, DummyCacheService, create_cache_service
from polycache.settings import CacheSettings, get_settings, reset_settings
from polycache.ttl import Timeout, from_ttl, to_ttl

__version__ = "1.0.0"

__all__ = [
    "MISSING",
    # Service
    "CacheService",
    "DummyCacheService",
    "CacheEntry",
    "create_cache_service",
    # Backends
    "CacheBackend",
    "ItemEntry",
    "InMemoryBackend",
    "MemcachedBackend",
    "RedisBackend",
    "create_backend",
    # TTL
    "Timeout",
    "to_ttl",
    "from_ttl",
    # Settings
    "CacheSettings",
    "get_settings",
    "reset_settings",
    # Exceptions
    "CacheError",
    "CacheValidationError",
    "CacheTypeError",
    "CacheConfigError",
    "CacheRetryExhaustedError",
]
