"""
Cache backends.

One adapter per storage engine, all implementing :class:`CacheBackend`.
"""

from polycache.backends.base import MISSING, CacheBackend, ItemEntry
from polycache.backends.memcached import MemcachedBackend
from polycache.backends.memory import InMemoryBackend
from polycache.backends.redis import RedisBackend
from polycache.exceptions import CacheConfigError
from polycache.settings import CacheSettings


def create_backend(settings: CacheSettings) -> CacheBackend:
    """Create the backend adapter selected by ``settings.type``."""
    match settings.type:
        case "memcached":
            return MemcachedBackend(
                settings.endpoint,
                connect_timeout=settings.connect_timeout,
                timeout=settings.socket_timeout,
                max_pool_size=settings.max_connections,
            )
        case "redis":
            return RedisBackend(
                settings.endpoint,
                socket_timeout=settings.socket_timeout,
                socket_connect_timeout=settings.connect_timeout,
                max_connections=settings.max_connections,
            )
        case _:
            raise CacheConfigError(f"@type [{settings.type}] is invalid.")


__all__ = [
    "MISSING",
    "CacheBackend",
    "ItemEntry",
    "InMemoryBackend",
    "MemcachedBackend",
    "RedisBackend",
    "create_backend",
]
