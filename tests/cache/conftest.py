"""Fixtures shared by the cache tests."""

import threading
import time
from typing import Any

import fakeredis
import pytest
import pytest_asyncio

from polycache.backends.memcached import JsonSerde, MemcachedBackend
from polycache.backends.memory import InMemoryBackend
from polycache.backends.redis import RedisBackend
from polycache.service import DummyCacheService


class FakeMemcacheClient:
    """
    In-process stand-in for ``pymemcache``'s client.

    Implements the subset the backend uses, with real CAS tokens and
    relative expiry, and serializes values through the backend's serde so
    the stored form matches the wire format.
    """

    def __init__(self) -> None:
        self._serde = JsonSerde()
        self._data: dict[str, tuple[bytes, float | None, int]] = {}
        self._cas_counter = 0
        self._lock = threading.Lock()
        self.closed = False
        self.calls: dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def _live(self, key: str) -> tuple[bytes, float | None, int] | None:
        item = self._data.get(key)
        if item is not None and item[1] is not None and time.time() >= item[1]:
            del self._data[key]
            return None
        return item

    def _put(self, key: str, value: Any, expire: int) -> None:
        data, _ = self._serde.serialize(key, value)
        self._cas_counter += 1
        self._data[key] = (data, time.time() + expire if expire else None, self._cas_counter)

    def _load(self, key: str, item: tuple[bytes, float | None, int]) -> Any:
        return self._serde.deserialize(key, item[0], 0)

    def set(self, key, value, expire=0, noreply=None):
        with self._lock:
            self._count("set")
            self._put(key, value, expire)
            return True

    def add(self, key, value, expire=0, noreply=None):
        with self._lock:
            self._count("add")
            if self._live(key) is not None:
                return False
            self._put(key, value, expire)
            return True

    def get(self, key, default=None):
        with self._lock:
            self._count("get")
            item = self._live(key)
            return default if item is None else self._load(key, item)

    def gets(self, key, default=None, cas_default=None):
        with self._lock:
            self._count("gets")
            item = self._live(key)
            if item is None:
                return default, cas_default
            return self._load(key, item), str(item[2]).encode()

    def get_many(self, keys):
        with self._lock:
            self._count("get_many")
            found = {}
            for key in keys:
                item = self._live(key)
                if item is not None:
                    found[key] = self._load(key, item)
            return found

    def cas(self, key, value, cas, expire=0, noreply=False):
        with self._lock:
            self._count("cas")
            item = self._live(key)
            if item is None:
                return None
            if str(item[2]).encode() != cas:
                return False
            self._put(key, value, expire)
            return True

    def delete(self, key, noreply=None):
        with self._lock:
            self._count("delete")
            return self._data.pop(key, None) is not None

    def stats(self, *args):
        with self._lock:
            live = [key for key in list(self._data) if self._live(key) is not None]
            if args == ("items",):
                return {b"items:1:number": len(live), b"items:1:age": 3} if live else {}
            if args and args[0] == "cachedump":
                return {key.encode(): b"[1 b; 0 s]" for key in live}
            return {}

    def close(self):
        self.closed = True

    def touch_cas(self, key: str) -> None:
        """Simulate a concurrent writer by bumping the CAS token."""
        with self._lock:
            data, exp, _ = self._data[key]
            self._cas_counter += 1
            self._data[key] = (data, exp, self._cas_counter)


@pytest.fixture
def memcache_client() -> FakeMemcacheClient:
    return FakeMemcacheClient()


@pytest_asyncio.fixture
async def memcached_backend(memcache_client):
    backend = MemcachedBackend("localhost:11211", client=memcache_client)
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def redis_backend():
    client = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    backend = RedisBackend("localhost:6379", client=client)
    yield backend
    await backend.close()


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend(max_size=100)


@pytest.fixture(params=["memory", "memcached", "redis"])
def any_backend(request, memory_backend, memcached_backend, redis_backend):
    """Each backend adapter in turn."""
    return {
        "memory": memory_backend,
        "memcached": memcached_backend,
        "redis": redis_backend,
    }[request.param]


@pytest.fixture(autouse=True)
def _reset_dummy_backend():
    """Give every test a fresh process-wide dummy backend."""
    DummyCacheService.reset()
    yield
    DummyCacheService.reset()
