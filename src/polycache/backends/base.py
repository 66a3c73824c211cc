"""Cache backend interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class _MissingType:
    """Marker for 'no value stored', distinct from a stored ``None``."""

    _instance: "_MissingType | None" = None

    def __new__(cls) -> "_MissingType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _MissingType()


@dataclass(frozen=True)
class ItemEntry:
    """One entry of a multi-key write, already namespaced."""

    key: str
    val: Any
    ttl: int = 0


class CacheBackend(ABC):
    """
    Abstract base class for cache backends.

    ``getset`` and ``pop`` are optional capabilities. A backend that
    implements them natively sets ``supports_getset``/``supports_pop``;
    otherwise the service composes them from ``get`` + ``set``/``delete``.
    """

    name: str = "abstract"
    supports_getset: bool = False
    supports_pop: bool = False

    @abstractmethod
    async def set(self, key: str, val: Any, ttl: int = 0) -> bool:
        """Set value with optional TTL in seconds."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Get value, or MISSING when the key does not exist."""
        pass

    @abstractmethod
    async def mset(self, entries: list[ItemEntry]) -> bool:
        """Set multiple keys, each with its own TTL."""
        pass

    @abstractmethod
    async def mget(self, keys: list[str]) -> dict[str, Any]:
        """Get multiple keys. Keys that do not exist are left out."""
        pass

    @abstractmethod
    async def incr(self, key: str, delta: int | float) -> int | float:
        """Increment a numeric value, starting from 0 for a missing key."""
        pass

    @abstractmethod
    async def keys(self) -> list[str]:
        """List all keys."""
        pass

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key. True if a key was removed."""
        pass

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        """Set TTL in seconds; 0 removes the expiry. False if key does not exist."""
        pass

    @abstractmethod
    async def ttl(self, key: str) -> int | None:
        """
        Get remaining time to live in milliseconds.

        Returns:
            - milliseconds to expiry
            - 0 if the key exists but has no expiry
            - None if the key does not exist
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release client resources."""
        pass

    async def getset(self, key: str, val: Any) -> Any:
        """Atomically set a value and return the old one (MISSING if none)."""
        raise NotImplementedError(f"{self.name} backend does not support getset")

    async def pop(self, key: str) -> Any:
        """Atomically get and delete a value (MISSING if none)."""
        raise NotImplementedError(f"{self.name} backend does not support pop")
