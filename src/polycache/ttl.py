"""
TTL conversion helpers.

Callers describe expiry as plain seconds or as a :class:`Timeout`; backends
only ever see an integer number of seconds-to-live (``0`` = no expiry).
Backends that track expiry themselves use :func:`from_ttl` to turn it into
an absolute epoch-millisecond timestamp.
"""

import math
import time
from collections.abc import Mapping
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from polycache.exceptions import CacheValidationError


class Timeout(BaseModel):
    """Structured timeout: exactly one of ``expire_in`` or ``expire_at``."""

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid", populate_by_name=True)

    expire_in: int | None = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("expire_in", "expireIn"),
        description="Seconds from now",
    )
    expire_at: float | None = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("expire_at", "expireAt"),
        description="Absolute Unix timestamp (seconds since epoch)",
    )

    @model_validator(mode="after")
    def check_exactly_one(self) -> "Timeout":
        if (self.expire_in is None) == (self.expire_at is None):
            raise ValueError("exactly one of expire_in or expire_at is required")
        return self


TimeoutLike = Union[int, Timeout, Mapping[str, Any], None]


def now_ms() -> int:
    """Current time in milliseconds since epoch."""
    return int(time.time() * 1000)


def to_ttl(timeout: TimeoutLike) -> int:
    """
    Get time to live from a timeout.

    Args:
        timeout: seconds, Timeout (or a mapping validated into one), or None

    Returns:
        Remaining time to live in seconds (0 = no expiry)

    Raises:
        CacheValidationError: if the timeout is malformed or negative
    """
    if timeout is None:
        return 0
    if isinstance(timeout, bool):
        raise CacheValidationError("@timeout (int | Timeout) is invalid.")
    if isinstance(timeout, float) and timeout.is_integer():
        timeout = int(timeout)
    if isinstance(timeout, int):
        if timeout < 0:
            raise CacheValidationError("@timeout (int | Timeout) is invalid.")
        return timeout
    if isinstance(timeout, Mapping):
        try:
            timeout = Timeout.model_validate(dict(timeout))
        except ValidationError as e:
            raise CacheValidationError("@timeout (int | Timeout) is invalid.") from e
    if isinstance(timeout, Timeout):
        if timeout.expire_in is not None:
            return timeout.expire_in
        # A moment already passed still has to expire, never persist
        return max(math.ceil(timeout.expire_at - time.time()), 1)
    raise CacheValidationError("@timeout (int | Timeout) is invalid.")


def from_ttl(ttl: int | None) -> int:
    """
    Get timestamp of expiration from TTL.

    Returns:
        Milliseconds since epoch, or 0 when ``ttl`` means no expiry
    """
    if not ttl:
        return 0
    return now_ms() + ttl * 1000
