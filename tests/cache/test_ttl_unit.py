import time

import pytest

from polycache.exceptions import CacheValidationError
from polycache.ttl import Timeout, from_ttl, to_ttl


@pytest.mark.unit
def test_to_ttl_from_seconds_and_none():
    assert to_ttl(10) == 10
    assert to_ttl(0) == 0
    assert to_ttl(None) == 0
    assert to_ttl(3.0) == 3


@pytest.mark.unit
def test_to_ttl_from_expire_in():
    assert to_ttl(Timeout(expire_in=10)) == 10
    assert to_ttl({"expireIn": 10}) == 10
    assert to_ttl({"expire_in": 0}) == 0


@pytest.mark.unit
def test_to_ttl_from_expire_at_rounds_up():
    now = time.time()
    assert to_ttl(Timeout(expire_at=now + 0.75)) == 1
    assert to_ttl({"expireAt": now + 1.25}) == 2
    assert to_ttl({"expire_at": now + 2.8}) == 3


@pytest.mark.unit
def test_to_ttl_expire_at_in_the_past_still_expires():
    assert to_ttl(Timeout(expire_at=time.time() - 100)) == 1


@pytest.mark.unit
@pytest.mark.parametrize(
    "timeout",
    [
        -1,
        True,
        "10",
        {"expireIn": {}},
        {"expireAt": ""},
        {"expireIn": -5},
        {},
        {"expireIn": 1, "expireAt": 2},
        {"expiresIn": 1},
        [10],
    ],
)
def test_to_ttl_rejects_invalid_timeouts(timeout):
    with pytest.raises(CacheValidationError, match="timeout"):
        to_ttl(timeout)


@pytest.mark.unit
def test_from_ttl():
    # 0 means no timeout
    assert from_ttl(0) == 0
    assert from_ttl(None) == 0

    before = int(time.time() * 1000)
    exp = from_ttl(3)
    assert before + 3000 <= exp <= int(time.time() * 1000) + 3000
