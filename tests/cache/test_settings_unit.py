import pytest

from polycache.exceptions import CacheConfigError
from polycache.service import CacheService
from polycache.settings import CacheSettings, get_settings, reset_settings


@pytest.mark.unit
def test_defaults():
    cfg = CacheSettings()
    assert cfg.type == "redis"
    assert cfg.endpoint is None
    assert cfg.ns == "global"
    assert cfg.default_timeout == 0
    assert cfg.log_format == "console"


@pytest.mark.unit
def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CACHE_TYPE", "memcached")
    monkeypatch.setenv("CACHE_ENDPOINT", "cache.internal:11211")
    monkeypatch.setenv("CACHE_DEFAULT_TIMEOUT", "30")
    monkeypatch.setenv("CACHE_NS", "svc")

    cfg = CacheSettings()
    assert cfg.type == "memcached"
    assert cfg.endpoint == "cache.internal:11211"
    assert cfg.default_timeout == 30
    assert cfg.ns == "svc"


@pytest.mark.unit
def test_keyword_arguments_win_over_environment(monkeypatch):
    monkeypatch.setenv("CACHE_DEFAULT_TIMEOUT", "30")
    cfg = CacheSettings(default_timeout=5, type="redis")
    assert cfg.default_timeout == 5


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [{"type": "dynamo"}, {"ns": "a::b"}, {"ns": ""}, {"default_timeout": -1}],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValueError):
        CacheSettings(**overrides)


@pytest.mark.unit
def test_settings_singleton():
    first = get_settings()
    assert get_settings() is first
    reset_settings()
    assert get_settings() is not first


@pytest.mark.unit
def test_create_wraps_invalid_settings():
    with pytest.raises(CacheConfigError):
        CacheService.create(type="dynamo")
