from __future__ import annotations

import asyncio
import json

import pytest

from produce_sync.application.offline_cache import CACHE_METADATA_KEY, CacheUnavailableError, OfflineCache


def _fetcher(*values):
    calls: list[object] = []
    remaining = list(values)

    async def _fetch():
        calls.append("fetch")
        value = remaining.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    return _fetch, calls


def _cache(storage, clock, *, online: bool = True, ttl: int = 60):
    state = {"online": online}
    cache = OfflineCache(storage, is_online=lambda: state["online"], ttl_minutes=ttl, clock=clock)
    return cache, state


def test_first_fetch_goes_to_network_and_stores(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock)
    fetch, calls = _fetcher([{"id": "p-1"}])

    result = asyncio.run(cache.fetch("products", fetch))

    assert result.ok
    assert result.from_cache is False
    assert result.data == [{"id": "p-1"}]
    assert result.last_updated == frozen_clock.current
    assert calls == ["fetch"]
    assert cache.is_expired("products") is False
    assert storage.get(CACHE_METADATA_KEY) is not None


def test_offline_read_serves_cached_value(storage, frozen_clock) -> None:
    cache, state = _cache(storage, frozen_clock)
    fetch, calls = _fetcher(["banana"])
    asyncio.run(cache.fetch("products", fetch))
    saved_at = frozen_clock.current
    state["online"] = False
    frozen_clock.advance(days=2)

    result = asyncio.run(cache.fetch("products", fetch))

    assert result.from_cache is True
    assert result.data == ["banana"]
    assert result.last_updated == saved_at
    assert calls == ["fetch"]


def test_offline_without_cache_reports_unavailable(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock, online=False)
    fetch, calls = _fetcher(["never"])

    result = asyncio.run(cache.fetch("suppliers", fetch))

    assert result.ok is False
    assert isinstance(result.error, CacheUnavailableError)
    assert result.data is None
    assert calls == []


def test_fresh_entry_is_served_and_refreshed_in_background(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock)
    fetch, calls = _fetcher(["v1"], ["v2"])

    async def scenario():
        await cache.fetch("products", fetch)
        served = await cache.fetch("products", fetch)
        await cache.wait_for_refreshes()
        return served

    served = asyncio.run(scenario())

    assert served.from_cache is True
    assert served.data == ["v1"]
    assert calls == ["fetch", "fetch"]
    assert json.loads(storage.get("offline_cache_products")) == ["v2"]


def test_expired_entry_is_refetched(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock, ttl=5)
    fetch, calls = _fetcher(["old"], ["new"])
    asyncio.run(cache.fetch("prices", fetch))
    frozen_clock.advance(minutes=6)

    assert cache.is_expired("prices") is True
    result = asyncio.run(cache.fetch("prices", fetch))

    assert result.from_cache is False
    assert result.data == ["new"]
    assert calls == ["fetch", "fetch"]


def test_failed_fetch_falls_back_to_stale_copy(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock)
    fetch, _calls = _fetcher(["stale"], ConnectionError("timeout"))
    asyncio.run(cache.fetch("products", fetch))

    result = asyncio.run(cache.refresh("products", fetch))

    assert result.from_cache is True
    assert result.data == ["stale"]


def test_failed_fetch_without_copy_returns_error(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock)
    boom = ConnectionError("timeout")
    fetch, _calls = _fetcher(boom)

    result = asyncio.run(cache.fetch("products", fetch))

    assert result.error is boom


def test_clear_and_clear_expired(storage, frozen_clock) -> None:
    cache, _ = _cache(storage, frozen_clock)
    asyncio.run(cache.fetch("short", _fetcher([1])[0], ttl_minutes=1))
    asyncio.run(cache.fetch("long", _fetcher([2])[0], ttl_minutes=120))
    asyncio.run(cache.fetch("gone", _fetcher([3])[0]))
    frozen_clock.advance(minutes=5)

    cache.clear("gone")
    purged = cache.clear_expired()

    assert purged == 1
    assert cache.is_expired("short") is True
    assert cache.is_expired("gone") is True
    assert cache.is_expired("long") is False
    assert storage.keys("offline_cache_") == ["offline_cache_long", CACHE_METADATA_KEY]


@pytest.mark.parametrize("key", ["", "metadata"])
def test_reserved_keys_are_rejected(storage, frozen_clock, key: str) -> None:
    cache, _ = _cache(storage, frozen_clock)

    with pytest.raises(ValueError):
        asyncio.run(cache.fetch(key, _fetcher([1])[0]))
