"""Tests for the feed cache."""

import time
from unittest.mock import AsyncMock

import pytest

from bus_alerts.cache import AlertCache
from bus_alerts.feeds import FeedError


def _source(result=None, error=None) -> AsyncMock:
    source = AsyncMock()
    if error is not None:
        source.fetch.side_effect = error
    else:
        source.fetch.return_value = result
    return source


class TestFreshness:
    """Tests for is_fresh."""

    def test_empty_cache_is_not_fresh(self) -> None:
        assert not AlertCache().is_fresh()

    def test_fresh_within_ttl(self) -> None:
        cache = AlertCache(ttl_seconds=900)
        cache.set({"doc": 1}, now=1000.0)

        assert cache.is_fresh(now=1899.0)
        assert not cache.is_fresh(now=1900.0)

    def test_get_and_clear(self) -> None:
        cache = AlertCache()
        cache.set("doc", now=5.0)
        assert cache.get() == ("doc", 5.0)

        cache.clear()
        assert cache.get() == (None, None)


class TestLoad:
    """Tests for load and refresh."""

    @pytest.mark.asyncio
    async def test_first_load_fetches(self) -> None:
        cache = AlertCache()
        source = _source("fresh")

        assert await cache.load(source) == ("fresh", False)
        source.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_data_skips_fetch(self) -> None:
        cache = AlertCache()
        cache.set("cached")
        source = _source("fresh")

        assert await cache.load(source) == ("cached", False)
        source.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_data_returned_as_stale(self) -> None:
        cache = AlertCache(ttl_seconds=60)
        cache.set("old", now=time.time() - 120)
        source = _source("fresh")

        assert await cache.load(source) == ("old", True)
        source.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_first_load_error_propagates(self) -> None:
        cache = AlertCache()
        with pytest.raises(FeedError):
            await cache.load(_source(error=FeedError("down")))
        assert cache.data is None

    @pytest.mark.asyncio
    async def test_refresh_replaces_data(self) -> None:
        cache = AlertCache(ttl_seconds=60)
        cache.set("old", now=time.time() - 120)

        await cache.refresh(_source("new"))

        assert cache.data == "new"
        assert cache.is_fresh()
        assert not cache.is_updating

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_data(self) -> None:
        cache = AlertCache()
        cache.set("old", now=1.0)

        await cache.refresh(_source(error=FeedError("down")))

        assert cache.get() == ("old", 1.0)
        assert not cache.is_updating

    @pytest.mark.asyncio
    async def test_refresh_skipped_while_updating(self) -> None:
        cache = AlertCache()
        cache.is_updating = True
        source = _source("new")

        await cache.refresh(source)

        source.fetch.assert_not_awaited()
