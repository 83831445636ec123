"""
Unit tests for the cache-first Trakt client

Covers:
- Cache hits and misses, ``from_cache`` flag
- Deterministic keys from bound call arguments
- Per-call and next-call forced refresh (single-shot)
- Stale fallback when a forced refresh fails
"""

import asyncio

import httpx
import pytest

from traktbridge.services.cached_trakt_client import cache_type_for
from traktbridge.services.exceptions import TraktAPIError

from conftest import movie


class TestCacheKeys:

    def test_cache_type_for(self):
        assert cache_type_for("get_watchlist") == "watchlist"
        assert cache_type_for("get_watched") == "watched"
        assert cache_type_for("search") == "search"

    def test_defaults_and_explicit_values_share_a_key(self, cached_client):
        implicit = cached_client.cache_key("get_watched")
        explicit = cached_client.cache_key("get_watched", type="movies")
        positional = cached_client.cache_key("get_watched", "movies")

        assert implicit == explicit == positional == "watched?type=movies"

    def test_keys_differ_by_arguments(self, cached_client):
        assert cached_client.cache_key("get_ratings", type="movies") != cached_client.cache_key("get_ratings")


class TestCaching:

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, fake_trakt, cached_client):
        fake_trakt.add("/users/me/ratings", httpx.Response(200, json=[movie(1, rating=9)]))

        first = await cached_client.get_ratings()
        second = await cached_client.get_ratings()

        assert first["from_cache"] is False
        assert second["from_cache"] is True
        assert second["data"] == first["data"]
        assert fake_trakt.paths() == ["/users/me/ratings"]

    @pytest.mark.asyncio
    async def test_from_cache_is_not_stored(self, fake_trakt, cached_client, cache):
        fake_trakt.add("/users/me/stats", httpx.Response(200, json={"ratings": {}}))

        await cached_client.get_stats()

        assert "from_cache" not in await cache.get("stats")

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self, fake_trakt, cached_client, cache):
        fake_trakt.add("/users/me/stats", httpx.Response(500, json={"error": "server_error"}))

        with pytest.raises(TraktAPIError):
            await cached_client.get_stats()

        assert await cache.get("stats") is None

    @pytest.mark.asyncio
    async def test_other_attributes_delegate_to_client(self, cached_client, trakt_client):
        assert cached_client.base_url == trakt_client.base_url
        assert cached_client.build_url("/users/me/stats").endswith("/users/me/stats")


class TestForceRefresh:

    @pytest.mark.asyncio
    async def test_force_refresh_argument(self, fake_trakt, cached_client):
        fake_trakt.add(
            "/users/me/stats",
            httpx.Response(200, json={"plays": 1}),
            httpx.Response(200, json={"plays": 2}),
        )

        await cached_client.get_stats()
        refreshed = await cached_client.get_stats(force_refresh=True)
        cached = await cached_client.get_stats()

        assert refreshed == {"data": {"plays": 2}, "pagination": None, "from_cache": False}
        assert cached["data"] == {"plays": 2}
        assert cached["from_cache"] is True

    @pytest.mark.asyncio
    async def test_force_next_call_is_single_shot(self, fake_trakt, cached_client):
        fake_trakt.add("/users/me/stats", httpx.Response(200, json={"plays": 1}))
        await cached_client.get_stats()

        cached_client.force_refresh_next_call()
        forced = await cached_client.get_stats()
        after = await cached_client.get_stats()

        assert forced["from_cache"] is False
        assert after["from_cache"] is True
        assert len(fake_trakt.paths()) == 2

    @pytest.mark.asyncio
    async def test_force_next_call_consumed_once_across_gather(self, fake_trakt, cached_client):
        fake_trakt.add("/users/me/watched/movies", httpx.Response(200, json=[]))
        fake_trakt.add("/users/me/watched/shows", httpx.Response(200, json=[]))
        await cached_client.get_watched(type="movies")
        await cached_client.get_watched(type="shows")

        cached_client.force_refresh_next_call()
        results = await asyncio.gather(
            cached_client.get_watched(type="movies"),
            cached_client.get_watched(type="shows"),
        )

        assert sorted(result["from_cache"] for result in results) == [False, True]
        assert len(fake_trakt.paths()) == 3


class TestStaleFallback:

    @pytest.mark.asyncio
    async def test_failed_forced_refresh_returns_stale_data(self, fake_trakt, cached_client):
        fake_trakt.add(
            "/users/me/stats",
            httpx.Response(200, json={"plays": 1}),
            httpx.Response(500, json={"error": "server_error"}),
        )
        await cached_client.get_stats()

        result = await cached_client.get_stats(force_refresh=True)

        assert result["data"] == {"plays": 1}
        assert result["from_cache"] is True

    @pytest.mark.asyncio
    async def test_html_body_on_forced_refresh_returns_stale_data(self, fake_trakt, cached_client):
        fake_trakt.add(
            "/users/me/stats",
            httpx.Response(200, json={"plays": 1}),
            httpx.Response(200, text="<html>cloudflare</html>", headers={"content-type": "text/html"}),
        )
        await cached_client.get_stats()

        result = await cached_client.get_stats(force_refresh=True)

        assert result["data"] == {"plays": 1}
        assert result["from_cache"] is True

    @pytest.mark.asyncio
    async def test_failed_forced_refresh_without_cache_raises(self, fake_trakt, cached_client):
        fake_trakt.add("/users/me/stats", httpx.Response(500, json={"error": "server_error"}))

        with pytest.raises(TraktAPIError):
            await cached_client.get_stats(force_refresh=True)


class TestFlush:

    @pytest.mark.asyncio
    async def test_flush_cache_forces_refetch(self, fake_trakt, cached_client):
        fake_trakt.add("/users/me/stats", httpx.Response(200, json={"plays": 1}))
        await cached_client.get_stats()

        assert await cached_client.flush_cache("stats") == 1
        result = await cached_client.get_stats()

        assert result["from_cache"] is False
