"""
Unit tests for DataService

Runs the full fetch -> cache -> enrich -> flatten pipeline against the fake
Trakt API.
"""

import httpx
import pytest

from traktbridge.services.data_service import DataService, paginate

from conftest import movie, show


def rated(item, rating, rated_at):
    return {**item, "rating": rating, "rated_at": rated_at}


@pytest.fixture
def trakt_account(fake_trakt):
    """A small Trakt account: five ratings, two watched movies, one favorite."""
    fake_trakt.add("/users/me/ratings", httpx.Response(200, json=[
        rated(movie(1, "Heat", 1995), 10, "2024-03-01T00:00:00.000Z"),
        rated(movie(2, "Ronin", 1998), 8, "2024-01-01T00:00:00.000Z"),
        rated(show(3, "The Wire", 2002), 9, "2024-02-01T00:00:00.000Z"),
        rated(movie(4, "Collateral", 2004), 6, "2024-04-01T00:00:00.000Z"),
        rated(movie(5, "Thief", 1981), 3, "2023-12-01T00:00:00.000Z"),
    ]))
    fake_trakt.add("/users/me/watched/movies", httpx.Response(200, json=[
        {"plays": 3, "last_watched_at": "2024-05-01T00:00:00.000Z", "reset_at": None,
         "movie": {"ids": {"trakt": 1}}},
        {"plays": 1, "last_watched_at": "2023-06-01T00:00:00.000Z", "reset_at": None,
         "movie": {"ids": {"trakt": 4}}},
    ]))
    fake_trakt.add("/users/me/watched/shows", httpx.Response(200, json=[]))
    fake_trakt.add("/users/me/favorites", httpx.Response(200, json=[
        {"type": "movie", "notes": "Diner scene", "movie": {"ids": {"trakt": 1}}},
    ]))
    return fake_trakt


@pytest.fixture
def data_service(cached_client):
    return DataService(cached_client)


class TestPaginate:

    def test_slice_and_metadata(self):
        result = paginate(list(range(5)), limit=2, page=2)

        assert result["data"] == [2, 3]
        assert result["pagination"] == {"itemCount": 5, "pageCount": 3, "pageSize": 2, "page": 2}

    def test_no_limit_returns_everything(self):
        result = paginate([1, 2], limit=None)

        assert result["data"] == [1, 2]
        assert result["pagination"]["pageCount"] == 1


class TestRatings:

    @pytest.mark.asyncio
    async def test_min_rating_with_limit(self, trakt_account, data_service):
        result = await data_service.get_ratings(min_rating=8, limit=2)

        assert len(result["data"]) == 2
        assert result["pagination"]["itemCount"] == 3
        # Newest rating first
        assert [item["title"] for item in result["data"]] == ["Heat", "The Wire"]

    @pytest.mark.asyncio
    async def test_enrichment(self, trakt_account, data_service):
        result = await data_service.get_ratings(type="movies", min_rating=10)

        heat = result["data"][0]
        assert heat["plays"] == 3
        assert heat["last_watched_at"] == "2024-05-01T00:00:00.000Z"
        assert heat["favorite"] is True
        assert heat["favorite_note"] == "Diner scene"

    @pytest.mark.asyncio
    async def test_sort_by_rating_ascending(self, trakt_account, data_service):
        result = await data_service.get_ratings(sort_by="rating", order="asc", limit=None)

        assert [item["rating"] for item in result["data"]] == [3, 6, 8, 9, 10]

    @pytest.mark.asyncio
    async def test_type_and_max_rating(self, trakt_account, data_service):
        result = await data_service.get_ratings(type="movies", max_rating=8)

        assert [item["title"] for item in result["data"]] == ["Collateral", "Ronin", "Thief"]

    @pytest.mark.asyncio
    async def test_exclude_unwatched(self, trakt_account, data_service):
        result = await data_service.get_ratings(include_unwatched=False)

        assert [item["title"] for item in result["data"]] == ["Collateral", "Heat"]

    @pytest.mark.asyncio
    async def test_filters_share_one_upstream_fetch(self, trakt_account, data_service):
        await data_service.get_ratings(min_rating=8)
        second = await data_service.get_ratings(max_rating=5)

        ratings_calls = [path for path in trakt_account.paths() if path == "/users/me/ratings"]
        assert len(ratings_calls) == 1
        assert second["from_cache"] is True

    @pytest.mark.asyncio
    async def test_force_refresh_refetches_ratings_once(self, trakt_account, data_service):
        await data_service.get_ratings()
        result = await data_service.get_ratings(force_refresh=True)

        ratings_calls = [path for path in trakt_account.paths() if path == "/users/me/ratings"]
        assert len(ratings_calls) == 2
        assert result["from_cache"] is False

    @pytest.mark.asyncio
    async def test_invalid_sort_field(self, data_service):
        with pytest.raises(ValueError):
            await data_service.get_ratings(sort_by="title")


class TestRatingsStats:

    @pytest.mark.asyncio
    async def test_stats_from_distribution(self, fake_trakt, data_service):
        fake_trakt.add("/users/me/stats", httpx.Response(200, json={
            "ratings": {
                "total": 4,
                "distribution": {"1": 0, "6": 1, "8": 1, "9": 0, "10": 2},
            },
        }))

        stats = await data_service.get_ratings_stats()

        assert stats["total"] == 4
        assert stats["avg"] == 8.5
        assert stats["median"] == 9
        assert stats["mode"] == 10
        assert stats["rating_spread"] == [6, 10]
        assert stats["percent_8_and_above"] == 75.0
        assert stats["percent_10s"] == 50.0

    @pytest.mark.asyncio
    async def test_no_ratings(self, fake_trakt, data_service):
        fake_trakt.add("/users/me/stats", httpx.Response(200, json={"ratings": {"total": 0, "distribution": {}}}))

        stats = await data_service.get_ratings_stats()

        assert stats == {"total": 0, "distribution": {}}


class TestOtherResources:

    @pytest.mark.asyncio
    async def test_history_is_flattened_and_enriched(self, trakt_account, data_service):
        trakt_account.add("/users/me/history/movies", httpx.Response(200, json=[
            {"id": 1, "watched_at": "2024-05-01T00:00:00.000Z", "action": "watch", **movie(1, "Heat", 1995)},
        ]))

        result = await data_service.get_history(type="movies", limit=10)

        assert result["data"] == [{
            "type": "movie",
            "title": "Heat",
            "year": 1995,
            "rating": 10,
            "plays": 3,
            "watched_at": "2024-05-01T00:00:00.000Z",
            "last_watched_at": None,
            "rewatch_started": None,
            "favorite": True,
            "favorite_note": "Diner scene",
        }]

    @pytest.mark.asyncio
    async def test_full_trending(self, trakt_account, data_service):
        trakt_account.add("/movies/trending", httpx.Response(200, json=[
            {"watchers": 40, "movie": {"title": "Heat", "year": 1995, "ids": {"trakt": 1}}},
        ]))
        trakt_account.add("/shows/trending", httpx.Response(200, json=[
            {"watchers": 25, "show": {"title": "The Wire", "year": 2002, "ids": {"trakt": 3}}},
        ]))

        result = await data_service.get_full_trending(limit=10)

        assert result["movies"]["data"][0]["rating"] == 10
        assert result["shows"]["data"][0]["type"] == "show"
        assert result["shows"]["data"][0]["rating"] == 9

    @pytest.mark.asyncio
    async def test_search(self, trakt_account, data_service):
        trakt_account.add("/search/movie,show", httpx.Response(200, json=[
            {"type": "movie", "score": 1000, **movie(2, "Ronin", 1998)},
        ]))

        result = await data_service.search("ronin")

        assert result["data"][0]["title"] == "Ronin"
        assert result["data"][0]["score"] == 1000
        assert result["data"][0]["rating"] == 8
