"""
Integration tests for the HTTP API

Runs the FastAPI application with TestClient. Services are injected through
dependency overrides: either a mocked DataService (envelope and validation
checks) or the real pipeline over the fake Trakt API.
"""

from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from fastapi.testclient import TestClient

from traktbridge.config import Config
from traktbridge.dependencies import get_cache_manager, get_cached_client, get_data_service
from traktbridge.main import app
from traktbridge.services.data_service import DataService
from traktbridge.services.exceptions import TraktAPIError

from conftest import movie

pytestmark = pytest.mark.integration


def page(data, item_count=None, from_cache=False):
    count = item_count if item_count is not None else len(data)
    return {
        "data": data,
        "pagination": {"itemCount": count, "pageCount": 1, "pageSize": max(len(data), 1), "page": 1},
        "from_cache": from_cache,
    }


@pytest.fixture
def auth_headers():
    return {"x-api-key": Config.API_KEY}


@pytest.fixture
def data_service_mock():
    service = Mock(spec=DataService)
    service.indexed = Mock()
    for name in ("get_history", "get_ratings", "get_ratings_stats", "get_watchlist",
                 "get_trending", "get_full_trending", "search"):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture
def client(data_service_mock):
    app.dependency_overrides[get_data_service] = lambda: data_service_mock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# Authentication
# ============================================================================

class TestAuthentication:

    def test_missing_key_rejected(self, client):
        response = client.get("/ratings")

        assert response.status_code == 401
        body = response.json()
        assert body["status"] == 401
        assert body["error"] == "UnauthorizedError"

    def test_wrong_key_rejected(self, client):
        response = client.get("/", headers={"x-api-key": "wrong"})

        assert response.status_code == 401

    def test_non_ascii_key_rejected(self, client):
        response = client.get("/", headers={"x-api-key": b"caf\xe9"})

        assert response.status_code == 401

    def test_health_requires_key(self, client):
        assert client.get("/health/live").status_code == 401

    def test_valid_key(self, client, auth_headers):
        response = client.get("/", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"message": "Welcome to TraktBridge API Proxy"}
        assert "x-request-id" in response.headers


# ============================================================================
# Ratings
# ============================================================================

class TestRatingsRoute:

    def test_envelope(self, client, auth_headers, data_service_mock):
        data_service_mock.get_ratings.return_value = page(
            [
                {"type": "movie", "title": "Heat", "year": 1995, "rating": 10, "plays": 3,
                 "last_watched_at": None, "favorite": None},
                {"type": "show", "title": "The Wire", "year": 2002, "rating": 9, "plays": 0,
                 "last_watched_at": None, "favorite": None},
            ],
            item_count=3,
        )

        response = client.get("/ratings?min_rating=8&limit=2", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert body["total"] == 3
        assert body["from_cache"] is False
        assert body["_info"].startswith("Showing 2 ratings rated 8+ stars")
        assert "last_watched_at" not in body["data"][0]
        assert "favorite" not in body["data"][0]

        kwargs = data_service_mock.get_ratings.call_args.kwargs
        assert kwargs["min_rating"] == 8
        assert kwargs["limit"] == 2
        assert kwargs["sort_by"] == "rated_at"
        assert kwargs["include_unwatched"] is True

    def test_total_omitted_when_equal_to_count(self, client, auth_headers, data_service_mock):
        data_service_mock.get_ratings.return_value = page([{"type": "movie", "title": "Heat"}])

        body = client.get("/ratings", headers=auth_headers).json()

        assert body["count"] == 1
        assert "total" not in body

    def test_invalid_rating(self, client, auth_headers, data_service_mock):
        response = client.get("/ratings?min_rating=11", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["details"] == {"param": "min_rating", "reason": "above_maximum"}
        data_service_mock.get_ratings.assert_not_called()

    @pytest.mark.parametrize("query", ["limit=1.5", "page=2.5"])
    def test_fractional_count_rejected(self, client, auth_headers, data_service_mock, query):
        response = client.get(f"/ratings?{query}", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["details"]["reason"] == "invalid_value"
        data_service_mock.get_ratings.assert_not_called()

    def test_invalid_sort(self, client, auth_headers):
        response = client.get("/ratings?sort_by=title", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["details"]["allowedValues"] == ["rating", "rated_at"]

    def test_singular_type_alias(self, client, auth_headers, data_service_mock):
        data_service_mock.get_ratings.return_value = page([])

        client.get("/ratings?type=movie&force_refresh=true", headers=auth_headers)

        kwargs = data_service_mock.get_ratings.call_args.kwargs
        assert kwargs["type"] == "movies"
        assert kwargs["force_refresh"] is True

    def test_stats(self, client, auth_headers, data_service_mock):
        data_service_mock.get_ratings_stats.return_value = {
            "total": 2, "distribution": {"8": 1, "10": 1}, "avg": 9.0, "median": 9.0,
            "mode": 8, "std_dev": 1.0, "rating_spread": [8, 10],
            "percent_8_and_above": 100.0, "percent_9_and_above": 50.0, "percent_10s": 50.0,
        }

        body = client.get("/ratings/stats", headers=auth_headers).json()

        assert body["total"] == 2
        assert body["rating_spread"] == [8, 10]
        assert "_info" in body


# ============================================================================
# History
# ============================================================================

class TestHistoryRoute:

    def test_default_limit_and_tips(self, client, auth_headers, data_service_mock):
        data_service_mock.get_history.return_value = page([])

        body = client.get("/history", headers=auth_headers).json()

        assert data_service_mock.get_history.call_args.kwargs["limit"] == 100
        assert len(body["_tips"]) == 2

    def test_last_x_days_without_limit_returns_everything(self, client, auth_headers, data_service_mock):
        data_service_mock.get_history.return_value = page([])

        body = client.get("/history?last_x_days=7", headers=auth_headers).json()

        kwargs = data_service_mock.get_history.call_args.kwargs
        assert kwargs["limit"] is None
        assert kwargs["start_at"] is not None
        assert body["_info"] == "Includes 7 days of history."

    def test_date_range_requires_both_ends(self, client, auth_headers):
        response = client.get("/history/get-by-date-range?start_at=2024-01-01", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["details"] == {"param": "end_at", "reason": "missing_required"}

    def test_date_range_order(self, client, auth_headers):
        response = client.get(
            "/history/get-by-date-range?start_at=2024-02-01&end_at=2024-01-01", headers=auth_headers
        )

        assert response.status_code == 400

    def test_date_range(self, client, auth_headers, data_service_mock):
        data_service_mock.get_history.return_value = page([])

        body = client.get(
            "/history/get-by-date-range?start_at=2024-01-01&end_at=2024-01-31", headers=auth_headers
        ).json()

        assert data_service_mock.get_history.call_args.kwargs["limit"] is None
        assert body["_info"] == "Includes 30 days of history."


# ============================================================================
# Watchlist, trending, search
# ============================================================================

class TestListRoutes:

    def test_watchlist(self, client, auth_headers, data_service_mock):
        data_service_mock.get_watchlist.return_value = page([{"type": "movie", "title": "Heat", "rank": 1}])

        body = client.get("/watchlist?sort=added", headers=auth_headers).json()

        assert body["data"] == [{"type": "movie", "title": "Heat", "rank": 1}]
        assert data_service_mock.get_watchlist.call_args.kwargs["sort"] == "added"

    def test_trending_default_limit(self, client, auth_headers, data_service_mock):
        data_service_mock.get_trending.return_value = page([])

        client.get("/trending?type=show", headers=auth_headers)

        kwargs = data_service_mock.get_trending.call_args.kwargs
        assert kwargs["type"] == "shows"
        assert kwargs["limit"] == 10

    def test_trending_rejects_episodes(self, client, auth_headers):
        assert client.get("/trending?type=episodes", headers=auth_headers).status_code == 400

    def test_full_trending(self, client, auth_headers, data_service_mock):
        data_service_mock.get_full_trending.return_value = {
            "movies": page([{"type": "movie", "title": "Heat"}]),
            "shows": page([]),
        }

        body = client.get("/trending/full", headers=auth_headers).json()

        assert body["movies"]["count"] == 1
        assert body["shows"]["count"] == 0

    def test_search_requires_query(self, client, auth_headers):
        response = client.get("/search", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["details"]["param"] == "query"


# ============================================================================
# Errors, cache, health
# ============================================================================

class TestUpstreamErrors:

    def test_trakt_error_maps_to_502(self, client, auth_headers, data_service_mock):
        data_service_mock.get_watchlist.side_effect = TraktAPIError(
            "Trakt API responded [403 - forbidden] Invalid API key",
            status_code=403, error_code="forbidden", description="Invalid API key",
        )

        response = client.get("/watchlist", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["details"] == {
            "upstream_status": 403,
            "error_code": "forbidden",
            "description": "Invalid API key",
        }


class TestCacheRoutes:

    @pytest.fixture
    def cache_client(self, client, cached_client, cache):
        app.dependency_overrides[get_cached_client] = lambda: cached_client
        app.dependency_overrides[get_cache_manager] = lambda: cache
        return client

    def test_flush_unknown_type(self, cache_client, auth_headers):
        response = cache_client.delete("/cache/everything", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["details"]["reason"] == "invalid_option"

    def test_flush_type(self, cache_client, auth_headers, data_service_mock):
        response = cache_client.delete("/cache/ratings", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "cache_type": "ratings", "deleted": 0}
        data_service_mock.indexed.invalidate.assert_called_once()

    def test_flush_all(self, cache_client, auth_headers):
        response = cache_client.delete("/cache", headers=auth_headers)

        assert response.json()["success"] is True

    def test_stats(self, cache_client, auth_headers):
        body = cache_client.get("/cache/stats", headers=auth_headers).json()

        assert body["memory_entries"] == 0
        assert body["hits"] == 0


class TestHealth:

    def test_live(self, client, auth_headers):
        assert client.get("/health/live", headers=auth_headers).json() == {"status": "alive"}

    def test_ready(self, client, auth_headers):
        response = client.get("/health/ready", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"status": "ready", "database": "connected"}


class TestLifespan:

    def test_startup_logs_configuration_summary(self, caplog):
        with caplog.at_level("INFO", logger="traktbridge.main"):
            with TestClient(app) as lifespan_client:
                assert lifespan_client.app.state.data_service is not None

        assert "trakt_api_url: " in caplog.text
        assert Config.API_KEY not in caplog.text


# ============================================================================
# End to end
# ============================================================================

class TestEndToEnd:
    """Routes over the real pipeline and the fake Trakt API."""

    @pytest.fixture
    def live_client(self, fake_trakt, cached_client):
        fake_trakt.add("/users/me/ratings", httpx.Response(200, json=[
            {**movie(1, "Heat", 1995), "rating": 10, "rated_at": "2024-03-01T00:00:00.000Z"},
            {**movie(2, "Ronin", 1998), "rating": 8, "rated_at": "2024-01-01T00:00:00.000Z"},
            {**movie(5, "Thief", 1981), "rating": 3, "rated_at": "2023-12-01T00:00:00.000Z"},
        ]))
        fake_trakt.add("/users/me/watched/movies", httpx.Response(200, json=[]))
        fake_trakt.add("/users/me/watched/shows", httpx.Response(200, json=[]))
        fake_trakt.add("/users/me/favorites", httpx.Response(200, json=[]))

        service = DataService(cached_client)
        app.dependency_overrides[get_data_service] = lambda: service
        try:
            yield TestClient(app)
        finally:
            app.dependency_overrides.clear()

    def test_ratings_then_cached(self, live_client, auth_headers, fake_trakt):
        first = live_client.get("/ratings?min_rating=8", headers=auth_headers).json()
        second = live_client.get("/ratings?min_rating=8", headers=auth_headers).json()

        assert first["count"] == 2
        assert first["from_cache"] is False
        assert second["from_cache"] is True
        assert first["data"][0] == {
            "type": "movie",
            "title": "Heat",
            "year": 1995,
            "rating": 10,
            "rated_at": "2024-03-01T00:00:00.000Z",
            "plays": 0,
        }
        assert fake_trakt.paths().count("/users/me/ratings") == 1
