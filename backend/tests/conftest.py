"""
Pytest configuration for backend tests.

Sets a test environment before ``traktbridge`` is imported (``Config`` reads
the environment at import time) and provides shared fixtures: an in-memory
durable cache database, a fake Trakt API served through
``httpx.MockTransport`` and pre-wired client objects.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path for imports
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("APP_CLIENT_ID", "test-client-id")
os.environ.setdefault("APP_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("REFRESH_TOKEN", "test-refresh-token")
os.environ.setdefault("CACHE_DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV_FILE", str(backend_root / "tests" / ".env.test"))
os.environ.setdefault("MAX_RETRIES", "0")

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from traktbridge.models.base import Base
from traktbridge.services.cache_manager import CacheManager
from traktbridge.services.cached_trakt_client import CachedTraktClient
from traktbridge.services.token_manager import TokenManager
from traktbridge.services.trakt_client import TraktClient

TRAKT_URL = "https://api.trakt.test"


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


# ============================================================================
# Durable tier
# ============================================================================

@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def cache(session_factory):
    return CacheManager(session_factory)


# ============================================================================
# Fake Trakt API
# ============================================================================

class FakeTrakt:
    """
    Scripted Trakt API for ``httpx.MockTransport``.

    Routes map a request path to a list of responses served in order (the
    last one repeats) or to a callable taking the request. Every request is
    recorded in ``requests``.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []
        self.token_calls = 0
        self.token_response: Callable[[int], httpx.Response] = self._default_token_response

    @staticmethod
    def _default_token_response(call: int) -> httpx.Response:
        return httpx.Response(200, json={
            "access_token": f"access-{call}",
            "refresh_token": f"refresh-{call}",
            "expires_in": 7776000,
            "token_type": "bearer",
        })

    def add(self, path: str, *responses: Any) -> None:
        self.routes[path] = list(responses)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests if request.url.path != "/oauth/token"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_calls += 1
            return self.token_response(self.token_calls)

        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not_found", "error_description": request.url.path})
        if callable(route):
            return route(request)
        response = route.pop(0) if len(route) > 1 else route[0]
        if callable(response):
            return response(request)
        # Fresh copy, so a repeated response is never served twice
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def page_response(items: List[Any], page: int, page_count: int, page_size: int, item_count: int) -> httpx.Response:
    """Trakt list response with pagination headers."""
    return httpx.Response(
        200,
        content=json.dumps(items).encode(),
        headers={
            "content-type": "application/json",
            "x-pagination-page": str(page),
            "x-pagination-limit": str(page_size),
            "x-pagination-page-count": str(page_count),
            "x-pagination-item-count": str(item_count),
        },
    )


def movie(trakt_id: int, title: Optional[str] = None, year: int = 2000, **extra: Any) -> Dict[str, Any]:
    """Typed Trakt movie record."""
    return {
        "type": "movie",
        "movie": {"title": title or f"Movie {trakt_id}", "year": year, "ids": {"trakt": trakt_id}},
        **extra,
    }


def show(trakt_id: int, title: Optional[str] = None, year: int = 2000, **extra: Any) -> Dict[str, Any]:
    return {
        "type": "show",
        "show": {"title": title or f"Show {trakt_id}", "year": year, "ids": {"trakt": trakt_id}},
        **extra,
    }


@pytest.fixture
def fake_trakt():
    return FakeTrakt()


@pytest.fixture
def rotated_tokens():
    """Refresh tokens handed to ``on_rotate``, in order."""
    return []


@pytest.fixture
def token_manager(fake_trakt, rotated_tokens):
    return TokenManager(
        client_id="test-client-id",
        client_secret="test-client-secret",
        refresh_token="initial-refresh",
        base_url=TRAKT_URL,
        on_rotate=rotated_tokens.append,
        transport=fake_trakt.transport(),
    )


@pytest.fixture
def trakt_client(fake_trakt, token_manager):
    return TraktClient(token_manager=token_manager, base_url=TRAKT_URL, transport=fake_trakt.transport())


@pytest.fixture
def cached_client(trakt_client, cache):
    return CachedTraktClient(trakt_client, cache)
