"""
FastAPI Main Application for TraktBridge

This module defines the main FastAPI application entry point with:
- API route registration
- Inbound API-key authentication on every route
- Request logging middleware with X-Request-ID correlation
- Lifespan context manager building the Trakt client and cache graph

Entry Point:
    Run with: uvicorn traktbridge.main:app --reload
    Dev Mode: python backend/dev.py
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from traktbridge.api import (
    cache_routes,
    health_routes,
    history_routes,
    ratings_routes,
    trending_routes,
    watchlist_routes,
)
from traktbridge.api.auth import verify_api_key
from traktbridge.api.errors import register_exception_handlers
from traktbridge.config import Config
from traktbridge.database import SessionLocal, engine
from traktbridge.models.base import Base
from traktbridge.services.cache_manager import CacheManager
from traktbridge.services.cached_trakt_client import CachedTraktClient
from traktbridge.services.data_service import DataService
from traktbridge.services.indexed_cache_service import IndexedCacheService
from traktbridge.services.structured_logging import (
    clear_context,
    configure_logging,
    generate_request_id,
    set_request_id,
)
from traktbridge.services.token_manager import TokenManager
from traktbridge.services.trakt_client import TraktClient

configure_logging()

logger = logging.getLogger(__name__)


# HTTP Request Logging Middleware with X-Request-ID correlation
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests and responses with correlation IDs.

    Logs:
    - Request method, path, and client IP
    - Response status code and processing time
    - Errors and exceptions

    Correlation:
    - Extracts or generates X-Request-ID for request tracing
    - Sets correlation context for structured logging
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"🌐 [{request_id}] {request.method} {request.url.path} from {client_ip}")

        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000

            response.headers["X-Request-ID"] = request_id

            status_emoji = "✓" if response.status_code < 400 else "✗"
            logger.info(
                f"   [{request_id}] {status_emoji} {response.status_code} "
                f"({process_time:.2f}ms)"
            )

            return response
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                f"   [{request_id}] ✗ Request failed after {process_time:.2f}ms: "
                f"{type(e).__name__}: {e}"
            )
            raise
        finally:
            clear_context()


def build_services(app: FastAPI) -> CacheManager:
    """
    Build the service graph and store it on ``app.state``.

    TokenManager -> TraktClient -> CachedTraktClient (over a two-tier
    CacheManager) -> IndexedCacheService -> DataService.
    """
    token_manager = TokenManager()
    client = TraktClient(token_manager=token_manager)
    cache = CacheManager(SessionLocal)
    cached_client = CachedTraktClient(client, cache)
    indexed = IndexedCacheService(cached_client, cache)

    app.state.token_manager = token_manager
    app.state.cache_manager = cache
    app.state.cached_client = cached_client
    app.state.data_service = DataService(cached_client, indexed)
    return cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown tasks.

    Startup Tasks:
        1. Log the configuration summary and report missing settings
        2. Create the durable cache table
        3. Build the client/cache service graph
        4. Start the expiry sweeper

    Shutdown Tasks:
        1. Stop the sweeper
    """
    # ========== STARTUP ==========
    logger.info("=" * 60)
    logger.info(f"Starting {Config.APP_TITLE} v{Config.APP_VERSION}")
    logger.info("=" * 60)

    for name, value in Config.get_summary().items():
        logger.info(f"  {name}: {value}")

    missing = Config.validate()
    if missing:
        logger.warning(f"⚠ Missing or invalid configuration: {', '.join(missing)}")

    logger.info("Creating cache tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("✓ Cache tables created/verified")

    cache = build_services(app)
    cache.start_sweeper(Config.CACHE_SWEEP_INTERVAL)
    logger.info(f"✓ Cache sweeper started (every {Config.CACHE_SWEEP_INTERVAL}s)")

    logger.info("✓ Application startup complete")
    logger.info("=" * 60)

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    logger.info(f"Shutting down {Config.APP_TITLE}")
    await cache.stop_sweeper()
    logger.info("✓ Shutdown complete")


# OpenAPI Tags Metadata
tags_metadata = [
    {
        "name": "history",
        "description": "Watch history enriched with ratings, play counts and favorites.",
    },
    {
        "name": "ratings",
        "description": "Ratings with filtering, sorting, pagination and summary statistics.",
    },
    {
        "name": "watchlist",
        "description": "Watchlist items enriched with the user's own data.",
    },
    {
        "name": "trending",
        "description": "Trending movies and shows.",
    },
    {
        "name": "search",
        "description": "Text search over Trakt.",
    },
    {
        "name": "cache",
        "description": "Query cache statistics and manual flushes.",
    },
    {
        "name": "health",
        "description": "Kubernetes-compatible liveness/readiness probes.",
    },
]

app = FastAPI(
    title=Config.APP_TITLE,
    description="""
## TraktBridge API

Authenticated caching proxy for a single user's Trakt account.

### Authentication
Every endpoint requires the `x-api-key` header.

### Caching
Responses are cached in memory and in SQLite. Pass `force_refresh=true`
to bypass the cache for one request.
""",
    version=Config.APP_VERSION,
    lifespan=lifespan,
    openapi_tags=tags_metadata,
    dependencies=[Depends(verify_api_key)],
)

app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)


@app.get("/")
async def root():
    return {"message": "Welcome to TraktBridge API Proxy"}


app.include_router(history_routes.router)
app.include_router(ratings_routes.router)
app.include_router(watchlist_routes.router)
app.include_router(trending_routes.router)
app.include_router(cache_routes.router)
app.include_router(health_routes.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=Config.APP_HOST, port=Config.APP_PORT)
