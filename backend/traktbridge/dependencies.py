"""
FastAPI dependencies for the service graph built at startup.

The lifespan handler in ``traktbridge.main`` stores the services on
``app.state``; tests override these dependencies instead.
"""

from fastapi import Request

from traktbridge.services.cache_manager import CacheManager
from traktbridge.services.cached_trakt_client import CachedTraktClient
from traktbridge.services.data_service import DataService


def get_data_service(request: Request) -> DataService:
    return request.app.state.data_service


def get_cached_client(request: Request) -> CachedTraktClient:
    return request.app.state.cached_client


def get_cache_manager(request: Request) -> CacheManager:
    return request.app.state.cache_manager
