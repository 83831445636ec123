"""
Cache Management API Routes

Endpoints:
- DELETE /cache/{cache_type}: Flush one cache type
- DELETE /cache: Flush every cache type
- GET /cache/stats: Hit/miss counters and entry counts
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from traktbridge.api.errors import ParameterValidationError
from traktbridge.dependencies import get_cache_manager, get_cached_client, get_data_service
from traktbridge.schemas.responses import CacheFlushResponse, CacheStatsResponse
from traktbridge.services.cache_manager import CacheManager, CacheType
from traktbridge.services.cached_trakt_client import CachedTraktClient
from traktbridge.services.data_service import DataService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(cache: CacheManager = Depends(get_cache_manager)) -> Dict[str, Any]:
    return cache.stats()


@router.delete("/{cache_type}", response_model=CacheFlushResponse)
async def flush_cache_type(
    cache_type: str,
    cached_client: CachedTraktClient = Depends(get_cached_client),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """
    Flush every entry of one cache type from both tiers.

    The enrichment indices are rebuilt on the next request.
    """
    allowed = [member.value for member in CacheType]
    if cache_type not in allowed:
        raise ParameterValidationError(
            "cache_type", "invalid_option",
            f"Unknown cache type '{cache_type}'",
            allowedValues=allowed,
        )

    deleted = await cached_client.flush_cache(cache_type)
    data_service.indexed.invalidate()
    return {"success": True, "cache_type": cache_type, "deleted": deleted}


@router.delete("", response_model=CacheFlushResponse)
async def flush_all(
    cached_client: CachedTraktClient = Depends(get_cached_client),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    success = await cached_client.flush_all_caches()
    data_service.indexed.invalidate()
    logger.info("✓ All caches flushed on request")
    return {"success": success}
