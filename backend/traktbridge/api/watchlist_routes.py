"""
Watchlist API Routes

Endpoints:
- GET /watchlist: The user's watchlist, enriched with ratings and plays
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from traktbridge.dependencies import get_data_service
from traktbridge.schemas.responses import ApiResponse
from traktbridge.services.data_service import DataService
from traktbridge.utils import param_parser

router = APIRouter(prefix="/watchlist", tags=["watchlist"])

WATCHLIST_TYPES = ["all", "movies", "shows", "seasons", "episodes"]
WATCHLIST_SORTS = ["rank", "added", "released", "title"]


@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
async def get_watchlist(
    type: Optional[str] = Query(None, description="all, movies, shows, seasons or episodes"),
    sort: Optional[str] = Query(None, description="rank, added, released or title (default rank)"),
    limit: Optional[str] = Query(None, description="Maximum number of items"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Get the user's watchlist."""
    watchlist_type = param_parser.trakt_type(type, WATCHLIST_TYPES) or "all"
    parsed_sort = param_parser.enum(sort, WATCHLIST_SORTS, "sort") or "rank"
    parsed_limit = param_parser.number(limit, "limit", min=1, integer=True)
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    watchlist = await data_service.get_watchlist(
        type=watchlist_type,
        sort=parsed_sort,
        limit=parsed_limit,
        force_refresh=refresh,
    )
    return ApiResponse.build(
        watchlist["data"],
        watchlist["pagination"],
        from_cache=watchlist["from_cache"],
        info=f"Showing {len(watchlist['data'])} watchlist items sorted by {parsed_sort}.",
    ).render()
