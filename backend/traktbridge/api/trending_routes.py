"""
Trending and Search API Routes

Endpoints:
- GET /trending: Trending movies or shows
- GET /trending/full: Trending movies and shows in one response
- GET /search: Text search over movies and shows
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from traktbridge.dependencies import get_data_service
from traktbridge.schemas.responses import ApiResponse
from traktbridge.services.data_service import DataService
from traktbridge.utils import param_parser

router = APIRouter(tags=["trending"])

TRENDING_TYPES = ["movies", "shows"]
SEARCH_TYPES = ["movie", "show", "episode", "person", "list"]
DEFAULT_TRENDING_LIMIT = 10


@router.get("/trending", response_model=ApiResponse, response_model_exclude_none=True)
async def get_trending(
    type: Optional[str] = Query(None, description="movies or shows (default movies)"),
    limit: Optional[str] = Query(None, description=f"Number of items (default {DEFAULT_TRENDING_LIMIT})"),
    page: Optional[str] = Query(None, description="Page number (default 1)"),
    auto_paginate: Optional[str] = Query(None, description="Fetch every page up to limit/max_pages"),
    max_pages: Optional[str] = Query(None, description="Highest page to fetch when auto-paginating"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Trending items enriched with the user's ratings and plays."""
    trending_type = param_parser.trakt_type(type, TRENDING_TYPES) or "movies"
    parsed_limit = param_parser.number(limit, "limit", min=1, integer=True)
    parsed_page = param_parser.number(page, "page", min=1, integer=True)
    paginate = param_parser.boolean(auto_paginate, "auto_paginate", allow_bit=True) or False
    parsed_max_pages = param_parser.number(max_pages, "max_pages", min=1, integer=True)
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    trending = await data_service.get_trending(
        type=trending_type,
        limit=parsed_limit or DEFAULT_TRENDING_LIMIT,
        page=parsed_page or 1,
        auto_paginate=paginate,
        max_pages=parsed_max_pages,
        force_refresh=refresh,
    )
    return ApiResponse.build(
        trending["data"],
        trending["pagination"],
        from_cache=trending["from_cache"],
        info=f"Showing {len(trending['data'])} trending {trending_type}.",
    ).render()


@router.get("/trending/full")
async def get_full_trending(
    limit: Optional[str] = Query(None, description=f"Items per type (default {DEFAULT_TRENDING_LIMIT})"),
    auto_paginate: Optional[str] = Query(None, description="Fetch every page up to limit/max_pages"),
    max_pages: Optional[str] = Query(None, description="Highest page to fetch when auto-paginating"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Trending movies and shows, fetched concurrently."""
    parsed_limit = param_parser.number(limit, "limit", min=1, integer=True)
    paginate = param_parser.boolean(auto_paginate, "auto_paginate", allow_bit=True) or False
    parsed_max_pages = param_parser.number(max_pages, "max_pages", min=1, integer=True)
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    full = await data_service.get_full_trending(
        limit=parsed_limit or DEFAULT_TRENDING_LIMIT,
        auto_paginate=paginate,
        max_pages=parsed_max_pages,
        force_refresh=refresh,
    )
    return {
        kind: ApiResponse.build(
            result["data"], result["pagination"], from_cache=result["from_cache"]
        ).render()
        for kind, result in full.items()
    }


@router.get("/search", response_model=ApiResponse, response_model_exclude_none=True, tags=["search"])
async def search(
    query: Optional[str] = Query(None, description="Search text (required)"),
    type: Optional[str] = Query(None, description="movie, show, episode, person or list (default movie,show)"),
    limit: Optional[str] = Query(None, description="Number of results (default 10)"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Search Trakt; movie and show hits carry the user's ratings and plays."""
    text = param_parser.string_strict(query, "query")
    search_type = param_parser.enum(type, SEARCH_TYPES, "type")
    parsed_limit = param_parser.number(limit, "limit", min=1, integer=True)
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    results = await data_service.search(
        query=text,
        type=search_type,
        limit=parsed_limit or DEFAULT_TRENDING_LIMIT,
        force_refresh=refresh,
    )
    return ApiResponse.build(
        results["data"],
        results["pagination"],
        from_cache=results["from_cache"],
        info=f"Showing {len(results['data'])} results for '{text}'.",
    ).render()
