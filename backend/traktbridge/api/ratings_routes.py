"""
Ratings API Routes

Endpoints:
- GET /ratings: Filtered, sorted page of the user's ratings
- GET /ratings/stats: Summary statistics of the user's ratings
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from traktbridge.api.errors import ParameterValidationError
from traktbridge.dependencies import get_data_service
from traktbridge.schemas.responses import ApiResponse, RatingsStatsResponse
from traktbridge.services.data_service import DEFAULT_LIMITS, DataService
from traktbridge.utils import param_parser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ratings", tags=["ratings"])

RATING_TYPES = ["all", "movies", "shows", "seasons", "episodes"]

RATINGS_TIPS = [
    'You can filter results by type (movie, show, episode), minimum or maximum rating, or sort by rating or date.',
    'Use the "limit" parameter to reduce result size if context is too long.',
    'Set "sort_by" to "rating" or "rated_at", and "order" to "asc" or "desc".',
]


@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
async def get_ratings(
    type: Optional[str] = Query(None, description="all, movies, shows, seasons or episodes"),
    min_rating: Optional[str] = Query(None, description="Minimum rating to include (1-10)"),
    max_rating: Optional[str] = Query(None, description="Maximum rating to include (1-10)"),
    limit: Optional[str] = Query(None, description=f"Items per page (default {DEFAULT_LIMITS['ratings']})"),
    page: Optional[str] = Query(None, description="Page number (default 1)"),
    sort_by: Optional[str] = Query(None, description="rating or rated_at (default rated_at)"),
    order: Optional[str] = Query(None, description="asc or desc (default desc)"),
    include_unwatched: Optional[str] = Query(None, description="Include rated items with no plays (default true)"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Get the user's ratings, enriched with play counts and favorites."""
    rating_type = param_parser.trakt_type(type, RATING_TYPES)
    minimum = param_parser.number(min_rating, "min_rating", min=1, max=10)
    maximum = param_parser.number(max_rating, "max_rating", min=1, max=10)
    parsed_limit = param_parser.number(limit, "limit", min=1, integer=True)
    parsed_page = param_parser.number(page, "page", min=1, integer=True)
    parsed_sort = param_parser.enum(sort_by, ["rating", "rated_at"], "sort_by") or "rated_at"
    parsed_order = param_parser.enum(order, ["asc", "desc"], "order") or "desc"
    unwatched = param_parser.boolean(include_unwatched, "include_unwatched", allow_bit=True)
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    if minimum is not None and maximum is not None and maximum < minimum:
        raise ParameterValidationError(
            "max_rating", "below_minimum",
            f"max_rating ({maximum}) must not be below min_rating ({minimum})",
            minimum=minimum,
        )

    ratings = await data_service.get_ratings(
        type=rating_type or "all",
        min_rating=minimum,
        max_rating=maximum,
        limit=parsed_limit if parsed_limit is not None else DEFAULT_LIMITS["ratings"],
        page=parsed_page or 1,
        sort_by=parsed_sort,
        order=parsed_order,
        include_unwatched=True if unwatched is None else unwatched,
        force_refresh=refresh,
    )

    filters = []
    if minimum is not None:
        filters.append(f"rated {minimum}+ stars")
    if maximum is not None:
        filters.append(f"rated {maximum}- stars")
    if rating_type not in (None, "all"):
        filters.append(f'type: "{rating_type}"')
    if parsed_sort == "rating":
        filters.append(f"sorted by rating {'(highest first)' if parsed_order == 'desc' else '(lowest first)'}")
    else:
        filters.append(f"sorted by date {'(newest first)' if parsed_order == 'desc' else '(oldest first)'}")

    count = len(ratings["data"])
    return ApiResponse.build(
        ratings["data"],
        ratings["pagination"],
        from_cache=ratings["from_cache"],
        info=f"Showing {count} ratings {', '.join(filters)}.",
        tips=RATINGS_TIPS,
    ).render()


@router.get("/stats", response_model=RatingsStatsResponse, response_model_exclude_none=True)
async def get_ratings_stats(
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Distribution, average, median, mode and spread of the user's ratings."""
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False
    stats = await data_service.get_ratings_stats(force_refresh=refresh)
    return {
        "_info": f"Statistics over {stats['total']} ratings on a 1-10 scale.",
        **stats,
    }
