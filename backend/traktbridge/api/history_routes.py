"""
History API Routes

Endpoints:
- GET /history: Most recent plays, or the last N days of plays
- GET /history/get-by-date-range: Every play between two instants
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from traktbridge.api.errors import ParameterValidationError
from traktbridge.dependencies import get_data_service
from traktbridge.schemas.responses import ApiResponse
from traktbridge.services.data_service import DEFAULT_LIMITS, DataService
from traktbridge.services.trakt_utils import parse_timestamp
from traktbridge.utils import param_parser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/history", tags=["history"])

HISTORY_TYPES = ["all", "movies", "shows", "seasons", "episodes"]


def days_spanned(items: List[Dict[str, Any]], field: str = "watched_at") -> int:
    """Whole days between the oldest and newest timestamp in ``field``."""
    times = [t for t in (parse_timestamp(item.get(field)) for item in items) if t is not None]
    if not times:
        return 0
    return round((max(times) - min(times)).total_seconds() / 86400)


@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
async def get_history(
    type: Optional[str] = Query(None, description="all, movies, shows, seasons or episodes"),
    limit: Optional[str] = Query(None, description=f"Number of plays to return (default {DEFAULT_LIMITS['history']})"),
    last_x_days: Optional[str] = Query(None, description="Only plays from the last N days"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """
    Get the user's watch history, enriched with ratings, play counts and favorites.

    Without ``limit`` the latest plays are returned; with ``last_x_days``
    and no ``limit`` every play in the window is returned.
    """
    history_type = param_parser.trakt_type(type, HISTORY_TYPES) or "all"
    parsed_limit = param_parser.number(limit, "limit", min=1, integer=True)
    days = param_parser.number(last_x_days, "last_x_days", min=1)
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    effective_limit = parsed_limit if parsed_limit is not None else DEFAULT_LIMITS["history"]
    start_at = end_at = None
    if days:
        end_at = datetime.now(timezone.utc)
        start_at = end_at - timedelta(days=days)
        if parsed_limit is None:
            logger.debug("last_x_days without limit, returning every play in range")
            effective_limit = None

    history = await data_service.get_history(
        type=history_type,
        start_at=start_at,
        end_at=end_at,
        limit=effective_limit,
        force_refresh=refresh,
    )

    tips = ["To get data from a specific year or date, use /history/get-by-date-range."]
    if parsed_limit is None and days is None:
        tips.append(
            f"No limit specified, returning {DEFAULT_LIMITS['history']} items. Use 'limit' to return "
            f"a specific number of items, or 'last_x_days' to return items from a specific time range."
        )

    return ApiResponse.build(
        history["data"],
        history["pagination"],
        from_cache=history["from_cache"],
        info=f"Includes {days if days else days_spanned(history['data'])} days of history.",
        tips=tips,
    ).render()


@router.get("/get-by-date-range", response_model=ApiResponse, response_model_exclude_none=True)
async def get_history_by_date_range(
    start_at: Optional[str] = Query(None, description="ISO 8601 start of the range (required)"),
    end_at: Optional[str] = Query(None, description="ISO 8601 end of the range (required)"),
    type: Optional[str] = Query(None, description="all, movies, shows, seasons or episodes"),
    force_refresh: Optional[str] = Query(None, description="Bypass the cache"),
    data_service: DataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Get every play between ``start_at`` and ``end_at``."""
    history_type = param_parser.trakt_type(type, HISTORY_TYPES) or "all"
    start = param_parser.date_strict(start_at, "start_at")
    end = param_parser.date_strict(end_at, "end_at")
    refresh = param_parser.boolean(force_refresh, "force_refresh", allow_bit=True) or False

    if end < start:
        raise ParameterValidationError(
            "end_at", "below_minimum", "end_at must not be before start_at", minimum=start.isoformat()
        )

    history = await data_service.get_history(
        type=history_type,
        start_at=start,
        end_at=end,
        limit=None,
        force_refresh=refresh,
    )

    days = round((end - start).total_seconds() / 86400)
    return ApiResponse.build(
        history["data"],
        history["pagination"],
        from_cache=history["from_cache"],
        info=f"Includes {days} days of history.",
    ).render()
