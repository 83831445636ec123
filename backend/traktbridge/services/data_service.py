"""
Data Service for TraktBridge

Orchestrates cached fetch -> enrichment join -> flattening for the routes.
Every method returns ``{"data": [...], "pagination": {...} or None,
"from_cache": bool}``.

Ratings are always fetched as the full set (one cache entry) and filtered,
sorted and re-paginated here, so every filter combination shares the cache.
"""

import asyncio
import logging
import math
import statistics
from datetime import datetime
from typing import Any, Dict, List, Optional

from .cached_trakt_client import CachedTraktClient
from .indexed_cache_service import IndexedCacheService
from .trakt_utils import parse_timestamp
from .transformers import TransformerService

logger = logging.getLogger(__name__)

# Items returned when the caller gives no limit
DEFAULT_LIMITS = {
    "history": 100,
    "ratings": 50,
}

# Plural query types (Trakt URLs) to record type tags
TYPE_TAGS = {
    "movies": "movie",
    "shows": "show",
    "seasons": "season",
    "episodes": "episode",
}

RATING_SORT_FIELDS = ("rating", "rated_at")


def _query_type(type: Optional[str]) -> Optional[str]:
    return None if type in (None, "all") else type


def _sort_value(item: Dict[str, Any], field: str) -> Any:
    if field == "rated_at":
        parsed = parse_timestamp(item.get("rated_at"))
        return parsed.timestamp() if parsed else float("-inf")
    value = item.get(field)
    return value if value is not None else float("-inf")


def paginate(items: List[Any], limit: Optional[int], page: int = 1) -> Dict[str, Any]:
    """
    Slice an already filtered list into one page.

    Returns:
        ``{"data": page_items, "pagination": {...}}`` where ``itemCount`` is
        the size of the filtered list
    """
    total = len(items)
    if not limit:
        return {
            "data": items,
            "pagination": {"itemCount": total, "pageCount": 1, "pageSize": total, "page": 1},
        }
    page = max(page or 1, 1)
    start = (page - 1) * limit
    return {
        "data": items[start:start + limit],
        "pagination": {
            "itemCount": total,
            "pageCount": max(math.ceil(total / limit), 1),
            "pageSize": limit,
            "page": page,
        },
    }


class DataService:
    """
    High-level read operations over the cached Trakt client.

    Attributes:
        cached_client: Cache-first Trakt client
        indexed: Indices used for enrichment
        transformers: Per-resource enrich/flatten pipelines
    """

    def __init__(self, cached_client: CachedTraktClient, indexed: Optional[IndexedCacheService] = None):
        self.cached_client = cached_client
        self.indexed = indexed or IndexedCacheService(cached_client)
        self.transformers = TransformerService(self.indexed)

    async def get_history(
        self,
        type: Optional[str] = "all",
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_LIMITS["history"],
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """
        Get the user's watch history, enriched and flattened.

        Args:
            type: all, movies, shows, seasons or episodes
            start_at: Only plays at or after this instant
            end_at: Only plays at or before this instant
            limit: Maximum number of items (None = everything in range)
            force_refresh: Bypass the cache read
        """
        result = await self.cached_client.get_history(
            type=_query_type(type),
            start_at=start_at,
            end_at=end_at,
            limit=limit,
            force_refresh=force_refresh,
        )
        data = await self.transformers.history.transform(result["data"])
        return {"data": data, "pagination": result["pagination"], "from_cache": result["from_cache"]}

    async def get_ratings(
        self,
        type: Optional[str] = "all",
        min_rating: Optional[int] = None,
        max_rating: Optional[int] = None,
        limit: Optional[int] = DEFAULT_LIMITS["ratings"],
        page: int = 1,
        sort_by: str = "rated_at",
        order: str = "desc",
        include_unwatched: bool = True,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """
        Get the user's ratings, filtered, sorted, enriched and flattened.

        Args:
            type: all, movies, shows, seasons or episodes
            min_rating: Lowest rating to include (1-10)
            max_rating: Highest rating to include (1-10)
            limit: Page size of the returned slice (None = everything)
            page: Page of the filtered, sorted list
            sort_by: ``rating`` or ``rated_at`` (ties broken by ``rated_at``)
            order: ``asc`` or ``desc``
            include_unwatched: Keep rated items with no recorded plays
            force_refresh: Bypass the cache read for the ratings fetch

        Returns:
            Page of flattened ratings; ``pagination.itemCount`` counts the
            items left after filtering
        """
        if sort_by not in RATING_SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {RATING_SORT_FIELDS}, got {sort_by!r}")

        if force_refresh:
            self.cached_client.force_refresh_next_call()
        result = await self.cached_client.get_ratings()

        items = result["data"]
        type_tag = TYPE_TAGS.get(_query_type(type) or "")
        if type_tag:
            items = [item for item in items if item.get("type") == type_tag]
        if min_rating is not None:
            items = [item for item in items if (item.get("rating") or 0) >= min_rating]
        if max_rating is not None:
            items = [item for item in items if (item.get("rating") or 0) <= max_rating]

        enriched = await self.transformers.ratings.enrich(items)
        if not include_unwatched:
            enriched = [item for item in enriched if item["plays"] > 0]

        reverse = order == "desc"
        enriched.sort(key=lambda item: _sort_value(item, "rated_at"), reverse=reverse)
        if sort_by != "rated_at":
            enriched.sort(key=lambda item: _sort_value(item, sort_by), reverse=reverse)

        page_result = paginate(enriched, limit, page)
        return {
            "data": self.transformers.ratings.flatten(page_result["data"]),
            "pagination": page_result["pagination"],
            "from_cache": result["from_cache"],
        }

    async def get_ratings_stats(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Summary statistics of the user's ratings.

        Uses the rating distribution of ``/users/me/stats``.

        Returns:
            ``total``, ``distribution`` and, when there is at least one rating,
            ``avg``, ``median``, ``mode``, ``std_dev``, ``rating_spread``
            (lowest and highest rating given) and the share of ratings that
            are 8+, 9+ and 10 (percent, one decimal)
        """
        result = await self.cached_client.get_stats(force_refresh=force_refresh)
        ratings = (result["data"] or {}).get("ratings") or {}
        distribution = {str(k): int(v) for k, v in (ratings.get("distribution") or {}).items()}

        values: List[int] = []
        for rating, count in sorted(distribution.items(), key=lambda kv: int(kv[0])):
            values.extend([int(rating)] * count)

        stats: Dict[str, Any] = {
            "total": ratings.get("total", len(values)),
            "distribution": distribution,
        }
        if not values:
            return stats

        def percent(minimum: int) -> float:
            return round(100 * sum(1 for v in values if v >= minimum) / len(values), 1)

        stats.update({
            "avg": round(statistics.mean(values), 2),
            "median": statistics.median(values),
            "mode": statistics.mode(values),
            "std_dev": round(statistics.pstdev(values), 2),
            "rating_spread": [min(values), max(values)],
            "percent_8_and_above": percent(8),
            "percent_9_and_above": percent(9),
            "percent_10s": percent(10),
        })
        return stats

    async def get_watchlist(
        self,
        type: Optional[str] = "all",
        sort: str = "rank",
        limit: Optional[int] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """Get the user's watchlist, enriched and flattened."""
        result = await self.cached_client.get_watchlist(
            type=_query_type(type),
            sort=sort,
            limit=limit,
            force_refresh=force_refresh,
        )
        data = await self.transformers.watchlist.transform(result["data"])
        return {"data": data, "pagination": result["pagination"], "from_cache": result["from_cache"]}

    async def get_trending(
        self,
        type: str = "movies",
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = False,
        max_pages: Optional[int] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """Get trending movies or shows, enriched with the user's own data."""
        result = await self.cached_client.get_trending(
            type=type,
            limit=limit,
            page=page,
            auto_paginate=auto_paginate,
            max_pages=max_pages,
            force_refresh=force_refresh,
        )
        data = await self.transformers.trending.transform(result["data"])
        return {"data": data, "pagination": result["pagination"], "from_cache": result["from_cache"]}

    async def get_full_trending(
        self,
        limit: Optional[int] = None,
        auto_paginate: bool = False,
        max_pages: Optional[int] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Dict[str, Any]]:
        """Trending movies and shows, fetched concurrently."""
        movies, shows = await asyncio.gather(*(
            self.get_trending(
                type=type,
                limit=limit,
                auto_paginate=auto_paginate,
                max_pages=max_pages,
                force_refresh=force_refresh,
            )
            for type in ("movies", "shows")
        ))
        return {"movies": movies, "shows": shows}

    async def search(
        self,
        query: str,
        type: Optional[str] = None,
        limit: Optional[int] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """Search Trakt and enrich the movie/show hits."""
        result = await self.cached_client.search(
            query=query, type=type, limit=limit, force_refresh=force_refresh
        )
        data = await self.transformers.search.transform(result["data"])
        return {"data": data, "pagination": result["pagination"], "from_cache": result["from_cache"]}
