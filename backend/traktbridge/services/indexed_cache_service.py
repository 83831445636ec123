"""
Indexed Cache Service

Builds composite-key indices over the user's ratings, watched items and
favorites, and joins them onto primary records (history, ratings, watchlist,
trending, search).

Index validity piggybacks on the query cache: an index is rebuilt when it
has never been built or when the cache entry it was built from is gone
(expired or flushed). Rebuilds go through ``CachedTraktClient``, so a
rebuild usually costs one upstream call per source.

Usage Example:
    >>> indexed = await indexed_cache_service.all()
    >>> entry = indexed.get("movie:42")
    >>> entry.rating, entry.watched, entry.favorite
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from .cache_manager import CacheManager
from .cached_trakt_client import CachedTraktClient
from .trakt_client import TraktWatchType
from .trakt_utils import MediaType, build_index, build_watched_index, get_item_key

logger = logging.getLogger(__name__)

Index = Dict[str, Mapping[str, Any]]

# Watched sources: (query type, item type). Trakt serves watched items for
# movies and shows only; episode plays live inside the shows payload.
WATCHED_SOURCES = (
    (TraktWatchType.MOVIES.value, MediaType.MOVIE),
    (TraktWatchType.SHOWS.value, MediaType.SHOW),
)


class IndexEntry(NamedTuple):
    rating: Optional[Mapping[str, Any]]
    watched: Optional[Mapping[str, Any]]
    favorite: Optional[Mapping[str, Any]]


@dataclass
class IndexedCaches:
    """The three indices, resolved together."""

    ratings: Index = field(default_factory=dict)
    watched: Index = field(default_factory=dict)
    favorites: Index = field(default_factory=dict)

    def get(self, key: Optional[str]) -> IndexEntry:
        """Look up a composite key in all three indices (None finds nothing)."""
        if key is None:
            return IndexEntry(None, None, None)
        return IndexEntry(self.ratings.get(key), self.watched.get(key), self.favorites.get(key))


def enrich_item(item: Mapping[str, Any], indexed: IndexedCaches, media_type: Any = None) -> Dict[str, Any]:
    """
    Attach rating, play and favorite data to a record.

    Pure function of ``(item, indexed)``. Records without a composite key
    get the empty enrichment (``plays`` 0, everything else None).

    Args:
        item: Trakt record
        indexed: Resolved indices
        media_type: Type for records without a ``type`` tag

    Returns:
        New dict: the record plus ``rating``, ``plays``, ``last_watched_at``,
        ``rewatch_started``, ``favorite`` and ``favorite_note``
    """
    rating, watched, favorite = indexed.get(get_item_key(item, media_type))
    return {
        **item,
        "rating": rating.get("rating") if rating else None,
        "plays": (watched.get("plays") if watched else None) or 0,
        "last_watched_at": watched.get("last_watched_at") if watched else None,
        "rewatch_started": watched.get("reset_at") if watched else None,
        "favorite": True if favorite else None,
        "favorite_note": (favorite.get("notes") or None) if favorite else None,
    }


class IndexedCacheService:
    """
    Lazily built, cache-validated indices over ratings, watched and favorites.

    Attributes:
        cached_client: Source of the indexed collections
        cache: Query cache consulted for index validity
    """

    def __init__(self, cached_client: CachedTraktClient, cache: Optional[CacheManager] = None):
        self.cached_client = cached_client
        self.cache = cache or cached_client.cache
        self._ratings: Optional[Index] = None
        self._watched: Optional[Index] = None
        self._favorites: Optional[Index] = None

    async def _is_fresh(self, index: Optional[Index], *source_keys: str) -> bool:
        if index is None:
            return False
        for key in source_keys:
            if not await self.cache.has(key):
                return False
        return True

    async def ratings(self) -> Index:
        """Index of the user's ratings."""
        if await self._is_fresh(self._ratings, self.cached_client.cache_key("get_ratings")):
            return self._ratings

        result = await self.cached_client.get_ratings()
        self._ratings = build_index(result["data"])
        logger.debug(f"Built ratings index with {len(self._ratings)} items")
        return self._ratings

    async def watched(self) -> Index:
        """Index of watched movies and shows, most recent play per key."""
        source_keys = [
            self.cached_client.cache_key("get_watched", type=query_type)
            for query_type, _ in WATCHED_SOURCES
        ]
        if await self._is_fresh(self._watched, *source_keys):
            return self._watched

        results = await asyncio.gather(*(
            self.cached_client.get_watched(type=query_type) for query_type, _ in WATCHED_SOURCES
        ))
        watched: Index = {}
        for (_, item_type), result in zip(WATCHED_SOURCES, results):
            watched.update(build_watched_index(result["data"], item_type))

        self._watched = watched
        logger.debug(f"Built watched index with {len(self._watched)} items")
        return self._watched

    async def favorites(self) -> Index:
        """Index of the user's favorites (with their notes)."""
        if await self._is_fresh(self._favorites, self.cached_client.cache_key("get_favorites")):
            return self._favorites

        result = await self.cached_client.get_favorites()
        self._favorites = build_index(result["data"])
        logger.debug(f"Built favorites index with {len(self._favorites)} items")
        return self._favorites

    async def all(self) -> IndexedCaches:
        """Resolve all three indices concurrently."""
        ratings, watched, favorites = await asyncio.gather(
            self.ratings(), self.watched(), self.favorites()
        )
        return IndexedCaches(ratings=ratings, watched=watched, favorites=favorites)

    async def enrich(self, items: List[Mapping[str, Any]], media_type: Any = None) -> List[Dict[str, Any]]:
        """Enrich a batch of records against freshly resolved indices."""
        indexed = await self.all()
        return [enrich_item(item, indexed, media_type) for item in items]

    def invalidate(self) -> None:
        """Drop every built index; the next lookup rebuilds."""
        self._ratings = self._watched = self._favorites = None
