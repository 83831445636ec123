"""
Cached Trakt Client

Wraps every ``TraktClient`` resource method with the two-tier query cache.

For each call:
    1. Cache key = cache type + bound call arguments (``CacheManager.create_key``)
    2. Unless a refresh is forced, a cache hit is returned with ``from_cache=True``
    3. Otherwise the live result is cached with the type's TTL (fuzzed) and
       returned with ``from_cache=False``
    4. If a *forced* refresh fails and a cached value exists, the stale value
       is returned and a warning logged; otherwise the error propagates

Refreshes are forced per call (``force_refresh=True``) or for exactly the
next wrapped call in the current task via ``force_refresh_next_call()``.
"""

import functools
import inspect
import logging
from contextvars import ContextVar
from typing import Any, Dict, Optional

from .cache_manager import CacheManager, CacheType, ttl_for
from .exceptions import TraktAPIError
from .trakt_client import TraktClient

logger = logging.getLogger(__name__)


class _ForceFlag:
    """Shared single-shot flag; child tasks see and consume the same instance."""

    def __init__(self):
        self.armed = True


_force_next_call: ContextVar[Optional[_ForceFlag]] = ContextVar("force_next_call", default=None)


def _consume_force_flag() -> bool:
    flag = _force_next_call.get()
    if flag is None or not flag.armed:
        return False
    flag.armed = False
    return True


def cache_type_for(method_name: str) -> str:
    """
    Cache type of a client method: the first cache type named in it.

    Example:
        >>> cache_type_for("get_watchlist")
        'watchlist'
    """
    lowered = method_name.lower()
    for cache_type in CacheType:
        if cache_type.value in lowered:
            return cache_type.value
    return method_name


def with_cache(cache_type: Optional[str], method_name: str, ttl: Optional[float] = None):
    """
    Build a cached method delegating to ``TraktClient.<method_name>``.

    Args:
        cache_type: Cache type for keys and TTL (None = derived from the name)
        method_name: Name of the ``TraktClient`` method to wrap
        ttl: TTL in seconds (None = the cache type's default)

    Returns:
        Coroutine function suitable as a ``CachedTraktClient`` method. It
        takes the wrapped method's arguments plus ``force_refresh``.
    """
    resolved_type = str(getattr(cache_type, "value", cache_type) or cache_type_for(method_name))
    target = getattr(TraktClient, method_name)
    signature = inspect.signature(target)

    @functools.wraps(target)
    async def cached_method(self: "CachedTraktClient", *args: Any, force_refresh: bool = False, **kwargs: Any) -> Dict[str, Any]:
        params = self._bind(signature, args, kwargs)
        forced = _consume_force_flag() or force_refresh
        return await self._cached_request(resolved_type, method_name, params, forced, ttl)

    cached_method.cache_type = resolved_type
    return cached_method


class CachedTraktClient:
    """
    Cache-first facade over ``TraktClient``.

    Every resource method of the client is declared here through
    ``with_cache``; other attributes are delegated to the wrapped client.

    Example:
        >>> cached = CachedTraktClient(TraktClient(), CacheManager(SessionLocal))
        >>> result = await cached.get_ratings(type="movies")
        >>> result["from_cache"]
        False
    """

    get_history = with_cache(CacheType.HISTORY, "get_history")
    get_ratings = with_cache(CacheType.RATINGS, "get_ratings")
    get_favorites = with_cache(CacheType.FAVORITES, "get_favorites")
    get_watched = with_cache(CacheType.WATCHED, "get_watched")
    get_watchlist = with_cache(CacheType.WATCHLIST, "get_watchlist")
    get_trending = with_cache(CacheType.TRENDING, "get_trending")
    search = with_cache(CacheType.SEARCH, "search")
    get_stats = with_cache(CacheType.STATS, "get_stats")

    def __init__(self, client: TraktClient, cache: CacheManager):
        self.client = client
        self.cache = cache

    def __getattr__(self, name: str) -> Any:
        if name in ("client", "cache"):
            raise AttributeError(name)
        return getattr(self.client, name)

    @staticmethod
    def _bind(signature: inspect.Signature, args: tuple, kwargs: dict) -> Dict[str, Any]:
        bound = signature.bind(None, *args, **kwargs)
        bound.apply_defaults()
        params = dict(bound.arguments)
        params.pop("self", None)
        return params

    def cache_key(self, method_name: str, *args: Any, **kwargs: Any) -> str:
        """Cache key a call to ``method_name`` with these arguments would use."""
        method = getattr(type(self), method_name)
        target = getattr(TraktClient, method_name)
        params = self._bind(inspect.signature(target), args, kwargs)
        return CacheManager.create_key(method.cache_type, params)

    def force_refresh_next_call(self) -> None:
        """Bypass the cache read for exactly the next wrapped call in this task."""
        _force_next_call.set(_ForceFlag())

    async def _cached_request(
        self,
        cache_type: str,
        method_name: str,
        params: Dict[str, Any],
        force_refresh: bool,
        ttl: Optional[float],
    ) -> Dict[str, Any]:
        key = CacheManager.create_key(cache_type, params)

        if not force_refresh:
            cached = await self.cache.get(key)
            if cached is not None:
                return {**cached, "from_cache": True}

        try:
            fresh = await getattr(self.client, method_name)(**params)
        except TraktAPIError as e:
            if force_refresh:
                stale = await self.cache.get(key)
                if stale is not None:
                    logger.warning(f"⚠ Failed to refresh {cache_type} data, using stale data: {e}")
                    return {**stale, "from_cache": True}
            raise

        await self.cache.set(key, fresh, ttl=ttl or ttl_for(cache_type), fuzzy_ttl=True)
        return {**fresh, "from_cache": False}

    async def flush_cache(self, cache_type: str) -> int:
        """Flush every cached entry of one type. Returns the number removed."""
        return await self.cache.flush_type(cache_type)

    async def flush_all_caches(self) -> bool:
        return await self.cache.flush_all()
