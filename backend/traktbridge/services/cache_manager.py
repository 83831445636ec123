"""
Two-Tier Query Cache for TraktBridge

Memory tier (process-wide dict) in front of a durable tier (``QueryCache``
rows in SQLite). Every Trakt response served by the proxy goes through here.

Lookup Strategy:
    1. Memory tier (fast path, expired entries dropped on read)
    2. Durable tier via ``QueryCache.get_cached()`` (auto-expires stale rows)
    3. Durable hits are mirrored into memory with the row's *remaining* TTL

Writes always land in memory before the durable write, so a ``get`` right
after a ``set`` never misses. The durable tier is best-effort: database
errors are logged and treated as a miss or a no-op.

Usage Example:
    >>> from traktbridge.database import SessionLocal
    >>> cache = CacheManager(SessionLocal)
    >>> key = CacheManager.create_key(CacheType.RATINGS, {"type": "movies"})
    >>> await cache.set(key, {"data": [...]}, ttl=300, fuzzy_ttl=True)
    >>> await cache.get(key)
"""

import asyncio
import logging
import random
import time
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from traktbridge.config import Config
from traktbridge.models.query_cache import QueryCache

logger = logging.getLogger(__name__)


class CacheType(str, Enum):
    """Resource categories; each has its own TTL and key namespace."""

    HISTORY = "history"
    RATINGS = "ratings"
    FAVORITES = "favorites"
    WATCHED = "watched"
    WATCHLIST = "watchlist"
    TRENDING = "trending"
    SEARCH = "search"
    STATS = "stats"


# TTLs in seconds
DEFAULT_TTL: Dict[str, int] = {
    "default": Config.CACHE_TTL_DEFAULT,
    CacheType.HISTORY.value: Config.CACHE_TTL_HISTORY,
    CacheType.RATINGS.value: Config.CACHE_TTL_RATINGS,
    CacheType.FAVORITES.value: Config.CACHE_TTL_FAVORITES,
    CacheType.WATCHED.value: Config.CACHE_TTL_WATCHED,
    CacheType.WATCHLIST.value: Config.CACHE_TTL_WATCHLIST,
    CacheType.TRENDING.value: Config.CACHE_TTL_TRENDING,
    CacheType.SEARCH.value: Config.CACHE_TTL_SEARCH,
    CacheType.STATS.value: Config.CACHE_TTL_STATS,
}

# Fuzzy TTLs land within +/- this fraction of the nominal value
TTL_FUZZ_RATIO = 0.1


def ttl_for(cache_type: str) -> int:
    """Default TTL (seconds) for a cache type, falling back to the global default."""
    return DEFAULT_TTL.get(str(getattr(cache_type, "value", cache_type)), DEFAULT_TTL["default"])


def fuzz_ttl(ttl: float, ratio: float = TTL_FUZZ_RATIO) -> float:
    """
    Randomize a TTL within ``[ttl * (1 - ratio), ttl * (1 + ratio)]``.

    Spreads the expiry of keys written together so they do not all
    expire on the same tick.
    """
    return ttl * random.uniform(1 - ratio, 1 + ratio)


def _key_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join(_key_value(v) for v in value)
    return str(value)


class CacheManager:
    """
    Two-tier (memory + durable) key/value cache with per-entry TTL.

    Memory entries are ``(value, expires_at)`` tuples where ``expires_at`` is
    a ``time.time()`` timestamp or None for entries that never expire. A
    background sweeper evicts expired memory entries periodically; the
    durable tier expires its own rows on read and via ``cleanup_expired``.

    Values are never None; None from ``get`` means absent.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        default_ttl: Optional[float] = None,
    ):
        """
        Initialize the cache.

        Args:
            session_factory: Callable returning a SQLAlchemy session for the
                durable tier. None disables the durable tier entirely.
            default_ttl: TTL in seconds used when ``set`` gets none
                (defaults to ``Config.CACHE_TTL_DEFAULT``)
        """
        self._session_factory = session_factory
        self.default_ttl = default_ttl if default_ttl is not None else Config.CACHE_TTL_DEFAULT
        self._memory: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._sweeper_task: Optional[asyncio.Task] = None

        self.hits = 0
        self.misses = 0

    # =========================================================================
    # Keys
    # =========================================================================

    @staticmethod
    def create_key(cache_type: Any, params: Optional[Mapping[str, Any]] = None) -> str:
        """
        Create a deterministic cache key from a cache type and parameters.

        None-valued parameters are dropped and the rest are sorted by name,
        so ``{"b": 1, "a": 2}`` and ``{"a": 2, "b": 1, "c": None}`` produce
        the same key.

        Args:
            cache_type: Cache type (``CacheType`` or plain string)
            params: Query/path parameters of the request

        Returns:
            ``"{type}?a=1&b=2"``, or just ``"{type}"`` without parameters

        Example:
            >>> CacheManager.create_key("ratings", {"type": "movies", "rating": None})
            'ratings?type=movies'
        """
        prefix = _key_value(cache_type)
        pairs = sorted(
            (name, _key_value(value))
            for name, value in (params or {}).items()
            if value is not None
        )
        if not pairs:
            return prefix
        return prefix + "?" + "&".join(f"{name}={value}" for name, value in pairs)

    # =========================================================================
    # Memory tier
    # =========================================================================

    def _memory_get(self, key: str) -> Optional[Any]:
        entry = self._memory.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.time() >= expires_at:
            self._memory.pop(key, None)
            return None
        return value

    def _memory_set(self, key: str, value: Any, ttl: Optional[float]) -> None:
        expires_at = time.time() + ttl if ttl is not None else None
        self._memory[key] = (value, expires_at)

    def memory_ttl(self, key: str) -> Optional[float]:
        """
        Remaining lifetime of a memory entry.

        Returns:
            Seconds left, or None when the entry is absent or never expires
        """
        entry = self._memory.get(key)
        if entry is None or entry[1] is None:
            return None
        return max(entry[1] - time.time(), 0.0)

    def sweep_memory(self) -> int:
        """
        Evict expired entries from the memory tier.

        Returns:
            Number of entries evicted
        """
        now = time.time()
        expired = [
            key for key, (_, expires_at) in self._memory.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._memory[key]
        if expired:
            logger.debug(f"Memory cache sweep evicted {len(expired)} entries")
        return len(expired)

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            removed = await self.cleanup_expired()
            if removed:
                logger.debug(f"Durable cache cleanup removed {removed} expired rows")

    def start_sweeper(self, interval: Optional[float] = None) -> None:
        """Start the periodic expiry sweep of both tiers on the running event loop."""
        if self._sweeper_task and not self._sweeper_task.done():
            return
        interval = interval or Config.CACHE_SWEEP_INTERVAL
        self._sweeper_task = asyncio.create_task(self._sweep_loop(interval))
        logger.info(f"✓ Cache sweeper started (every {interval}s)")

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is None:
            return
        self._sweeper_task.cancel()
        try:
            await self._sweeper_task
        except asyncio.CancelledError:
            pass
        self._sweeper_task = None
        logger.info("✓ Cache sweeper stopped")

    # =========================================================================
    # Durable tier
    # =========================================================================

    def _durable(self, operation: str, func: Callable[[Session], Any], default: Any = None) -> Any:
        """Run ``func`` in a fresh session; database errors become ``default``."""
        if self._session_factory is None:
            return default

        db = self._session_factory()
        try:
            return func(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"⚠ Durable cache {operation} failed: {type(e).__name__}: {e}")
            return default
        finally:
            db.close()

    # =========================================================================
    # Public API
    # =========================================================================

    async def get(self, key: str, memory_only: bool = False) -> Optional[Any]:
        """
        Get a cached value.

        Args:
            key: Cache key
            memory_only: Skip the durable tier

        Returns:
            Cached value, or None if absent or expired in every tier
        """
        value = self._memory_get(key)
        if value is not None:
            self.hits += 1
            logger.debug(f"Cache HIT (memory): {key}")
            return value

        if memory_only:
            self.misses += 1
            return None

        def _read(db: Session) -> Optional[Tuple[Any, Optional[float]]]:
            entry = QueryCache.get_cached(db, key)
            if entry is None:
                return None
            return entry.value, entry.remaining_ttl()

        found = self._durable("read", _read)
        if found is None or found[0] is None:
            self.misses += 1
            logger.debug(f"Cache MISS: {key}")
            return None

        value, remaining = found
        # Mirror with the remaining TTL so memory never outlives its source
        self._memory_set(key, value, remaining)
        self.hits += 1
        logger.debug(f"Cache HIT (durable): {key}")
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        memory_only: bool = False,
        fuzzy_ttl: bool = False,
    ) -> bool:
        """
        Store a value in memory and, unless ``memory_only``, the durable tier.

        Args:
            key: Cache key
            value: JSON-serializable value (not None)
            ttl: Time-to-live in seconds (defaults to ``default_ttl``)
            memory_only: Skip the durable tier
            fuzzy_ttl: Randomize the TTL within +/-10%

        Returns:
            True when the durable write succeeded (or was skipped)
        """
        effective_ttl = ttl or self.default_ttl
        if effective_ttl and fuzzy_ttl:
            effective_ttl = fuzz_ttl(effective_ttl)

        self._memory_set(key, value, effective_ttl)

        if memory_only:
            return True

        stored = self._durable(
            "write",
            lambda db: QueryCache.upsert(db, key, value, effective_ttl) is not None,
            default=False,
        )
        logger.debug(f"Cached {key} (ttl={effective_ttl:.0f}s)" if effective_ttl else f"Cached {key}")
        return stored

    async def has(self, key: str, memory_only: bool = False) -> bool:
        """Check whether a live (non-expired) entry exists."""
        if self._memory_get(key) is not None:
            return True
        if memory_only:
            return False
        return self._durable(
            "lookup",
            lambda db: QueryCache.get_cached(db, key) is not None,
            default=False,
        )

    async def delete(self, key: str) -> bool:
        """Remove a key from both tiers."""
        self._memory.pop(key, None)
        self._durable("delete", lambda db: QueryCache.delete_key(db, key), default=0)
        return True

    async def flush_type(self, cache_type: Any) -> int:
        """
        Delete every entry of a cache type from both tiers.

        Matches keys equal to the type or starting with ``"{type}?"``, so
        flushing ``watched`` leaves ``watchlist`` entries alone.

        Returns:
            Number of distinct keys removed
        """
        prefix = _key_value(cache_type)
        memory_keys = [
            key for key in self._memory
            if key == prefix or key.startswith(prefix + "?")
        ]
        for key in memory_keys:
            del self._memory[key]

        def _flush(db: Session) -> int:
            keys = {row.key for row in db.query(QueryCache.key).filter(QueryCache.cache_type == prefix)}
            QueryCache.delete_type(db, prefix)
            return len(keys | set(memory_keys))

        count = self._durable("flush", _flush, default=len(memory_keys))
        logger.info(f"✓ Flushed {count} '{prefix}' cache entries")
        return count

    async def flush_all(self) -> bool:
        """Clear both tiers."""
        self._memory.clear()
        self._durable("flush", QueryCache.delete_all, default=0)
        logger.info("✓ Flushed all cache entries")
        return True

    async def cleanup_expired(self) -> int:
        """
        Delete expired durable rows and sweep the memory tier.

        Returns:
            Number of durable rows deleted
        """
        self.sweep_memory()
        return self._durable("cleanup", QueryCache.cleanup_expired, default=0)

    def stats(self) -> Dict[str, Any]:
        """
        Cache statistics.

        Returns:
            Dictionary with memory entry counts per type, hit/miss counters
            and the durable row count (None if the durable tier is unavailable)
        """
        by_type: Dict[str, int] = {}
        for key in self._memory:
            cache_type = key.split("?", 1)[0]
            by_type[cache_type] = by_type.get(cache_type, 0) + 1

        total = self.hits + self.misses
        return {
            "memory_entries": len(self._memory),
            "memory_by_type": by_type,
            "durable_entries": self._durable("count", lambda db: db.query(QueryCache).count()),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 3) if total else None,
        }
