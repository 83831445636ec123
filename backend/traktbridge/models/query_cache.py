"""
QueryCache Database Model for TraktBridge

This module defines the durable tier of the query cache: Trakt API responses
keyed by request shape, stored as JSON with an optional expiry.

Features:
    - Persistent caching of upstream responses (survives application restart)
    - Per-entry TTL, or no expiry at all
    - Automatic expiration on read
    - Indexed by key for fast lookups and by cache type for bulk invalidation

The in-memory tier lives in ``CacheManager``; this model is only ever
accessed through it.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import Session

from .base import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite does not keep tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class QueryCache(Base):
    """
    Database model for cached Trakt query responses.

    Table Structure:
        - id: Primary key (auto-increment)
        - key: Cache key, e.g. ``history?limit=100&type=movies`` (unique)
        - cache_type: Leading cache type of the key, e.g. ``history``
        - value: JSON payload
        - cached_at: Timestamp when data was cached
        - expires_at: Timestamp when the entry expires (NULL = never)
    """

    __tablename__ = 'query_cache'

    id = Column(Integer, primary_key=True, autoincrement=True)

    key = Column(String(1000), nullable=False, unique=True, index=True)
    cache_type = Column(String(50), nullable=False, index=True)

    value = Column(JSON, nullable=True)

    cached_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True, index=True)

    def __init__(self, key: str, value: Any, ttl: Optional[float] = None):
        """
        Initialize QueryCache entry.

        Args:
            key: Cache key
            value: JSON-serializable payload
            ttl: Time-to-live in seconds (None for no expiry)
        """
        self.key = key
        self.cache_type = cache_type_of(key)
        self.value = value
        self.cached_at = utcnow()
        self.expires_at = self.cached_at + timedelta(seconds=ttl) if ttl else None

    def is_expired(self) -> bool:
        """
        Check if cache entry has expired.

        Returns:
            True if cache entry is expired, False otherwise
        """
        return self.expires_at is not None and utcnow() >= self.expires_at

    def remaining_ttl(self) -> Optional[float]:
        """
        Seconds left before expiry.

        Returns:
            Remaining lifetime in seconds, or None if the entry never expires
        """
        if self.expires_at is None:
            return None
        return max((self.expires_at - utcnow()).total_seconds(), 0.0)

    @classmethod
    def get_cached(cls, db: Session, key: str) -> Optional['QueryCache']:
        """
        Get cached entry by key if not expired.

        Expired entries are deleted on read.

        Args:
            db: SQLAlchemy database session
            key: Cache key

        Returns:
            QueryCache entry if found and not expired, None otherwise
        """
        cache_entry = db.query(cls).filter(cls.key == key).first()

        if cache_entry is None:
            return None

        if cache_entry.is_expired():
            db.delete(cache_entry)
            db.commit()
            return None

        return cache_entry

    @classmethod
    def upsert(cls, db: Session, key: str, value: Any, ttl: Optional[float] = None) -> 'QueryCache':
        """
        Insert or update cache entry.

        Args:
            db: SQLAlchemy database session
            key: Cache key
            value: JSON-serializable payload
            ttl: Time-to-live in seconds (None for no expiry)

        Returns:
            QueryCache entry (new or updated)
        """
        cache_entry = db.query(cls).filter(cls.key == key).first()

        if cache_entry:
            cache_entry.value = value
            cache_entry.cached_at = utcnow()
            cache_entry.expires_at = cache_entry.cached_at + timedelta(seconds=ttl) if ttl else None
        else:
            cache_entry = cls(key=key, value=value, ttl=ttl)
            db.add(cache_entry)

        db.commit()
        return cache_entry

    @classmethod
    def delete_key(cls, db: Session, key: str) -> int:
        """Delete a single key. Returns the number of rows removed."""
        count = db.query(cls).filter(cls.key == key).delete()
        db.commit()
        return count

    @classmethod
    def delete_type(cls, db: Session, cache_type: str) -> int:
        """
        Delete every entry of a cache type.

        Args:
            db: SQLAlchemy database session
            cache_type: Cache type, e.g. ``ratings``

        Returns:
            Number of entries deleted
        """
        count = db.query(cls).filter(cls.cache_type == cache_type).delete()
        db.commit()
        return count

    @classmethod
    def delete_all(cls, db: Session) -> int:
        count = db.query(cls).delete()
        db.commit()
        return count

    @classmethod
    def cleanup_expired(cls, db: Session) -> int:
        """
        Delete all expired cache entries.

        Args:
            db: SQLAlchemy database session

        Returns:
            Number of expired entries deleted
        """
        expired_count = db.query(cls).filter(
            cls.expires_at.isnot(None),
            cls.expires_at <= utcnow()
        ).delete(synchronize_session=False)
        db.commit()
        return expired_count

    def __repr__(self) -> str:
        """String representation of cache entry."""
        expired_status = "EXPIRED" if self.is_expired() else "VALID"
        return f"<QueryCache(key='{self.key}', status={expired_status})>"


def cache_type_of(key: str) -> str:
    """Cache type prefix of a cache key (``ratings?type=movies`` -> ``ratings``)."""
    return key.split('?', 1)[0]


Index('idx_query_cache_type_expires', QueryCache.cache_type, QueryCache.expires_at)
