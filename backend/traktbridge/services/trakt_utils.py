"""
Trakt record helpers

Trakt has no global ID: each record carries a type tag and a nested payload
(``{"type": "movie", "movie": {"ids": {"trakt": 42}}}``) whose Trakt ID is
unique only within that type. Records are identified across endpoints by
the composite key ``"{type}:{trakt_id}"``.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class MediaType(str, Enum):
    """Record type tags used by Trakt."""

    MOVIE = "movie"
    SHOW = "show"
    SEASON = "season"
    EPISODE = "episode"

    @classmethod
    def parse(cls, value: Any) -> Optional["MediaType"]:
        """Return the MediaType for a tag, or None for unknown tags (person, list, ...)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


def media_payload(item: Mapping[str, Any], media_type: Any = None) -> Optional[Mapping[str, Any]]:
    """
    Nested type-specific payload of a record (``item["movie"]`` for a movie).

    Args:
        item: Trakt record
        media_type: Type to use when the record has no ``type`` tag

    Returns:
        The payload dict, or None if the type is unknown or the payload missing
    """
    kind = MediaType.parse(media_type if media_type is not None else item.get("type"))
    if kind is None:
        return None
    payload = item.get(kind.value)
    return payload if isinstance(payload, Mapping) else None


def get_item_key(item: Any, media_type: Any = None) -> Optional[str]:
    """
    Composite key of a record.

    Args:
        item: Trakt record (typed) or a bare movie/show object
        media_type: Type to use when the record has no ``type`` tag

    Returns:
        ``"{type}:{trakt_id}"``, or None when the record cannot be keyed
        (unknown type, missing payload or missing ID)

    Example:
        >>> get_item_key({"type": "movie", "movie": {"ids": {"trakt": 42}}})
        'movie:42'
    """
    if not isinstance(item, Mapping):
        return None

    kind = MediaType.parse(media_type if media_type is not None else item.get("type"))
    if kind is None:
        return None

    payload = item.get(kind.value)
    if isinstance(payload, Mapping):
        ids = payload.get("ids")
    elif media_type is not None:
        # Bare object: the record is the payload itself
        ids = item.get("ids")
    else:
        return None

    trakt_id = ids.get("trakt") if isinstance(ids, Mapping) else None
    if trakt_id is None:
        return None
    return f"{kind.value}:{trakt_id}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Trakt ISO-8601 timestamp (``2024-01-01T12:00:00.000Z``)."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def build_index(items: Iterable[Mapping[str, Any]], media_type: Any = None) -> Dict[str, Mapping[str, Any]]:
    """
    Index records by composite key. Unkeyable records are skipped.

    Later records overwrite earlier ones with the same key.
    """
    index: Dict[str, Mapping[str, Any]] = {}
    skipped = 0
    for item in items or []:
        key = get_item_key(item, media_type)
        if key is None:
            skipped += 1
            continue
        index[key] = item
    if skipped:
        logger.debug(f"Skipped {skipped} records without a composite key")
    return index


def _watched_time(item: Mapping[str, Any]) -> Optional[datetime]:
    return parse_timestamp(item.get("last_watched_at") or item.get("watched_at"))


def build_watched_index(items: Iterable[Mapping[str, Any]], media_type: Any = None) -> Dict[str, Mapping[str, Any]]:
    """
    Index watch records by composite key, keeping the most recent per key.

    Recency is ``last_watched_at`` (watched endpoint) or ``watched_at``
    (history endpoint); a record without a parseable timestamp never
    replaces one that has one.
    """
    index: Dict[str, Mapping[str, Any]] = {}
    for item in items or []:
        key = get_item_key(item, media_type)
        if key is None:
            continue
        current = index.get(key)
        if current is None:
            index[key] = item
            continue
        new_time, current_time = _watched_time(item), _watched_time(current)
        if new_time is not None and (current_time is None or new_time > current_time):
            index[key] = item
    return index
