"""
History transformer

Enriches watch-history records with rating, play count and favorite data,
then flattens them. ``last_watched_at`` is only kept when it differs from
the record's own ``watched_at`` (i.e. the title was watched again later).
"""

from typing import Any, Dict, List, Mapping

from ..indexed_cache_service import IndexedCacheService, IndexedCaches, enrich_item as _enrich
from .media import flatten_media_fields


def enrich_item(item: Mapping[str, Any], indexed: IndexedCaches) -> Dict[str, Any]:
    return _enrich(item, indexed)


def flatten_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    flattened = flatten_media_fields(item, {"type": item.get("type")})

    watched_at = item.get("watched_at")
    last_watched_at = item.get("last_watched_at")

    flattened["rating"] = item.get("rating")
    flattened["plays"] = item.get("plays") or 0
    flattened["watched_at"] = watched_at
    flattened["last_watched_at"] = last_watched_at if last_watched_at != watched_at else None
    flattened["rewatch_started"] = item.get("rewatch_started")
    flattened["favorite"] = item.get("favorite")
    flattened["favorite_note"] = item.get("favorite_note")
    return flattened


def flatten(items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [flatten_item(item) for item in items]


async def enrich(items: List[Mapping[str, Any]], service: IndexedCacheService) -> List[Dict[str, Any]]:
    indexed = await service.all()
    return [enrich_item(item, indexed) for item in items]


async def transform(items: List[Mapping[str, Any]], service: IndexedCacheService) -> List[Dict[str, Any]]:
    """Enrich and flatten a batch of history records."""
    return flatten(await enrich(items, service))


async def transform_item(item: Mapping[str, Any], service: IndexedCacheService) -> Dict[str, Any]:
    indexed = await service.all()
    return flatten_item(enrich_item(item, indexed))
