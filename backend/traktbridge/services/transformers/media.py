"""
Media list transformer (watchlist, trending, search)

Also home of the type-specific flattening shared by every transformer.
"""

from typing import Any, Dict, List, Mapping

from ..indexed_cache_service import IndexedCacheService, IndexedCaches, enrich_item as _enrich
from ..trakt_utils import MediaType

# List-specific fields carried through when present, in this order
EXTRA_FIELDS = ("rank", "listed_at", "watchers", "score")


def flatten_media_fields(item: Mapping[str, Any], flattened: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add the type-specific title fields of a record to ``flattened``.

    movie/show: ``title``, ``year``. season: synthesized ``title``,
    ``show_title``, ``show_year``, ``season``. episode: ``show_title``,
    ``show_year``, ``episode_title``, ``episode_number``, ``season``.
    Records whose payloads are missing get no fields.
    """
    kind = MediaType.parse(item.get("type"))
    movie, show = item.get("movie"), item.get("show")
    season, episode = item.get("season"), item.get("episode")

    if kind is MediaType.MOVIE and movie:
        flattened["title"] = movie.get("title")
        flattened["year"] = movie.get("year")

    elif kind is MediaType.SHOW and show:
        flattened["title"] = show.get("title")
        flattened["year"] = show.get("year")

    elif kind is MediaType.SEASON and season and show:
        flattened["title"] = f"{show.get('title')} - Season {season.get('number')}"
        flattened["show_title"] = show.get("title")
        flattened["show_year"] = show.get("year")
        flattened["season"] = season.get("number")

    elif kind is MediaType.EPISODE and episode and show:
        flattened["show_title"] = show.get("title")
        flattened["show_year"] = show.get("year")
        flattened["episode_title"] = episode.get("title")
        flattened["episode_number"] = episode.get("number")
        flattened["season"] = episode.get("season")

    return flattened


def tag_type(item: Mapping[str, Any]) -> Dict[str, Any]:
    """Add a ``type`` tag to records that only carry the payload (trending)."""
    if item.get("type"):
        return dict(item)
    for kind in MediaType:
        if isinstance(item.get(kind.value), Mapping):
            return {**item, "type": kind.value}
    return dict(item)


def enrich_item(item: Mapping[str, Any], indexed: IndexedCaches) -> Dict[str, Any]:
    return _enrich(tag_type(item), indexed)


def flatten_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    flattened = flatten_media_fields(item, {"type": item.get("type")})

    for name in EXTRA_FIELDS:
        if name in item:
            flattened[name] = item[name]

    flattened["rating"] = item.get("rating")
    flattened["plays"] = item.get("plays") or 0
    flattened["last_watched_at"] = item.get("last_watched_at")
    flattened["favorite"] = item.get("favorite")
    flattened["favorite_note"] = item.get("favorite_note")
    return flattened


def flatten(items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [flatten_item(item) for item in items]


async def enrich(items: List[Mapping[str, Any]], service: IndexedCacheService) -> List[Dict[str, Any]]:
    indexed = await service.all()
    return [enrich_item(item, indexed) for item in items]


async def transform(items: List[Mapping[str, Any]], service: IndexedCacheService) -> List[Dict[str, Any]]:
    return flatten(await enrich(items, service))


async def transform_item(item: Mapping[str, Any], service: IndexedCacheService) -> Dict[str, Any]:
    indexed = await service.all()
    return flatten_item(enrich_item(item, indexed))
