"""
Transformers: enrich Trakt records from the indexed caches, then flatten them.

Each module exposes the same functions (``enrich_item``, ``flatten_item``,
``enrich``, ``flatten``, ``transform``, ``transform_item``);
``TransformerService`` binds them to one ``IndexedCacheService``.
"""

from types import ModuleType
from typing import Any, Dict, List, Mapping

from ..indexed_cache_service import IndexedCacheService
from . import history, media, ratings


class Transformer:
    """One transformer module bound to an ``IndexedCacheService``."""

    def __init__(self, module: ModuleType, service: IndexedCacheService):
        self.module = module
        self.service = service
        self.enrich_item = module.enrich_item
        self.flatten_item = module.flatten_item
        self.flatten = module.flatten

    async def enrich(self, items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return await self.module.enrich(items, self.service)

    async def transform(self, items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return await self.module.transform(items, self.service)

    async def transform_item(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.module.transform_item(item, self.service)


class TransformerService:
    """
    Registry of transformers per resource.

    Watchlist, trending and search share the generic media transformer.
    """

    def __init__(self, service: IndexedCacheService):
        self.history = Transformer(history, service)
        self.ratings = Transformer(ratings, service)
        self.watchlist = Transformer(media, service)
        self.trending = Transformer(media, service)
        self.search = Transformer(media, service)


__all__ = ['Transformer', 'TransformerService', 'history', 'media', 'ratings']
