"""
TraktClient - Authenticated client for the Trakt API

One method per upstream resource (history, ratings, favorites, watched,
watchlist, trending, search, stats). Every method returns::

    {"data": [...], "pagination": {"itemCount": ..., "pageCount": ...,
                                   "pageSize": ..., "page": ...} or None}

Features:
    - URL templates with optional ``:segment`` placeholders
    - Bearer auth via ``TokenManager``; one refresh-and-retry on 401
    - Retries with exponential backoff on timeouts, 429 and 502/503/504
    - Auto-pagination: pages 2..N fetched concurrently, bounded by an item
      limit and/or a page cap

Usage Example:
    >>> client = TraktClient(TokenManager())
    >>> result = await client.get_ratings(type="movies")
    >>> len(result["data"]), result["pagination"]
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, urlencode

import httpx

from traktbridge.config import Config
from .exceptions import (
    NetworkRetryableError,
    TraktAPIError,
    TraktAuthError,
    classify_http_error,
    retry_on_network_error,
)
from .token_manager import TokenManager

logger = logging.getLogger(__name__)


class TraktWatchType(str, Enum):
    MOVIES = "movies"
    SHOWS = "shows"
    SEASONS = "seasons"
    EPISODES = "episodes"


# Upstream page size requested when the caller gives no limit (None = Trakt default)
DEFAULT_PAGE_SIZES: Dict[str, Optional[int]] = {
    "default": None,
    "history": 1000,
    "ratings": None,
}

# Unresolved ``:segment`` placeholders, with their leading slash
SEGMENT_PATTERN = re.compile(r"/?:\w+")


@dataclass
class Pagination:
    """Pagination metadata from Trakt's ``X-Pagination-*`` response headers."""

    item_count: int
    page_count: int
    page_size: int
    page: int

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["Pagination"]:
        """Parse pagination headers; None when the response is not paginated."""
        if "x-pagination-page-count" not in headers and "x-pagination-item-count" not in headers:
            return None
        return cls(
            item_count=_int_header(headers, "x-pagination-item-count", 0),
            page_count=_int_header(headers, "x-pagination-page-count", 1),
            page_size=_int_header(headers, "x-pagination-limit", 0),
            page=_int_header(headers, "x-pagination-page", 1),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Pagination":
        return cls(
            item_count=data.get("itemCount", 0),
            page_count=data.get("pageCount", 1),
            page_size=data.get("pageSize", 0),
            page=data.get("page", 1),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "itemCount": self.item_count,
            "pageCount": self.page_count,
            "pageSize": self.page_size,
            "page": self.page,
        }


def _int_header(headers: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(headers.get(name)) or default
    except (TypeError, ValueError):
        return default


def format_param(value: Any) -> str:
    """Serialize a URL parameter: ISO-8601 UTC for dates, comma-joined lists."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join(format_param(v) for v in value)
    return str(value)


def build_pagination(limit: Optional[int], page: Optional[int], default_page_size: Optional[int] = None) -> Dict[str, Optional[int]]:
    """
    Query parameters for the first upstream request.

    ``limit`` is the caller's item cap; the page size requested from Trakt is
    ``min(limit, default_page_size)``. ``page`` is omitted for page 1 or when
    no page size is sent.

    Returns:
        ``{"limit": page_size, "page": page}`` with None for omitted values
    """
    if limit and default_page_size:
        page_size = min(limit, default_page_size)
    else:
        page_size = limit or default_page_size

    if page_size is None or not page or page == 1:
        return {"limit": page_size, "page": None}
    return {"limit": page_size, "page": page}


class TraktClient:
    """
    Client for the Trakt API.

    Attributes:
        token_manager: Supplies and refreshes the bearer token
        base_url: Trakt API root (e.g. https://api.trakt.tv)
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        token_manager: Optional[TokenManager] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or Config.TRAKT_API_URL).rstrip("/")
        self.timeout = timeout or Config.TRAKT_API_TIMEOUT
        self.transport = transport
        self.token_manager = token_manager or TokenManager(
            base_url=self.base_url, timeout=self.timeout, transport=transport
        )
        logger.debug(f"TraktClient initialized for: {self.base_url}")

    # =========================================================================
    # Request plumbing
    # =========================================================================

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.token_manager.authorization_header(),
            "trakt-api-version": Config.TRAKT_API_VERSION,
            "trakt-api-key": self.token_manager.client_id,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def build_url(self, template: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """
        Build a request URL from a path template and a parameter bag.

        Parameters whose name matches a ``:name`` placeholder fill that
        segment; the rest become query parameters. None values are dropped,
        unresolved placeholders are removed with their leading slash and
        duplicate slashes collapsed, so a missing optional segment yields a
        shorter path.

        Example:
            >>> client.build_url("/users/me/history/:type/:item_id", {"type": "movies", "limit": 10})
            'https://api.trakt.tv/users/me/history/movies?limit=10'
        """
        path = template
        query: List[tuple] = []

        for name, value in (params or {}).items():
            if value is None:
                continue
            value = format_param(value)
            placeholder = re.compile(rf":{name}\b")
            if placeholder.search(path):
                path = placeholder.sub(lambda _: quote(value, safe=","), path, count=1)
            else:
                query.append((name, value))

        path = SEGMENT_PATTERN.sub("", path)
        path = re.sub(r"/{2,}", "/", path) or "/"
        if not path.startswith("/"):
            path = "/" + path

        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"
        return url

    @retry_on_network_error(max_retries=Config.MAX_RETRIES)
    async def _send(self, method: str, url: str) -> httpx.Response:
        """Send one request; transient failures raise ``NetworkRetryableError``."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=self._get_headers())
        except httpx.TimeoutException as e:
            raise NetworkRetryableError(f"Request timeout to {url}", original_exception=e) from e
        except httpx.ConnectError as e:
            raise NetworkRetryableError(f"Connection error to {url}", original_exception=e) from e
        except httpx.HTTPError as e:
            raise TraktAPIError(f"HTTP error: {e}") from e

        if response.status_code == 429 or response.status_code in (502, 503, 504):
            raise self._error_from_response(response)
        return response

    @staticmethod
    def _error_from_response(response: httpx.Response) -> TraktAPIError:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        retry_after = None
        if response.headers.get("retry-after"):
            try:
                retry_after = float(response.headers["retry-after"])
            except ValueError:
                retry_after = None

        return classify_http_error(
            response.status_code,
            error_code=body.get("error"),
            description=body.get("error_description"),
            response_data=body or None,
            retry_after=retry_after,
        )

    async def _request(self, url: str, method: str = "GET") -> httpx.Response:
        """
        Authenticated request with one refresh-and-retry on 401.

        Raises:
            TraktAuthError: If Trakt answers 401 again after the refresh
            TokenRefreshError: If the token refresh itself fails
            TraktAPIError: For any other non-2xx response
        """
        await self.token_manager.ensure_valid()
        logger.debug(f"Trakt {method} {url}")
        response = await self._send(method, url)

        if response.status_code == 401:
            logger.info("Trakt answered 401, refreshing token and retrying once")
            await self.token_manager.refresh()
            response = await self._send(method, url)
            if response.status_code == 401:
                error = self._error_from_response(response)
                raise TraktAuthError(
                    error.message,
                    status_code=401,
                    error_code=error.error_code,
                    description=error.description,
                    response_data=error.response_data,
                )

        if response.status_code >= 400:
            error = self._error_from_response(response)
            logger.error(f"✗ {error.message}")
            raise error

        return response

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        """Parse a 2xx body; anything but JSON raises ``TraktAPIError``."""
        try:
            return response.json()
        except ValueError as e:
            raise TraktAPIError(
                f"Trakt API returned a non-JSON body (HTTP {response.status_code}) for {response.request.url}",
                status_code=response.status_code,
                error_code="invalid_response",
            ) from e

    async def _get_json(self, url: str) -> Any:
        response = await self._request(url)
        return self._decode_json(response)

    async def _paginated_request(
        self,
        url: str,
        limit: Optional[int] = None,
        auto_paginate: bool = False,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Fetch a (possibly paginated) collection.

        With ``auto_paginate``, pages after the first are requested
        concurrently up to ``min(page_count, max_pages, ceil(limit / page_size))``
        and concatenated in page order. Results are truncated to ``limit``.

        Args:
            url: Fully built URL of the first page
            limit: Maximum number of items to return (None = no cap)
            auto_paginate: Fetch the remaining pages
            max_pages: Highest page number to fetch (None = no cap)

        Returns:
            ``{"data": [...], "pagination": {...} or None}``
        """
        response = await self._request(url)
        pagination = Pagination.from_headers(response.headers)
        data = self._decode_json(response)

        if not isinstance(data, list):
            return {"data": data, "pagination": pagination.to_dict() if pagination else None}

        if pagination is not None and auto_paginate:
            last_page = pagination.page_count
            if max_pages:
                last_page = min(last_page, max_pages)
            if limit and pagination.page_size:
                last_page = min(last_page, pagination.page - 1 + math.ceil(limit / pagination.page_size))

            if pagination.page < last_page:
                base = httpx.URL(url)
                page_urls = [
                    str(base.copy_set_param("page", str(page)))
                    for page in range(pagination.page + 1, last_page + 1)
                ]
                logger.debug(f"Fetching {len(page_urls)} more pages of {base.path}")
                # gather preserves argument order, so pages recombine in page order
                pages = await asyncio.gather(*(self._get_json(page_url) for page_url in page_urls))
                data = list(data)
                for page_items in pages:
                    data.extend(page_items or [])

        if limit is not None:
            data = data[:limit]

        return {"data": data, "pagination": pagination.to_dict() if pagination else None}

    # =========================================================================
    # Resources
    # =========================================================================

    async def get_history(
        self,
        type: Optional[str] = None,
        item_id: Optional[int] = None,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = True,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Get the user's watch history.

        Args:
            type: movies, shows, seasons or episodes (None = everything)
            item_id: Trakt ID of a single item (requires ``type``)
            start_at: Only plays at or after this instant
            end_at: Only plays at or before this instant
            limit: Maximum number of items
            page: First page to fetch
            auto_paginate: Fetch all remaining pages
            max_pages: Highest page number to fetch

        Returns:
            ``{"data": [HistoryItem, ...], "pagination": {...}}``
        """
        url = self.build_url("/users/me/history/:type/:item_id", {
            "type": type,
            "item_id": item_id,
            "start_at": start_at,
            "end_at": end_at,
            **build_pagination(limit, page, DEFAULT_PAGE_SIZES["history"]),
        })
        return await self._paginated_request(url, limit=limit, auto_paginate=auto_paginate, max_pages=max_pages)

    async def get_ratings(
        self,
        type: Optional[str] = None,
        rating: Any = None,
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = True,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Get the user's ratings.

        Args:
            type: movies, shows, seasons, episodes or all
            rating: A rating (1-10) or list of ratings to filter on (requires ``type``)
        """
        url = self.build_url("/users/me/ratings/:type/:rating", {
            "type": type,
            "rating": rating if rating else None,
            **build_pagination(limit, page, DEFAULT_PAGE_SIZES["ratings"]),
        })
        return await self._paginated_request(url, limit=limit, auto_paginate=auto_paginate, max_pages=max_pages)

    async def get_watchlist(
        self,
        type: Optional[str] = None,
        sort: str = "rank",
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = True,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Get the user's watchlist, sorted by rank, added, released or title."""
        url = self.build_url("/users/me/watchlist/:type/:sort", {
            "type": type,
            "sort": sort if type else None,
            **build_pagination(limit, page, DEFAULT_PAGE_SIZES["default"]),
        })
        return await self._paginated_request(url, limit=limit, auto_paginate=auto_paginate, max_pages=max_pages)

    async def get_favorites(
        self,
        type: Optional[str] = None,
        sort: str = "rank",
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = True,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Get the user's favorites (movies and shows), with their notes."""
        url = self.build_url("/users/me/favorites/:type/:sort", {
            "type": type,
            "sort": sort if type else None,
            **build_pagination(limit, page, DEFAULT_PAGE_SIZES["default"]),
        })
        return await self._paginated_request(url, limit=limit, auto_paginate=auto_paginate, max_pages=max_pages)

    async def get_watched(self, type: str = TraktWatchType.MOVIES.value) -> Dict[str, Any]:
        """
        Get every movie or show the user has watched, with play counts.

        Not paginated by Trakt.

        Args:
            type: movies or shows
        """
        url = self.build_url("/users/me/watched/:type", {"type": type})
        return await self._paginated_request(url)

    async def get_trending(
        self,
        type: str = TraktWatchType.MOVIES.value,
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = False,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Get trending movies or shows with their current watcher counts."""
        url = self.build_url("/:type/trending", {
            "type": type,
            **build_pagination(limit, page, DEFAULT_PAGE_SIZES["default"]),
        })
        return await self._paginated_request(url, limit=limit, auto_paginate=auto_paginate, max_pages=max_pages)

    async def search(
        self,
        query: str,
        type: Optional[str] = None,
        limit: Optional[int] = None,
        page: int = 1,
        auto_paginate: bool = False,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Text search.

        Args:
            query: Search text
            type: movie, show, episode, person or list; comma-separate several
                (default: ``movie,show``)
        """
        url = self.build_url("/search/:type", {
            "type": type or "movie,show",
            "query": query,
            **build_pagination(limit, page, DEFAULT_PAGE_SIZES["default"]),
        })
        return await self._paginated_request(url, limit=limit, auto_paginate=auto_paginate, max_pages=max_pages)

    async def get_stats(self) -> Dict[str, Any]:
        """Get the user's aggregate stats (plays, minutes, ratings distribution)."""
        url = self.build_url("/users/me/stats")
        return await self._paginated_request(url)
