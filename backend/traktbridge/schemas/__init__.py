"""
API Schemas Package

Contains Pydantic models for API responses.
These schemas are used for OpenAPI documentation and serialization.
"""

from traktbridge.schemas.responses import (
    ApiResponse,
    CacheFlushResponse,
    CacheStatsResponse,
    ErrorResponse,
    PaginationInfo,
    RatingsStatsResponse,
    strip_none,
)

__all__ = [
    'ApiResponse',
    'CacheFlushResponse',
    'CacheStatsResponse',
    'ErrorResponse',
    'PaginationInfo',
    'RatingsStatsResponse',
    'strip_none',
]
