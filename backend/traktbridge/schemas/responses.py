"""
API Response Schemas

Pydantic models for the standardized API responses.
Used for OpenAPI documentation and response serialization.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


def strip_none(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop None-valued fields from a flattened record, keeping field order."""
    return {key: value for key, value in record.items() if value is not None}


# ============================================================================
# Envelope
# ============================================================================

class PaginationInfo(BaseModel):
    """Pagination metadata of the returned collection."""
    itemCount: int = Field(..., description="Total number of items available")
    pageCount: int = Field(..., description="Total number of pages")
    pageSize: int = Field(..., description="Items per page")
    page: int = Field(..., description="Current page number")


class ApiResponse(BaseModel):
    """
    Standard collection response.

    ``total`` is only present when it differs from ``count`` (more items
    exist than were returned). None-valued fields of each record are omitted.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "count": 2,
                "total": 3,
                "pagination": {"itemCount": 3, "pageCount": 2, "pageSize": 2, "page": 1},
                "from_cache": False,
                "_info": "Showing 2 ratings rated 8+ stars.",
                "data": [
                    {"type": "movie", "title": "Heat", "year": 1995, "rating": 10,
                     "rated_at": "2024-03-01T20:15:00.000Z", "plays": 3},
                ],
            }
        },
    )

    count: int = Field(..., description="Number of items in data")
    total: Optional[int] = Field(None, description="Total items available, when different from count")
    pagination: Optional[PaginationInfo] = Field(None, description="Pagination metadata")
    from_cache: Optional[bool] = Field(None, description="Served from the query cache")
    info: Optional[str] = Field(None, alias="_info", description="What the response contains")
    tips: Optional[List[str]] = Field(None, alias="_tips", description="Hints for narrowing the query")
    data: List[Dict[str, Any]] = Field(..., description="Flattened records")

    @classmethod
    def build(
        cls,
        data: List[Mapping[str, Any]],
        pagination: Optional[Mapping[str, Any]] = None,
        from_cache: Optional[bool] = None,
        info: Optional[str] = None,
        tips: Optional[List[str]] = None,
    ) -> "ApiResponse":
        """
        Create a standardized response.

        Args:
            data: Flattened records
            pagination: Pagination dict (``itemCount`` etc.) or None
            from_cache: Whether the data came from the cache
            info: Informational message
            tips: Usage hints
        """
        count = len(data)
        item_count = pagination.get("itemCount") if pagination else None
        return cls(
            count=count,
            total=item_count if item_count is not None and item_count != count else None,
            pagination=PaginationInfo(**pagination) if pagination else None,
            from_cache=from_cache,
            info=info,
            tips=tips or None,
            data=[strip_none(record) for record in data],
        )

    def render(self) -> Dict[str, Any]:
        """Wire form: aliases applied, absent optional fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorResponse(BaseModel):
    """Standard error response."""
    status: int = Field(..., description="HTTP status code")
    error: str = Field(..., description="Error class name")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Structured error details")

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": 400,
                "error": "ParameterValidationError",
                "message": "Expected a number, got 'abc'",
                "details": {"param": "limit", "reason": "invalid_value"}
            }
        }
    }


# ============================================================================
# Other Responses
# ============================================================================

class RatingsStatsResponse(BaseModel):
    """Summary statistics of the user's ratings."""
    info: Optional[str] = Field(None, alias="_info", description="Informational message")
    total: int = Field(..., description="Total number of ratings")
    distribution: Dict[str, int] = Field(..., description="Number of ratings per value 1-10")
    avg: Optional[float] = Field(None, description="Average rating")
    median: Optional[float] = Field(None, description="Median rating")
    mode: Optional[int] = Field(None, description="Most frequent rating")
    std_dev: Optional[float] = Field(None, description="Population standard deviation")
    rating_spread: Optional[List[int]] = Field(None, description="Lowest and highest rating given")
    percent_8_and_above: Optional[float] = Field(None, description="Share of ratings 8 or higher (%)")
    percent_9_and_above: Optional[float] = Field(None, description="Share of ratings 9 or higher (%)")
    percent_10s: Optional[float] = Field(None, description="Share of 10s (%)")

    model_config = ConfigDict(populate_by_name=True)


class CacheFlushResponse(BaseModel):
    """Result of a cache flush."""
    success: bool = Field(True, description="Operation success status")
    cache_type: Optional[str] = Field(None, description="Flushed cache type (None = all)")
    deleted: Optional[int] = Field(None, description="Number of entries removed")


class CacheStatsResponse(BaseModel):
    """Query cache statistics."""
    memory_entries: int = Field(..., description="Live entries in the memory tier")
    memory_by_type: Dict[str, int] = Field(..., description="Memory entries per cache type")
    durable_entries: Optional[int] = Field(None, description="Rows in the durable tier (None if unavailable)")
    hits: int = Field(..., description="Cache hits since startup")
    misses: int = Field(..., description="Cache misses since startup")
    hit_rate: Optional[float] = Field(None, description="hits / (hits + misses)")
