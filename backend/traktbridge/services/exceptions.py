"""
Typed Exception Hierarchy for TraktBridge

This module defines the errors raised by the core (token manager, Trakt
client, cache layers) and the retry decorator used around upstream calls.
None of these know about inbound HTTP; the route layer maps them to
responses in ``traktbridge.api.errors``.

Exception Hierarchy:
    TraktAPIError (base, non-retryable)
    ├── NetworkRetryableError (retryable with exponential backoff)
    ├── TokenRefreshError (OAuth refresh exchange failed)
    └── TraktAuthError (401 persisted after a refresh-and-retry)
"""

import asyncio
import functools
import logging
from typing import Callable, Optional, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')


# ============================================================================
# Exception Hierarchy
# ============================================================================

class TraktAPIError(Exception):
    """
    Base exception for Trakt API errors (non-retryable).

    Carries the provider's machine-readable ``error`` code and its
    human-readable ``error_description`` when the response included them.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        description: Optional[str] = None,
        response_data: Optional[dict] = None,
    ):
        """
        Initialize TraktAPIError.

        Args:
            message: Human-readable error description
            status_code: Upstream HTTP status code if applicable
            error_code: Provider error code (e.g. ``invalid_grant``)
            description: Provider error description
            response_data: Raw response body for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.description = description
        self.response_data = response_data

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.__class__.__name__} (HTTP {self.status_code}): {self.message}"
        return f"{self.__class__.__name__}: {self.message}"


class NetworkRetryableError(TraktAPIError):
    """
    Network-level error that should be retried with exponential backoff.

    Raised for timeouts, connection failures, rate limiting (429) and
    gateway errors (502/503/504).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.original_exception = original_exception
        self.retry_after = retry_after


class TokenRefreshError(TraktAPIError):
    """The OAuth refresh-token exchange failed (network or provider rejection)."""


class TraktAuthError(TraktAPIError):
    """Trakt rejected the credentials again right after a token refresh."""


# ============================================================================
# Retry Decorator
# ============================================================================

def retry_on_network_error(
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: int = 2,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for automatic retry with exponential backoff on network errors.

    Only ``NetworkRetryableError`` is retried; delay is
    ``min(base_delay * exponential_base ** attempt, max_delay)``, or the
    server-suggested ``retry_after`` when present. Every other exception
    propagates on the first occurrence.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential calculation

    Returns:
        Decorated coroutine function with retry logic
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except NetworkRetryableError as e:
                    if attempt >= max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}. "
                            f"Final error: {e}"
                        )
                        raise

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)
                    if e.retry_after:
                        delay = min(e.retry_after, max_delay)

                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries} failed for {func.__name__}: {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


# ============================================================================
# Convenience Functions
# ============================================================================

def classify_http_error(
    status_code: int,
    error_code: Optional[str] = None,
    description: Optional[str] = None,
    response_data: Optional[dict] = None,
    retry_after: Optional[float] = None,
) -> TraktAPIError:
    """
    Classify a non-2xx Trakt response into an exception.

    Args:
        status_code: HTTP status code
        error_code: Provider error code from the response body
        description: Provider error description from the response body
        response_data: Parsed response body
        retry_after: Seconds from the Retry-After header, if any

    Returns:
        Exception instance matching the status code
    """
    message = f"Trakt API responded [{status_code} - {error_code}] {description}"

    if status_code == 429:
        return NetworkRetryableError(message, status_code=status_code, retry_after=retry_after)

    if status_code in (502, 503, 504):
        return NetworkRetryableError(message, status_code=status_code)

    return TraktAPIError(
        message,
        status_code=status_code,
        error_code=error_code,
        description=description,
        response_data=response_data,
    )
