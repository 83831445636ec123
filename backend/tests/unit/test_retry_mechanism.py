"""
Unit tests for Retry Mechanism and error classification

Tests for the @retry_on_network_error decorator from
traktbridge/services/exceptions.py covering:
- Retry on retryable errors
- Max retry limits
- Retry-After handling
- No retry on non-retryable errors
- HTTP status classification and API error bodies
"""

from unittest.mock import AsyncMock, patch

import pytest

from traktbridge.api.errors import ParameterValidationError, create_error_response
from traktbridge.services.exceptions import (
    NetworkRetryableError,
    TraktAPIError,
    TraktAuthError,
    classify_http_error,
    retry_on_network_error,
)


class TestRetry:

    @pytest.mark.asyncio
    async def test_success_after_retry(self):
        call_count = 0

        @retry_on_network_error(max_retries=3, base_delay=0.01)
        async def flaky_function():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise NetworkRetryableError("Timeout occurred")
            return "success"

        result = await flaky_function()

        assert result == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_respects_max_retries(self):
        call_count = 0

        @retry_on_network_error(max_retries=2, base_delay=0.01)
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise NetworkRetryableError("Always fails")

        with pytest.raises(NetworkRetryableError):
            await always_fails()

        assert call_count == 3  # Initial attempt + 2 retries

    @pytest.mark.asyncio
    async def test_no_retry_on_api_error(self):
        call_count = 0

        @retry_on_network_error(max_retries=3, base_delay=0.01)
        async def rejected():
            nonlocal call_count
            call_count += 1
            raise TraktAPIError("Not found", status_code=404)

        with pytest.raises(TraktAPIError):
            await rejected()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_after_overrides_backoff(self):
        attempts = []

        @retry_on_network_error(max_retries=1, base_delay=5.0)
        async def rate_limited():
            attempts.append(1)
            if len(attempts) == 1:
                raise NetworkRetryableError("Rate limited", status_code=429, retry_after=0.5)
            return "ok"

        with patch("traktbridge.services.exceptions.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            assert await rate_limited() == "ok"

        mock_sleep.assert_awaited_once_with(0.5)


class TestClassifyHttpError:

    @pytest.mark.parametrize("status", [429, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert isinstance(classify_http_error(status), NetworkRetryableError)

    def test_client_error(self):
        error = classify_http_error(404, error_code="not_found", description="Unknown user")

        assert type(error) is TraktAPIError
        assert error.message == "Trakt API responded [404 - not_found] Unknown user"
        assert str(error) == "TraktAPIError (HTTP 404): Trakt API responded [404 - not_found] Unknown user"


class TestErrorResponses:

    def test_parameter_error_body(self):
        body = create_error_response(ParameterValidationError("limit", "below_minimum", "too small", minimum=1))

        assert body == {
            "status": 400,
            "error": "ParameterValidationError",
            "message": "too small",
            "details": {"param": "limit", "reason": "below_minimum", "minimum": 1},
        }

    def test_upstream_error_body(self):
        body = create_error_response(TraktAuthError("rejected", status_code=401, error_code="invalid_token"))

        assert body["status"] == 502
        assert body["error"] == "TraktAuthError"
        assert body["details"] == {"upstream_status": 401, "error_code": "invalid_token"}

    @patch("traktbridge.api.errors.Config.DEBUG", False)
    def test_unknown_error_is_opaque(self):
        body = create_error_response(RuntimeError("secret detail"))

        assert body == {
            "status": 500,
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "details": {},
        }

    @patch("traktbridge.api.errors.Config.DEBUG", True)
    def test_unknown_error_detail_in_debug(self):
        body = create_error_response(RuntimeError("secret detail"))

        assert body["details"] == {"originalError": "secret detail"}
