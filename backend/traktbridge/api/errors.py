"""
API Error Handling

Error classes raised by the route layer and the FastAPI handlers that turn
every error, including core ``TraktAPIError``s, into the standard error body::

    {"status": 400, "error": "ParameterValidationError",
     "message": "...", "details": {"param": "limit", "reason": "invalid_value"}}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from traktbridge.config import Config
from traktbridge.services.exceptions import TraktAPIError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base API error with HTTP status code and details."""

    def __init__(self, message: str, status: int = 500, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details or {}

    @property
    def name(self) -> str:
        return self.__class__.__name__


class ValidationError(ApiError):
    """Invalid request input."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, details)


class ParameterValidationError(ValidationError):
    """
    A single query/path parameter failed validation.

    Reasons: ``invalid_value``, ``negative_not_allowed``, ``below_minimum``,
    ``above_maximum``, ``missing_required``, ``invalid_option``.
    """

    def __init__(
        self,
        param_name: str,
        reason: str = 'invalid_value',
        message: Optional[str] = None,
        **additional_details: Any,
    ):
        super().__init__(
            message or f"Invalid parameter: {param_name}",
            {'param': param_name, 'reason': reason, **additional_details},
        )
        self.param_name = param_name
        self.reason = reason


class UnauthorizedError(ApiError):
    """Missing or wrong inbound API key."""

    def __init__(self, message: str = "Unauthorized: Invalid API key"):
        super().__init__(message, 401)


def create_error_response(err: Exception) -> Dict[str, Any]:
    """
    Create a standardized error response body.

    Args:
        err: Any exception raised while handling a request

    Returns:
        Dictionary with ``status``, ``error``, ``message`` and ``details``
    """
    if isinstance(err, ApiError):
        return {
            'status': err.status,
            'error': err.name,
            'message': err.message,
            'details': err.details,
        }

    if isinstance(err, TraktAPIError):
        details: Dict[str, Any] = {'upstream_status': err.status_code}
        if err.error_code:
            details['error_code'] = err.error_code
        if err.description:
            details['description'] = err.description
        return {
            'status': 502,
            'error': err.__class__.__name__,
            'message': err.message,
            'details': details,
        }

    return {
        'status': 500,
        'error': 'InternalServerError',
        'message': 'An unexpected error occurred',
        'details': {'originalError': str(err)} if Config.DEBUG else {},
    }


async def _handle_error(request: Request, exc: Exception) -> JSONResponse:
    body = create_error_response(exc)
    logger.error(f"[ERROR] {type(exc).__name__}: {exc}", exc_info=body['status'] >= 500)
    return JSONResponse(status_code=body['status'], content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the standard error handlers on a FastAPI application."""
    app.add_exception_handler(ApiError, _handle_error)
    app.add_exception_handler(TraktAPIError, _handle_error)
    app.add_exception_handler(Exception, _handle_error)
