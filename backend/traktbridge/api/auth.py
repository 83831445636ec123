"""
Inbound API key authentication

Every request must carry ``x-api-key`` equal to ``Config.API_KEY``.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header

from traktbridge.config import Config
from traktbridge.api.errors import UnauthorizedError

logger = logging.getLogger(__name__)


async def verify_api_key(x_api_key: Optional[str] = Header(None, alias="x-api-key")) -> None:
    """
    FastAPI dependency rejecting requests without the configured API key.

    Raises:
        UnauthorizedError: Header missing or wrong (also when no key is configured)
    """
    # Header values may carry non-ASCII latin-1 characters; compare as bytes
    if not x_api_key or not Config.API_KEY or not hmac.compare_digest(
        x_api_key.encode(), Config.API_KEY.encode()
    ):
        logger.warning("✗ Rejected request with missing or invalid API key")
        raise UnauthorizedError()
