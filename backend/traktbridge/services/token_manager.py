"""
Trakt OAuth Token Manager

Owns the access/refresh token pair used for every upstream call.

Lifecycle:
    - No access token at startup; the first upstream call triggers a refresh
    - ``ensure_valid()`` refreshes when the token is absent or expired
    - A 401 from Trakt triggers an unconditional ``refresh()`` (see TraktClient)
    - Every successful refresh rotates both tokens; Trakt refresh tokens are
      single-use, so the new one is persisted through ``on_rotate``

Concurrent callers that find the token expired share one in-flight refresh
task instead of racing independent exchanges.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from traktbridge.config import Config, save_refresh_token
from .exceptions import (
    NetworkRetryableError,
    TokenRefreshError,
    retry_on_network_error,
)

logger = logging.getLogger(__name__)

# Out-of-band redirect URI registered for device/CLI Trakt apps
OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"


class TokenManager:
    """
    OAuth credential holder for the Trakt API.

    Attributes:
        client_id: Trakt application client ID (also sent as ``trakt-api-key``)
        access_token: Current bearer token, None until the first refresh
        refresh_token: Current single-use refresh token
        expires_at: ``time.time()`` timestamp when the access token expires
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        on_rotate: Optional[Callable[[str], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the token manager.

        Args:
            client_id: Trakt client ID (defaults to ``Config.APP_CLIENT_ID``)
            client_secret: Trakt client secret (defaults to ``Config.APP_CLIENT_SECRET``)
            refresh_token: Initial refresh token (defaults to ``Config.REFRESH_TOKEN``)
            base_url: Trakt API base URL (defaults to ``Config.TRAKT_API_URL``)
            timeout: Request timeout in seconds
            on_rotate: Called with the new refresh token after each rotation
                (defaults to writing it back to the ``.env`` file)
            transport: Optional httpx transport (used by tests)
        """
        self.client_id = client_id if client_id is not None else Config.APP_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else Config.APP_CLIENT_SECRET
        self.refresh_token = refresh_token if refresh_token is not None else Config.REFRESH_TOKEN
        self.base_url = (base_url or Config.TRAKT_API_URL).rstrip('/')
        self.timeout = timeout or Config.TRAKT_API_TIMEOUT
        self.on_rotate = on_rotate or save_refresh_token
        self.transport = transport

        self.access_token: Optional[str] = None
        self.expires_at: Optional[float] = None
        self._pending: Optional[asyncio.Task] = None

        if not (self.client_id and self.client_secret and self.refresh_token):
            logger.warning(
                "⚠ TokenManager not fully configured: missing client ID, client secret or refresh token"
            )

    @property
    def is_expired(self) -> bool:
        """True when there is no access token or its expiry is at or before now."""
        return (
            self.access_token is None
            or self.expires_at is None
            or self.expires_at <= time.time()
        )

    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"

    async def ensure_valid(self) -> str:
        """
        Guarantee a non-expired access token.

        Returns:
            The current access token

        Raises:
            TokenRefreshError: If a needed refresh fails
        """
        if self.is_expired:
            await self.refresh()
        return self.access_token

    async def refresh(self) -> str:
        """
        Exchange the refresh token for a new token pair.

        If a refresh is already in flight, waits for that one instead of
        starting another.

        Returns:
            The new access token

        Raises:
            TokenRefreshError: If the exchange fails; token state is unchanged
        """
        if self._pending is None or self._pending.done():
            self._pending = asyncio.create_task(self._exchange_refresh_token())
        return await asyncio.shield(self._pending)

    @retry_on_network_error(max_retries=Config.MAX_RETRIES)
    async def _post_token(self, payload: dict) -> httpx.Response:
        url = f"{self.base_url}/oauth/token"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise NetworkRetryableError(f"Request timeout to {url}", original_exception=e) from e
        except httpx.ConnectError as e:
            raise NetworkRetryableError(f"Connection error to {url}", original_exception=e) from e

        if response.status_code in (502, 503, 504):
            raise NetworkRetryableError(
                f"Trakt OAuth temporarily unavailable (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        return response

    async def _exchange_refresh_token(self) -> str:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "redirect_uri": OOB_REDIRECT_URI,
            "refresh_token": self.refresh_token,
        }

        logger.info("Refreshing Trakt access token...")
        try:
            response = await self._post_token(payload)
        except NetworkRetryableError as e:
            logger.error(f"✗ Error refreshing Trakt access token: {e}")
            raise TokenRefreshError(f"Failed to refresh token: {e.message}", status_code=e.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"✗ Error refreshing Trakt access token: {type(e).__name__}: {e}")
            raise TokenRefreshError(f"Failed to refresh token: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            error_code = data.get("error") if isinstance(data, dict) else None
            description = data.get("error_description") if isinstance(data, dict) else None
            logger.error(
                f"✗ Error refreshing Trakt access token: HTTP {response.status_code} {error_code}"
            )
            raise TokenRefreshError(
                f"Failed to refresh token [{response.status_code} - {error_code}] {description}",
                status_code=response.status_code,
                error_code=error_code,
                description=description,
                response_data=data if isinstance(data, dict) else None,
            )

        try:
            access_token = data["access_token"]
            refresh_token = data["refresh_token"]
            expires_at = time.time() + float(data["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"✗ Malformed Trakt token response: {e}")
            raise TokenRefreshError(f"Malformed token response: missing {e}") from e

        # All fields parsed; swap state in one step
        self.access_token, self.refresh_token, self.expires_at = access_token, refresh_token, expires_at
        logger.info(f"✓ Trakt access token refreshed (expires in {int(data['expires_in'])}s)")

        self.on_rotate(refresh_token)
        return access_token
