"""
Configuration Management for TraktBridge

This module centralizes all application configuration: upstream OAuth
credentials, the inbound API key, timeouts, retry policy and cache TTLs.

All values are read from environment variables (optionally loaded from a
``.env`` file via python-dotenv) and have sensible defaults where one exists.
The rotating Trakt refresh token is written back to the same ``.env`` file
every time it changes, see ``save_refresh_token``.
"""

import logging
import os
from typing import List

from dotenv import load_dotenv, set_key

logger = logging.getLogger(__name__)

ENV_FILE = os.getenv("ENV_FILE", ".env")

# Environment variables already set take precedence over the file
load_dotenv(ENV_FILE, override=False)


def _ttl(name: str, default: int) -> int:
    return int(os.getenv(f"CACHE_TTL_{name}", str(default)))


class Config:
    """
    Centralized configuration management using environment variables.

    Secrets (API key, client secret, refresh token) have no default and are
    reported by ``validate()`` when missing.
    """

    # =============================================================================
    # APPLICATION SETTINGS
    # =============================================================================
    APP_VERSION = "1.0.0"
    APP_TITLE = "TraktBridge"
    APP_DESCRIPTION = "Authenticated caching proxy for the Trakt API"
    APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT = int(os.getenv("APP_PORT", os.getenv("PORT", "3000")))

    DEBUG = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    # "text" or "json"
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text").lower()

    ENV_FILE = ENV_FILE

    # =============================================================================
    # INBOUND AUTHENTICATION
    # =============================================================================
    API_KEY = os.getenv("API_KEY", "")

    # =============================================================================
    # TRAKT UPSTREAM
    # =============================================================================
    TRAKT_API_URL = os.getenv("TRAKT_API_URL", "https://api.trakt.tv")
    TRAKT_API_VERSION = os.getenv("TRAKT_API_VERSION", "2")
    APP_CLIENT_ID = os.getenv("APP_CLIENT_ID", "")
    APP_CLIENT_SECRET = os.getenv("APP_CLIENT_SECRET", "")
    REFRESH_TOKEN = os.getenv("REFRESH_TOKEN", "")

    # Per-call upstream timeout (seconds)
    TRAKT_API_TIMEOUT = float(os.getenv("TRAKT_API_TIMEOUT", "30"))

    # Retries for timeouts, connection errors and 429/502/503/504
    MAX_RETRIES = int(os.getenv("MAX_RETRIES", "2"))

    # =============================================================================
    # CACHE CONFIGURATION
    # =============================================================================
    CACHE_DATABASE_URL = os.getenv("CACHE_DATABASE_URL", "sqlite:///./.cache/queries.db")

    # Memory tier sweep interval (seconds)
    CACHE_SWEEP_INTERVAL = int(os.getenv("CACHE_SWEEP_INTERVAL", "300"))

    # TTLs (seconds) per cache type
    CACHE_TTL_DEFAULT = _ttl("DEFAULT", 60 * 60)
    CACHE_TTL_HISTORY = _ttl("HISTORY", 60 * 5)
    CACHE_TTL_RATINGS = _ttl("RATINGS", 60 * 5)
    CACHE_TTL_WATCHED = _ttl("WATCHED", 60 * 5)
    CACHE_TTL_FAVORITES = _ttl("FAVORITES", 60 * 5)
    CACHE_TTL_WATCHLIST = _ttl("WATCHLIST", 60 * 5)
    CACHE_TTL_TRENDING = _ttl("TRENDING", 60 * 60)
    CACHE_TTL_SEARCH = _ttl("SEARCH", 60 * 60)
    CACHE_TTL_STATS = _ttl("STATS", 60 * 30)

    @classmethod
    def validate(cls) -> List[str]:
        """
        Validate critical configuration values.

        Returns:
            Names of required settings that are missing (empty when valid)
        """
        missing = [
            name for name in ("API_KEY", "APP_CLIENT_ID", "APP_CLIENT_SECRET", "REFRESH_TOKEN")
            if not getattr(cls, name)
        ]
        if cls.APP_PORT < 1 or cls.APP_PORT > 65535:
            missing.append("APP_PORT")
        return missing

    @classmethod
    def get_summary(cls) -> dict:
        """
        Get configuration summary for logging/debugging.

        Returns:
            Dictionary with non-sensitive configuration values
        """
        return {
            "app_version": cls.APP_VERSION,
            "debug": cls.DEBUG,
            "app_host": cls.APP_HOST,
            "app_port": cls.APP_PORT,
            "trakt_api_url": cls.TRAKT_API_URL,
            "trakt_configured": bool(cls.APP_CLIENT_ID and cls.APP_CLIENT_SECRET and cls.REFRESH_TOKEN),
            "api_key_configured": bool(cls.API_KEY),
            "cache_database": cls.CACHE_DATABASE_URL.split("@")[-1] if "@" in cls.CACHE_DATABASE_URL else "sqlite",
            "api_timeout": cls.TRAKT_API_TIMEOUT,
            "max_retries": cls.MAX_RETRIES,
            "log_format": cls.LOG_FORMAT,
        }


def save_refresh_token(refresh_token: str) -> None:
    """
    Persist a rotated Trakt refresh token.

    Trakt refresh tokens are single-use, so the new value must survive a
    restart. The token is written to the ``.env`` file and mirrored into the
    process environment and ``Config``.

    Args:
        refresh_token: The refresh token returned by the last OAuth exchange
    """
    Config.REFRESH_TOKEN = refresh_token
    os.environ["REFRESH_TOKEN"] = refresh_token
    try:
        set_key(Config.ENV_FILE, "REFRESH_TOKEN", refresh_token)
    except OSError as e:
        logger.error(f"Could not persist rotated refresh token to {Config.ENV_FILE}: {e}")
        return
    logger.info(f"✓ Rotated refresh token saved to {Config.ENV_FILE}")


# Singleton instance
config = Config()
