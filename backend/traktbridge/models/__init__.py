"""
Database models for TraktBridge
"""

from .base import Base
from .query_cache import QueryCache

__all__ = ['Base', 'QueryCache']
