"""
SQLAlchemy Base Configuration for TraktBridge

This module provides the declarative base class for all ORM models.
"""

from sqlalchemy.orm import declarative_base

# Create the declarative base class for all models
Base = declarative_base()
