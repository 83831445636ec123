"""
Database Configuration for TraktBridge

Provides the engine and session factory backing the durable cache tier.
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from traktbridge.config import Config


def create_cache_engine(database_url: str) -> Engine:
    """
    Create an engine for the durable cache database.

    SQLite database directories are created on demand.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        SQLAlchemy engine
    """
    if database_url.startswith("sqlite:///"):
        db_dir = os.path.dirname(database_url.replace("sqlite:///", ""))
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


# SQLAlchemy engine and session
engine = create_cache_engine(Config.CACHE_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    FastAPI dependency for database sessions.

    Yields:
        SQLAlchemy session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
