"""
Health Check API Routes

Provides Kubernetes-compatible health check endpoints for the proxy.

Endpoints:
- /health/live: Liveness probe - is the application running?
- /health/ready: Readiness probe - is the durable cache tier reachable?
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from traktbridge.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness_probe():
    """
    Kubernetes liveness probe.

    Returns 200 if the application is running.
    Does not check the cache database or Trakt.

    Returns:
        {"status": "alive"}
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """
    Kubernetes readiness probe.

    The proxy still answers from memory and upstream when the cache
    database is down, but reports not ready so the fault is visible.

    Returns:
        200: Cache database reachable
        503: Cache database unreachable
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"⚠ Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "cache database unavailable"},
        )
    return {"status": "ready", "database": "connected"}
