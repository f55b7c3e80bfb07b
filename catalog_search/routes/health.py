"""
Health Routes

Liveness endpoint with anonymous session counts.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from catalog_search.config import settings
from catalog_search.dependencies import get_session_registry
from catalog_search.services.session_registry import SessionRegistry

router = APIRouter(tags=["Monitoring"])

APP_START_TIME = time.time()


class SessionStats(BaseModel):
    active: int
    registered: int


class HealthStatus(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    version: str
    uptime_seconds: float
    sessions: SessionStats


@router.get("/health", response_model=HealthStatus)
async def health_check(registry: SessionRegistry = Depends(get_session_registry)) -> HealthStatus:
    """
    Liveness check endpoint.

    Does not touch the catalog or the database.
    """
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
        sessions=SessionStats(**registry.stats()),
    )
