"""
Health check endpoints for monitoring and load balancer probes.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import __version__
from ...api.dependencies import get_db, get_invalidation_bus_dependency
from ...core.config import settings
from ...core.constants import BRAND_NAME
from ...realtime.invalidation_bus import RealtimeInvalidationBus
from ...schemas.health import HealthLiteResponse, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_ok(db: Session) -> bool:
    try:
        await asyncio.wait_for(
            asyncio.to_thread(lambda: db.execute(text("SELECT 1"))),
            timeout=2.0,
        )
    except (SQLAlchemyError, asyncio.TimeoutError) as exc:
        logger.warning("[HEALTH] Database check failed: %s", str(exc))
        return False
    return True


@router.get("", response_model=HealthResponse)
async def health_check(
    response: Response,
    db: Session = Depends(get_db),
    bus: RealtimeInvalidationBus = Depends(get_invalidation_bus_dependency),
) -> HealthResponse:
    """
    Health check endpoint.

    Reports degraded (HTTP 503) when the database cannot be reached.
    """
    database_ok = await _database_ok(db)
    if not database_ok:
        response.status_code = 503
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        service=f"{BRAND_NAME.lower()}-api",
        version=__version__,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        database="ok" if database_ok else "unavailable",
        realtime_backend=settings.realtime_backend,
        realtime_subscriptions=bus.subscription_count,
    )


@router.get("/lite", response_model=HealthLiteResponse)
def health_check_lite() -> HealthLiteResponse:
    """
    Lightweight health check that doesn't hit database.

    Use this for high-frequency health probes.
    """
    return HealthLiteResponse(status="ok")
