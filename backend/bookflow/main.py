# backend/bookflow/main.py
"""
Bookflow reservation and availability API.

Wires the invalidation bus at startup: an in-memory transport for a
single process, or Broadcaster over Redis when several workers must see
each other's changes. The shared availability cache follows the bus so
that slot lists drop as soon as a reservation changes.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .api.dependencies.services import get_availability_cache
from .core.broadcast import connect_broadcast, disconnect_broadcast
from .core.config import settings
from .core.constants import BRAND_NAME
from .database import init_db
from .errors import register_error_handlers
from .middleware.prometheus_middleware import PrometheusMiddleware
from .realtime.invalidation_bus import RealtimeInvalidationBus, set_invalidation_bus
from .realtime.transports import BroadcastTransport, EventTransport, InMemoryTransport
from .routes.v1 import (
    availability as availability_v1,
    health as health_v1,
    pricing as pricing_v1,
    prometheus as prometheus_v1,
    realtime as realtime_v1,
    reservations as reservations_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


async def _build_transport() -> EventTransport:
    if settings.realtime_backend == "redis":
        broadcast = await connect_broadcast(settings.redis_url)
        return BroadcastTransport(broadcast)
    return InMemoryTransport()


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")

    if settings.database_auto_create:
        init_db()

    bus = RealtimeInvalidationBus(await _build_transport())
    set_invalidation_bus(bus)
    logger.info(f"[BUS] Realtime backend: {settings.realtime_backend}")

    cache = get_availability_cache()
    if cache.enabled:
        subscription = await cache.attach(bus)
        if subscription.is_live:
            logger.info(f"Availability cache enabled (ttl={cache.ttl_seconds}s)")

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    await cache.detach(bus)
    await bus.close()
    set_invalidation_bus(None)
    if settings.realtime_backend == "redis":
        await disconnect_broadcast()


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description="Slot availability, pricing and reservations for bookable activities",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

register_error_handlers(app)
app.add_middleware(PrometheusMiddleware)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(availability_v1.router, prefix="/activities")
api_v1.include_router(reservations_v1.router, prefix="/reservations")
api_v1.include_router(pricing_v1.router, prefix="/pricing")
api_v1.include_router(realtime_v1.router, prefix="/realtime")
api_v1.include_router(health_v1.router, prefix="/health")

app.include_router(api_v1)
app.include_router(prometheus_v1.router)


@app.get("/")
def read_root() -> dict:
    return {"message": f"{BRAND_NAME} API", "version": __version__, "docs": "/docs"}
