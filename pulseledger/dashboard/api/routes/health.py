"""Health check endpoint for dashboard API."""

import asyncio
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter

from pulseledger.dashboard.api.dependencies import StoreDep
from pulseledger.dashboard.models.health import HealthResponse, StoreHealth
from pulseledger.domain.ports import RecordStorePort
from pulseledger.infrastructure.settings import APP_VERSION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

HEALTH_CHECK_TIMEOUT = 5.0


async def check_store_health(store: RecordStorePort) -> StoreHealth:
    """Check record store connectivity with a cheap count.

    Security Impact:
        - Only checks connectivity, no record data exposed
    """
    start_time = time.time()
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(store.count_records, "beds", []),
            timeout=HEALTH_CHECK_TIMEOUT
        )
    except asyncio.TimeoutError:
        logger.warning(f"Store health check timed out after {HEALTH_CHECK_TIMEOUT}s")
        return StoreHealth(status="disconnected", type=store.store_type)

    if result.is_failure():
        logger.warning(f"Store health check failed: {result.error}")
        return StoreHealth(status="disconnected", type=store.store_type)

    response_time = (time.time() - start_time) * 1000
    return StoreHealth(
        status="connected",
        type=store.store_type,
        response_time_ms=round(response_time, 2)
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(store: StoreDep) -> HealthResponse:
    """Health check endpoint.

    Used by monitoring tools and load balancers. The service is unhealthy
    when the record store cannot be reached, since no snapshot can be
    computed without it.
    """
    store_health = await check_store_health(store)
    return HealthResponse(
        status="healthy" if store_health.status == "connected" else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        version=APP_VERSION,
        store=store_health
    )
