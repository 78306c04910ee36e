"""Dashboard statistics endpoint.

GET /api/dashboard/stats returns one complete snapshot, either for the
standard Today / ThisWeek / ThisMonth windows or for an explicit range.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from pulseledger.dashboard.api.dependencies import StatsServiceDep
from pulseledger.dashboard.models.stats import SnapshotError
from pulseledger.domain.snapshot import DashboardStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get(
    "/stats",
    response_model=DashboardStats,
    responses={
        400: {"description": "Malformed or inverted date range"},
        503: {"description": "Snapshot could not be computed", "model": SnapshotError},
    },
)
async def get_dashboard_stats(
    service: StatsServiceDep,
    start_date: Optional[str] = Query(None, description="First day of the range (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Last day of the range (YYYY-MM-DD)"),
) -> DashboardStats:
    """Get the dashboard snapshot.

    Without parameters the windows are relative to the server's current
    date. With both start_date and end_date every window is clipped to the
    inclusive range. A failed fetch yields 503 with an explicit error body,
    never a snapshot of zeros.
    """
    result = await service.get_dashboard_stats(start_date=start_date, end_date=end_date)
    if result.is_success():
        return result.value

    if result.error_type == "ValidationError":
        raise HTTPException(status_code=400, detail=result.error)

    raise HTTPException(
        status_code=503,
        detail=SnapshotError(
            error=result.error_type,
            detail=result.error,
            context=result.error_details or None,
        ).model_dump()
    )
