"""
Manager analytics endpoints + health check.

Each analytics request reads one consistent snapshot of committed entries
and aggregates in Python (see ``carelog.services.analytics``).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carelog.api.v1.deps import get_aggregator, get_db, require_manager
from carelog.core.config import settings
from carelog.core.timeutils import utcnow
from carelog.models.user import Role, User
from carelog.schemas.analytics import (DailyStatsResponse, HealthResponse,
                                       StaffTimeEntriesRead,
                                       StaffTimeEntriesResponse)
from carelog.services.analytics import (AnalyticsAggregator, TimeWindow,
                                        parse_window)

router = APIRouter(tags=["analytics"])
logger = logging.getLogger(__name__)


def _window(window: str | None) -> TimeWindow:
    try:
        return parse_window(
            window or settings.ANALYTICS_DEFAULT_WINDOW,
            now=utcnow(),
            max_days=settings.ANALYTICS_MAX_WINDOW_DAYS,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _scope(location_id: int | None, viewer: User) -> int | None:
    """Managers default to their own location; admins default to all."""
    if location_id is None and viewer.role == Role.MANAGER.value:
        return viewer.location_id
    return location_id


@router.get("/analytics/daily-stats", response_model=DailyStatsResponse)
async def daily_stats(
    window: str | None = Query(default=None, description="Lookback such as 7d"),
    location_id: int | None = Query(default=None, alias="locationId"),
    viewer: User = Depends(require_manager),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
) -> DailyStatsResponse:
    """Per-day statistics, per-staff hour totals and window-wide totals."""
    scope = _scope(location_id, viewer)
    report = await aggregator.report(_window(window), scope)
    return DailyStatsResponse.from_report(report, scope)


@router.get("/staff/time-entries", response_model=StaffTimeEntriesResponse)
async def staff_time_entries(
    window: str | None = Query(default=None, description="Lookback such as 7d"),
    location_id: int | None = Query(default=None, alias="locationId"),
    viewer: User = Depends(require_manager),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
) -> StaffTimeEntriesResponse:
    """Every care worker's entries in the window, grouped per person."""
    tw = _window(window)
    staff = await aggregator.staff_entries(tw, _scope(location_id, viewer))
    return StaffTimeEntriesResponse(
        window_start=tw.start,
        window_end=tw.end,
        staff_time_entries=[StaffTimeEntriesRead.from_staff(s) for s in staff],
    )


# ── Health ──────────────────────────────────────────────────────────
@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — DB connectivity."""
    result = HealthResponse(db=False)
    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
    return result
