"""Analytics endpoints."""

from datetime import date, timedelta

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.api.middleware.auth import get_membership_context
from wahub.api.schemas import AnalyticsRangeResponse, DailyAnalyticsResponse
from wahub.database import get_session
from wahub.models.base import utcnow
from wahub.models.organization import MANAGER_ROLES
from wahub.services.analytics import DailyAnalyticsAggregator, analytics_day
from wahub.services.directory import MembershipContext, require_role

logger = structlog.get_logger()
router = APIRouter(prefix="/analytics")


@router.get("/daily", response_model=AnalyticsRangeResponse)
async def get_daily_analytics(
    days: int = Query(7, ge=1, le=366, description="Number of days, today included"),
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """
    Daily counters of the caller's organization.

    Days without traffic have no row and are omitted.
    """
    end = analytics_day(utcnow())
    start = end - timedelta(days=days - 1)

    rows = await DailyAnalyticsAggregator().get_daily_analytics(
        session, context.organization_id, start, end
    )
    return AnalyticsRangeResponse(
        start=start,
        end=end,
        days=[DailyAnalyticsResponse.model_validate(row) for row in rows],
    )


@router.post("/reconcile", response_model=DailyAnalyticsResponse)
async def reconcile_day(
    day: date = Query(..., description="Calendar day to recompute"),
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Recompute one day's counters from stored messages."""
    require_role(context, *MANAGER_ROLES)

    row = await DailyAnalyticsAggregator().reconcile_day(session, context.organization_id, day)
    if row is None:
        return DailyAnalyticsResponse(
            day=day,
            total_messages=0,
            messages_sent=0,
            messages_received=0,
            unique_contacts=0,
            response_count=0,
        )
    return DailyAnalyticsResponse.model_validate(row)
