#!/usr/bin/env python3
"""Recompute daily analytics counters from stored messages."""

import argparse
import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from wahub.database import dispose_engine, get_session_context
from wahub.models import Organization
from wahub.models.base import utcnow
from wahub.services.analytics import DailyAnalyticsAggregator, analytics_day


async def reconcile(organization_id: str | None, days: int) -> int:
    """Reconcile the last ``days`` days; returns the number of rows rewritten."""
    aggregator = DailyAnalyticsAggregator()
    today = analytics_day(utcnow())
    rewritten = 0

    async with get_session_context() as session:
        if organization_id:
            organization_ids = [organization_id]
        else:
            result = await session.execute(
                select(Organization.id).where(Organization.is_active.is_(True))
            )
            organization_ids = list(result.scalars().all())

        for org_id in organization_ids:
            for offset in range(days):
                day: date = today - timedelta(days=offset)
                if await aggregator.reconcile_day(session, org_id, day) is not None:
                    rewritten += 1

    await dispose_engine()
    return rewritten


def main():
    parser = argparse.ArgumentParser(description="Reconcile daily analytics")
    parser.add_argument("--organization", help="Organization id (default: all active)")
    parser.add_argument("--days", type=int, default=1, help="Days back from today to recompute")

    args = parser.parse_args()

    rewritten = asyncio.run(reconcile(args.organization, args.days))
    print(f"Reconciled {rewritten} organization-day(s)")


if __name__ == "__main__":
    main()
