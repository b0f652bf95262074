"""Daily analytics aggregation."""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.config import settings
from wahub.models.analytics import DailyAnalytics, DailyContact
from wahub.models.base import utcnow
from wahub.models.messaging import Message, MessageDirection
from wahub.repositories import insert_for

logger = structlog.get_logger()


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def analytics_day(timestamp: datetime, tz_name: str | None = None) -> date:
    """Calendar day a message event belongs to."""
    tz = ZoneInfo(tz_name or settings.analytics_timezone)
    return as_utc(timestamp).astimezone(tz).date()


def day_bounds(day: date, tz_name: str | None = None) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the analytics timezone."""
    tz = ZoneInfo(tz_name or settings.analytics_timezone)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(UTC), end.astimezone(UTC)


def summarize_messages(messages: list[Message]) -> dict[str, int]:
    """
    Compute a day's counters from its messages.

    Response metrics pair the oldest unanswered incoming message of a
    contact with that contact's next outgoing message.

    Args:
        messages: Messages of one organization and day, any order

    Returns:
        Column values for a DailyAnalytics row
    """
    ordered = sorted(messages, key=lambda m: (as_utc(m.sent_at), m.external_id))
    waiting: dict[str, datetime] = {}
    summary = {
        "total_messages": 0,
        "messages_sent": 0,
        "messages_received": 0,
        "unique_contacts": len({m.contact_id for m in ordered}),
        "response_count": 0,
        "response_time_total_seconds": 0,
    }

    for message in ordered:
        summary["total_messages"] += 1
        if message.direction == MessageDirection.OUTGOING:
            summary["messages_sent"] += 1
            since = waiting.pop(message.contact_id, None)
            if since is not None:
                summary["response_count"] += 1
                summary["response_time_total_seconds"] += response_seconds(
                    since, message.sent_at
                )
        else:
            summary["messages_received"] += 1
            waiting.setdefault(message.contact_id, as_utc(message.sent_at))

    return summary


def response_seconds(asked_at: datetime, answered_at: datetime) -> int:
    return max(0, int((as_utc(answered_at) - as_utc(asked_at)).total_seconds()))


class DailyAnalyticsAggregator:
    """Maintains one counter row per (organization, day)."""

    async def record_event(
        self,
        session: AsyncSession,
        organization_id: str,
        day: date,
        direction: MessageDirection,
        contact_id: str | None = None,
        response_time: int | None = None,
    ) -> None:
        """
        Count one newly stored message.

        Runs inside the caller's transaction. The counter row is created
        seeded from this event or incremented in a single statement.

        Args:
            session: Database session
            organization_id: Organization UUID
            day: Analytics day of the message
            direction: Message direction
            contact_id: Contact UUID, counted once per day
            response_time: Seconds since the unanswered message this one replies to
        """
        new_contact = False
        if contact_id is not None:
            stmt = (
                insert_for(session, DailyContact)
                .values(organization_id=organization_id, day=day, contact_id=contact_id)
                .on_conflict_do_nothing(index_elements=["organization_id", "day", "contact_id"])
                .returning(DailyContact.contact_id)
            )
            result = await session.execute(stmt)
            new_contact = result.scalar_one_or_none() is not None

        sent = 1 if direction == MessageDirection.OUTGOING else 0
        received = 1 - sent
        contacts = 1 if new_contact else 0
        responses = 1 if response_time is not None else 0
        response_total = response_time or 0

        stmt = insert_for(session, DailyAnalytics).values(
            organization_id=organization_id,
            day=day,
            total_messages=1,
            messages_sent=sent,
            messages_received=received,
            unique_contacts=contacts,
            response_count=responses,
            response_time_total_seconds=response_total,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["organization_id", "day"],
            set_={
                "total_messages": DailyAnalytics.total_messages + 1,
                "messages_sent": DailyAnalytics.messages_sent + sent,
                "messages_received": DailyAnalytics.messages_received + received,
                "unique_contacts": DailyAnalytics.unique_contacts + contacts,
                "response_count": DailyAnalytics.response_count + responses,
                "response_time_total_seconds": (
                    DailyAnalytics.response_time_total_seconds + response_total
                ),
                "updated_at": utcnow(),
            },
        )
        await session.execute(stmt)

        logger.debug(
            "daily_analytics_recorded",
            organization_id=organization_id,
            day=str(day),
            direction=str(direction),
            new_contact=new_contact,
        )

    async def reconcile_day(
        self,
        session: AsyncSession,
        organization_id: str,
        day: date,
    ) -> DailyAnalytics | None:
        """
        Recompute a day's counters from the messages table and overwrite drift.

        A day without messages and without a row stays without a row.

        Args:
            session: Database session
            organization_id: Organization UUID
            day: Calendar day in the analytics timezone

        Returns:
            The corrected DailyAnalytics row, or None for an idle day
        """
        start, end = day_bounds(day)
        stmt = select(Message).where(
            Message.organization_id == organization_id,
            Message.sent_at >= start,
            Message.sent_at < end,
        )
        result = await session.execute(stmt)
        messages = list(result.scalars().all())
        summary = summarize_messages(messages)

        if not messages and await self.get_day(session, organization_id, day) is None:
            return None

        # Rebuild the distinct contact ledger for the day
        await session.execute(
            delete(DailyContact).where(
                DailyContact.organization_id == organization_id,
                DailyContact.day == day,
            )
        )
        for contact_id in sorted({m.contact_id for m in messages}):
            session.add(
                DailyContact(organization_id=organization_id, day=day, contact_id=contact_id)
            )
        await session.flush()

        stmt = insert_for(session, DailyAnalytics).values(
            organization_id=organization_id,
            day=day,
            **summary,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["organization_id", "day"],
            set_={**summary, "updated_at": utcnow()},
        )
        await session.execute(stmt)

        row = await self.get_day(session, organization_id, day)

        logger.info(
            "daily_analytics_reconciled",
            organization_id=organization_id,
            day=str(day),
            **summary,
        )
        return row

    async def get_day(
        self,
        session: AsyncSession,
        organization_id: str,
        day: date,
    ) -> DailyAnalytics | None:
        stmt = (
            select(DailyAnalytics)
            .where(
                DailyAnalytics.organization_id == organization_id,
                DailyAnalytics.day == day,
            )
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_daily_analytics(
        self,
        session: AsyncSession,
        organization_id: str,
        start: date,
        end: date,
    ) -> list[DailyAnalytics]:
        """Rows for ``start <= day <= end``, oldest first."""
        stmt = (
            select(DailyAnalytics)
            .where(
                DailyAnalytics.organization_id == organization_id,
                DailyAnalytics.day >= start,
                DailyAnalytics.day <= end,
            )
            .order_by(DailyAnalytics.day)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
