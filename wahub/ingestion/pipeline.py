"""Webhook event ingestion: validate, classify, apply, acknowledge."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wahub.config import settings
from wahub.ingestion.events import (
    MessageEvent,
    SessionStatusEvent,
    WebhookEvent,
    parse_event,
    session_state,
)
from wahub.models.analytics import WebhookDeadLetter
from wahub.models.base import utcnow
from wahub.models.messaging import (
    Contact,
    GatewaySession,
    Message,
    MessageDirection,
    MessageType,
)
from wahub.repositories import insert_for
from wahub.services.analytics import (
    DailyAnalyticsAggregator,
    analytics_day,
    as_utc,
    day_bounds,
    response_seconds,
)
from wahub.services.directory import organization_for_session

logger = structlog.get_logger()


class FailureMode(StrEnum):
    """What the webhook answers when persistence fails."""

    ACKNOWLEDGE = "acknowledge"  # log, dead-letter, answer 200
    REJECT = "reject"  # answer 500 so the gateway redelivers


class ApplyOutcome(StrEnum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    ORPHANED = "orphaned"
    STATUS_UPDATED = "status_updated"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class IngestResult:
    outcome: ApplyOutcome
    acknowledged: bool = True


def phone_from_chat_id(chat_id: str) -> str | None:
    """Phone number part of a personal chat id (``4917...@c.us``)."""
    user, _, server = chat_id.partition("@")
    if server in ("c.us", "s.whatsapp.net") and user.isdigit():
        return user
    return None


class MessageStore:
    """Stores one message and its side effects as a single unit of work."""

    def __init__(self, aggregator: DailyAnalyticsAggregator | None = None):
        self.aggregator = aggregator or DailyAnalyticsAggregator()

    async def upsert_contact(
        self,
        session: AsyncSession,
        organization_id: str,
        external_id: str,
        name: str | None = None,
    ) -> str:
        """Create the contact on first sight, otherwise only refresh last_seen_at."""
        now = utcnow()
        stmt = insert_for(session, Contact).values(
            organization_id=organization_id,
            external_id=external_id,
            phone_number=phone_from_chat_id(external_id),
            name=name or external_id,
            last_seen_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["organization_id", "external_id"],
            set_={"last_seen_at": now, "updated_at": now},
        ).returning(Contact.id)
        result = await session.execute(stmt)
        return result.scalar_one()

    async def store(
        self,
        session: AsyncSession,
        organization_id: str,
        external_id: str,
        contact_external_id: str,
        direction: MessageDirection,
        sent_at: datetime,
        content: str | None = None,
        message_type: MessageType = MessageType.TEXT,
        status: str | None = None,
        contact_name: str | None = None,
    ) -> str | None:
        """
        Insert a message keyed by (organization, external id).

        Runs inside the caller's transaction. Analytics advance only when the
        insert created a row, so re-deliveries change nothing.

        Returns:
            The new message id, or None when the message was already stored
        """
        sent_at = as_utc(sent_at)
        contact_id = await self.upsert_contact(
            session,
            organization_id,
            contact_external_id,
            name=contact_name,
        )

        stmt = (
            insert_for(session, Message)
            .values(
                organization_id=organization_id,
                contact_id=contact_id,
                external_id=external_id,
                content=content or "",
                message_type=message_type.value,
                direction=direction.value,
                status=status
                or ("sent" if direction == MessageDirection.OUTGOING else "received"),
                sent_at=sent_at,
            )
            .on_conflict_do_nothing(index_elements=["organization_id", "external_id"])
            .returning(Message.id)
        )
        result = await session.execute(stmt)
        message_id = result.scalar_one_or_none()

        if message_id is None:
            logger.info(
                "webhook_message_duplicate",
                organization_id=organization_id,
                external_message_id=external_id,
            )
            return None

        response_time = await self._track_reply(session, contact_id, direction, sent_at)

        await self.aggregator.record_event(
            session,
            organization_id=organization_id,
            day=analytics_day(sent_at),
            direction=direction,
            contact_id=contact_id,
            response_time=response_time,
        )
        return message_id

    async def _track_reply(
        self,
        session: AsyncSession,
        contact_id: str,
        direction: MessageDirection,
        sent_at: datetime,
    ) -> int | None:
        """Maintain the contact's unanswered marker; return a same-day response time."""
        if direction == MessageDirection.INCOMING:
            # Markers from an earlier analytics day are replaced
            day_start, _ = day_bounds(analytics_day(sent_at))
            await session.execute(
                update(Contact)
                .where(
                    Contact.id == contact_id,
                    or_(
                        Contact.awaiting_reply_since.is_(None),
                        Contact.awaiting_reply_since > sent_at,
                        Contact.awaiting_reply_since < day_start,
                    ),
                )
                .values(awaiting_reply_since=sent_at)
            )
            return None

        result = await session.execute(
            select(Contact.awaiting_reply_since)
            .where(Contact.id == contact_id)
            .with_for_update()
        )
        waiting_since = result.scalar_one_or_none()
        if waiting_since is None or as_utc(waiting_since) > sent_at:
            return None

        await session.execute(
            update(Contact).where(Contact.id == contact_id).values(awaiting_reply_since=None)
        )
        if analytics_day(waiting_since) != analytics_day(sent_at):
            return None
        return response_seconds(waiting_since, sent_at)


class IngestionPipeline:
    """Applies one gateway webhook event to tenant-scoped storage."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: MessageStore | None = None,
        failure_mode: FailureMode | str | None = None,
        dead_letters: bool | None = None,
    ):
        self.session_factory = session_factory
        self.store = store or MessageStore()
        self.failure_mode = FailureMode(failure_mode or settings.webhook_failure_mode)
        self.dead_letters = (
            settings.webhook_dead_letter_enabled if dead_letters is None else dead_letters
        )

    async def ingest(self, body: Any) -> IngestResult:
        """
        Process one raw webhook body end to end.

        Raises:
            MalformedEvent: The body is rejected; nothing was persisted
        """
        event = parse_event(body)

        try:
            async with self.session_factory() as session:
                outcome = await self.apply(session, event)
                await session.commit()
        except Exception as e:
            logger.exception(
                "webhook_apply_failed",
                event_kind=event.event,
                session=event.session,
                external_message_id=_external_id(event),
                failure_mode=str(self.failure_mode),
            )
            if self.dead_letters:
                await self._dead_letter(event, e)
            return IngestResult(
                outcome=ApplyOutcome.FAILED,
                acknowledged=self.failure_mode == FailureMode.ACKNOWLEDGE,
            )

        return IngestResult(outcome=outcome)

    async def apply(self, session: AsyncSession, event: WebhookEvent) -> ApplyOutcome:
        """Apply a validated event inside the caller's transaction."""
        if isinstance(event, MessageEvent):
            return await self._apply_message(session, event)
        if isinstance(event, SessionStatusEvent):
            return await self._apply_session_status(session, event)

        logger.info("webhook_event_ignored", event_kind=event.event, session=event.session)
        return ApplyOutcome.IGNORED

    async def _apply_message(self, session: AsyncSession, event: MessageEvent) -> ApplyOutcome:
        organization = await organization_for_session(session, event.session)
        if organization is None:
            logger.warning(
                "webhook_session_orphaned",
                event_kind=event.event,
                session=event.session,
                external_message_id=event.payload.id,
            )
            return ApplyOutcome.ORPHANED

        payload = event.payload
        message_id = await self.store.store(
            session,
            organization_id=organization.id,
            external_id=payload.id,
            contact_external_id=payload.contact_external_id,
            direction=payload.direction,
            sent_at=payload.timestamp,
            content=payload.body,
            message_type=payload.message_type,
            contact_name=None if payload.from_me else payload.notify_name,
        )
        if message_id is None:
            return ApplyOutcome.DUPLICATE

        logger.info(
            "webhook_message_stored",
            organization_id=organization.id,
            session=event.session,
            external_message_id=payload.id,
            direction=str(payload.direction),
        )
        return ApplyOutcome.STORED

    async def _apply_session_status(
        self,
        session: AsyncSession,
        event: SessionStatusEvent,
    ) -> ApplyOutcome:
        organization = await organization_for_session(session, event.session)
        if organization is None:
            logger.warning(
                "webhook_session_orphaned", event_kind=event.event, session=event.session
            )
            return ApplyOutcome.ORPHANED

        await upsert_gateway_session(
            session,
            organization_id=organization.id,
            session_name=event.session,
            status=event.payload.status,
        )

        logger.info(
            "gateway_session_status_changed",
            organization_id=organization.id,
            session=event.session,
            status=event.payload.status,
        )
        return ApplyOutcome.STATUS_UPDATED

    async def _dead_letter(self, event: WebhookEvent, error: Exception) -> None:
        try:
            async with self.session_factory() as session:
                organization = await organization_for_session(session, event.session)
                session.add(
                    WebhookDeadLetter(
                        organization_id=organization.id if organization else None,
                        session_name=event.session,
                        event=event.event,
                        external_message_id=_external_id(event),
                        payload=_raw_payload(event),
                        error=str(error)[:1000],
                    )
                )
                await session.commit()
        except Exception:
            logger.exception(
                "webhook_dead_letter_failed",
                event_kind=event.event,
                session=event.session,
                external_message_id=_external_id(event),
            )

    async def replay_dead_letters(self, limit: int = 100) -> int:
        """
        Re-apply dead-lettered events through the pipeline.

        Idempotent ingestion makes replaying an event that did get stored a
        no-op.

        Returns:
            Number of events replayed successfully
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookDeadLetter)
                .where(WebhookDeadLetter.replayed_at.is_(None))
                .order_by(WebhookDeadLetter.created_at)
                .limit(limit)
            )
            letters = list(result.scalars().all())

        replayed = 0
        for letter in letters:
            try:
                event = parse_event(
                    {"event": letter.event, "session": letter.session_name, "payload": letter.payload}
                )
                async with self.session_factory() as session:
                    outcome = await self.apply(session, event)
                    await session.execute(
                        update(WebhookDeadLetter)
                        .where(WebhookDeadLetter.id == letter.id)
                        .values(replayed_at=utcnow())
                    )
                    await session.commit()
            except Exception:
                logger.exception("dead_letter_replay_failed", dead_letter_id=letter.id)
                continue

            replayed += 1
            logger.info("dead_letter_replayed", dead_letter_id=letter.id, outcome=str(outcome))

        return replayed


async def upsert_gateway_session(
    session: AsyncSession,
    organization_id: str,
    session_name: str,
    status: str,
) -> None:
    """Record the latest session status; last write wins."""
    now = utcnow()
    state = session_state(status).value
    stmt = insert_for(session, GatewaySession).values(
        organization_id=organization_id,
        session_name=session_name,
        status=status,
        state=state,
        status_changed_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["session_name"],
        set_={
            "organization_id": organization_id,
            "status": status,
            "state": state,
            "status_changed_at": now,
            "updated_at": now,
        },
    )
    await session.execute(stmt)


def _external_id(event: WebhookEvent) -> str | None:
    if isinstance(event, MessageEvent):
        return event.payload.id
    return None


def _raw_payload(event: WebhookEvent) -> dict[str, Any]:
    if isinstance(event, (MessageEvent, SessionStatusEvent)):
        return event.payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    return event.payload
