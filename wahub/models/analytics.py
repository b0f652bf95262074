"""Daily analytics counters and the webhook dead-letter log."""

from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from wahub.models.base import Base, TimestampMixin, UUIDMixin, utcnow


class DailyAnalytics(Base, UUIDMixin, TimestampMixin):
    """Running message counters per organization per calendar day.

    A cache of quantities derivable from the messages table; see
    ``DailyAnalyticsAggregator.reconcile_day``.
    """

    __tablename__ = "daily_analytics"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)

    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_contacts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Response metrics
    response_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    response_time_total_seconds: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "day", name="uq_daily_analytics_org_day"),
    )

    @property
    def avg_response_seconds(self) -> float | None:
        if not self.response_count:
            return None
        return self.response_time_total_seconds / self.response_count

    def __repr__(self) -> str:
        return (
            f"<DailyAnalytics org={self.organization_id[:8]} "
            f"day={self.day} total={self.total_messages}>"
        )


class DailyContact(Base):
    """Ledger of contacts active per organization per day."""

    __tablename__ = "daily_contacts"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    contact_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        primary_key=True,
    )


class WebhookDeadLetter(Base, UUIDMixin):
    """Webhook event whose persistence failed, kept for manual replay."""

    __tablename__ = "webhook_dead_letters"

    organization_id: Mapped[str | None] = mapped_column(String(36), index=True)
    session_name: Mapped[str] = mapped_column(String(100), nullable=False)
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    external_message_id: Mapped[str | None] = mapped_column(String(255))
    payload: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    replayed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<WebhookDeadLetter {self.event} session={self.session_name}>"
