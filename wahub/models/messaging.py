"""Contact, Message and GatewaySession models."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wahub.models.base import Base, TimestampMixin, UUIDMixin, utcnow


class MessageDirection(StrEnum):
    """Which side of the conversation sent the message."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class MessageType(StrEnum):
    """Stored message content types."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"


class SessionState(StrEnum):
    """Normalized connectivity state of a gateway session."""

    DISCONNECTED = "disconnected"
    QR_PENDING = "qr_pending"
    CONNECTED = "connected"
    FAILED = "failed"


class Contact(Base, UUIDMixin, TimestampMixin):
    """A WhatsApp counterpart known to an organization."""

    __tablename__ = "contacts"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)  # 4917...@c.us
    phone_number: Mapped[str | None] = mapped_column(String(50))
    name: Mapped[str | None] = mapped_column(String(255))
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Oldest unanswered incoming message, cleared by the next reply
    awaiting_reply_since: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    messages: Mapped[list["Message"]] = relationship(back_populates="contact")

    __table_args__ = (
        UniqueConstraint("organization_id", "external_id", name="uq_contact_org_external"),
    )

    def __repr__(self) -> str:
        return f"<Contact {self.external_id}>"


class Message(Base, UUIDMixin):
    """One inbound or outbound WhatsApp message."""

    __tablename__ = "messages"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    contact_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)  # wamid.xxx

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MessageType.TEXT.value,
    )
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="received")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Event time as reported by the gateway, and ingestion time
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    contact: Mapped[Contact] = relationship(back_populates="messages")

    __table_args__ = (
        UniqueConstraint("organization_id", "external_id", name="uq_message_org_external"),
        Index("ix_messages_org_sent_at", "organization_id", "sent_at"),
    )

    def __repr__(self) -> str:
        return f"<Message {self.direction}: {self.content[:30]}...>"


class GatewaySession(Base, UUIDMixin, TimestampMixin):
    """Last known connection state of an organization's gateway session."""

    __tablename__ = "gateway_sessions"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)  # raw WAHA status
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionState.DISCONNECTED.value,
    )
    status_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<GatewaySession {self.session_name} ({self.status})>"
