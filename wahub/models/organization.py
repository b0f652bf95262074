"""Organization, membership and invitation models for multi-tenancy."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from wahub.models.base import Base, TimestampMixin, UUIDMixin

DEFAULT_SESSION_NAME = "default"


class MemberRole(StrEnum):
    """Membership roles."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


MANAGER_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


class InvitationStatus(StrEnum):
    """Invitation lifecycle states."""

    PENDING = "pending"
    ACCEPTED = "accepted"


class Organization(Base, UUIDMixin, TimestampMixin):
    """Top-level tenant - a business managing a WhatsApp presence."""

    __tablename__ = "organizations"

    # Basic info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    # WAHA gateway
    gateway_base_url: Mapped[str | None] = mapped_column(String(500))
    gateway_api_key: Mapped[str | None] = mapped_column(Text)
    gateway_session_name: Mapped[str | None] = mapped_column(
        String(100),
        unique=True,
        index=True,
    )  # join key for webhook events

    subscription_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="trialing",
    )  # trialing, active, past_due, canceled

    settings: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    members = relationship(
        "Membership",
        back_populates="organization",
        cascade="all, delete-orphan",
    )

    @validates("slug")
    def _validate_slug(self, key: str, value: str) -> str:
        if self.slug is not None and value != self.slug:
            raise ValueError("Organization slug cannot be changed once assigned")
        return value

    @property
    def session_name(self) -> str:
        """Gateway session name, falling back to the gateway default."""
        return self.gateway_session_name or DEFAULT_SESSION_NAME

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.slug})>"


class Membership(Base, UUIDMixin, TimestampMixin):
    """Link between a user and an organization."""

    __tablename__ = "organization_members"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MemberRole.MEMBER.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    invited_by: Mapped[str | None] = mapped_column(String(36))
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    organization = relationship("Organization", back_populates="members", lazy="joined")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_member_org_user"),
    )

    @property
    def can_manage(self) -> bool:
        return self.role in MANAGER_ROLES

    def __repr__(self) -> str:
        return f"<Membership user={self.user_id[:8]} org={self.organization_id[:8]} ({self.role})>"


class Invitation(Base, UUIDMixin, TimestampMixin):
    """Pending grant of a role to an email address."""

    __tablename__ = "organization_invitations"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvitationStatus.PENDING.value,
    )
    invited_by: Mapped[str | None] = mapped_column(String(36))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    organization = relationship("Organization")

    def __repr__(self) -> str:
        return f"<Invitation {self.email} ({self.status})>"
