"""Database models."""

from wahub.models.analytics import DailyAnalytics, DailyContact, WebhookDeadLetter
from wahub.models.base import Base
from wahub.models.messaging import Contact, GatewaySession, Message
from wahub.models.organization import Invitation, Membership, Organization

__all__ = [
    "Base",
    "Organization",
    "Membership",
    "Invitation",
    "Contact",
    "Message",
    "GatewaySession",
    "DailyAnalytics",
    "DailyContact",
    "WebhookDeadLetter",
]
