"""Organization directory: which tenant a request or gateway session belongs to."""

from dataclasses import dataclass

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.exceptions import NoMembership, OrganizationNotFound, PermissionDenied, Unauthenticated
from wahub.models.base import utcnow
from wahub.models.organization import (
    DEFAULT_SESSION_NAME,
    Invitation,
    InvitationStatus,
    Membership,
    MemberRole,
    Organization,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class UserIdentity:
    """A user verified by the identity provider."""

    id: str
    email: str | None = None


@dataclass(frozen=True)
class MembershipContext:
    """The organization and membership a request acts on."""

    organization: Organization
    membership: Membership

    @property
    def organization_id(self) -> str:
        return self.organization.id

    @property
    def role(self) -> str:
        return self.membership.role


async def resolve_membership(
    session: AsyncSession,
    identity: UserIdentity | None,
    organization_hint: str | None = None,
) -> MembershipContext:
    """
    Pick the organization membership a request should act on.

    The hint (for example a client-remembered organization id) only selects
    among memberships the user actually holds; an unheld hint falls back to
    the default choice, the earliest-created active membership.

    Args:
        session: Database session
        identity: Verified user identity
        organization_hint: Preferred organization id

    Returns:
        MembershipContext for the selected organization

    Raises:
        Unauthenticated: No verified identity
        NoMembership: The user has no active membership
    """
    if identity is None:
        raise Unauthenticated()

    stmt = (
        select(Membership)
        .join(Organization, Organization.id == Membership.organization_id)
        .where(
            Membership.user_id == identity.id,
            Membership.is_active.is_(True),
        )
        .order_by(Membership.created_at, Membership.organization_id)
    )
    result = await session.execute(stmt)
    memberships = list(result.scalars().unique().all())

    if not memberships:
        pending = await has_pending_invitation(session, identity.email)
        logger.info(
            "membership_not_found",
            user_id=identity.id,
            has_pending_invitation=pending,
        )
        raise NoMembership(has_pending_invitation=pending)

    selected = memberships[0]
    if organization_hint:
        for membership in memberships:
            if membership.organization_id == organization_hint:
                selected = membership
                break
        else:
            logger.info(
                "organization_hint_ignored",
                user_id=identity.id,
                organization_hint=organization_hint,
            )

    return MembershipContext(organization=selected.organization, membership=selected)


async def has_pending_invitation(session: AsyncSession, email: str | None) -> bool:
    """Whether an unexpired pending invitation exists for the email."""
    if not email:
        return False

    stmt = select(func.count(Invitation.id)).where(
        Invitation.email == email.lower(),
        Invitation.status == InvitationStatus.PENDING.value,
        Invitation.expires_at > utcnow(),
    )
    result = await session.execute(stmt)
    return (result.scalar() or 0) > 0


async def organization_for_session(
    session: AsyncSession,
    session_name: str,
) -> Organization | None:
    """
    Organization owning a gateway session name, if any.

    An explicit binding wins. The default session name also resolves to the
    one organization with a gateway but no session name of its own.
    """
    stmt = select(Organization).where(Organization.gateway_session_name == session_name)
    result = await session.execute(stmt)
    organization = result.scalar_one_or_none()
    if organization is not None or session_name != DEFAULT_SESSION_NAME:
        return organization

    stmt = (
        select(Organization)
        .where(
            Organization.gateway_session_name.is_(None),
            Organization.gateway_base_url.is_not(None),
        )
        .limit(2)
    )
    result = await session.execute(stmt)
    candidates = list(result.scalars().all())
    if len(candidates) > 1:
        logger.warning("default_session_ambiguous", session=session_name)
        return None
    return candidates[0] if candidates else None


async def get_organization(session: AsyncSession, organization_id: str) -> Organization:
    stmt = select(Organization).where(Organization.id == organization_id)
    result = await session.execute(stmt)
    organization = result.scalar_one_or_none()
    if organization is None:
        raise OrganizationNotFound(organization_id)
    return organization


def require_role(context: MembershipContext, *roles: MemberRole) -> None:
    """Raise PermissionDenied unless the membership holds one of ``roles``."""
    if context.role not in roles:
        raise PermissionDenied()


async def list_members(session: AsyncSession, organization_id: str) -> list[Membership]:
    """Active members of an organization, oldest first."""
    stmt = (
        select(Membership)
        .where(
            Membership.organization_id == organization_id,
            Membership.is_active.is_(True),
        )
        .order_by(Membership.created_at)
    )
    result = await session.execute(stmt)
    return list(result.scalars().unique().all())
