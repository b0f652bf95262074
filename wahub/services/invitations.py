"""Team invitations: create, accept, revoke."""

import secrets
from datetime import timedelta

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.config import settings
from wahub.exceptions import InvitationError, PermissionDenied
from wahub.models.base import utcnow
from wahub.models.organization import (
    MANAGER_ROLES,
    Invitation,
    InvitationStatus,
    Membership,
    MemberRole,
)
from wahub.services.analytics import as_utc
from wahub.services.directory import MembershipContext, UserIdentity, require_role

logger = structlog.get_logger()


class InvitationService:
    """Handles invitation tokens and membership creation."""

    @staticmethod
    def generate_token() -> str:
        """Single-use invitation token (256 bits)."""
        return secrets.token_urlsafe(32)

    async def create_invitation(
        self,
        session: AsyncSession,
        context: MembershipContext,
        email: str,
        role: MemberRole = MemberRole.MEMBER,
    ) -> Invitation:
        """
        Invite an email address into the caller's organization.

        Re-inviting an address with a pending invitation refreshes that
        invitation's token and expiry instead of creating a second one.

        Args:
            session: Database session
            context: Caller's membership (must be owner or admin)
            email: Invitee email
            role: Role granted on acceptance

        Returns:
            The pending Invitation
        """
        require_role(context, *MANAGER_ROLES)
        if role == MemberRole.OWNER and context.role != MemberRole.OWNER:
            raise PermissionDenied("Only owners can invite owners")

        email = email.strip().lower()
        expires_at = utcnow() + timedelta(days=settings.invitation_ttl_days)

        stmt = select(Invitation).where(
            Invitation.organization_id == context.organization_id,
            Invitation.email == email,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        result = await session.execute(stmt)
        invitation = result.scalars().first()

        if invitation:
            invitation.token = self.generate_token()
            invitation.role = role.value
            invitation.expires_at = expires_at
            invitation.invited_by = context.membership.user_id
        else:
            invitation = Invitation(
                organization_id=context.organization_id,
                email=email,
                role=role.value,
                token=self.generate_token(),
                invited_by=context.membership.user_id,
                expires_at=expires_at,
            )
            session.add(invitation)

        await session.flush()

        logger.info(
            "invitation_created",
            organization_id=context.organization_id,
            invitation_id=invitation.id,
            role=role.value,
        )
        return invitation

    async def accept_invitation(
        self,
        session: AsyncSession,
        identity: UserIdentity,
        token: str,
    ) -> Membership:
        """
        Consume an invitation and activate the membership it grants.

        Raises:
            InvitationError: Unknown, already used, expired, or addressed to
                another email
        """
        stmt = select(Invitation).where(Invitation.token == token).with_for_update()
        result = await session.execute(stmt)
        invitation = result.scalars().first()

        if invitation is None:
            raise InvitationError("Invitation not found")
        if invitation.status != InvitationStatus.PENDING.value:
            raise InvitationError("Invitation has already been used")
        if as_utc(invitation.expires_at) <= utcnow():
            raise InvitationError("Invitation has expired", expired=True)
        if identity.email and identity.email.lower() != invitation.email:
            raise InvitationError("Invitation was sent to a different email address")

        stmt = select(Membership).where(
            Membership.organization_id == invitation.organization_id,
            Membership.user_id == identity.id,
        )
        result = await session.execute(stmt)
        membership = result.scalars().first()

        now = utcnow()
        if membership:
            membership.is_active = True
            membership.role = invitation.role
            membership.joined_at = now
        else:
            membership = Membership(
                organization_id=invitation.organization_id,
                user_id=identity.id,
                role=invitation.role,
                invited_by=invitation.invited_by,
                joined_at=now,
            )
            session.add(membership)

        invitation.status = InvitationStatus.ACCEPTED.value
        invitation.accepted_at = now
        await session.flush()

        logger.info(
            "invitation_accepted",
            organization_id=invitation.organization_id,
            invitation_id=invitation.id,
            user_id=identity.id,
        )
        return membership

    async def revoke_invitation(
        self,
        session: AsyncSession,
        context: MembershipContext,
        invitation_id: str,
    ) -> bool:
        """
        Delete a pending invitation of the caller's organization.

        Returns:
            True if revoked, False if not found
        """
        require_role(context, *MANAGER_ROLES)

        stmt = delete(Invitation).where(
            Invitation.id == invitation_id,
            Invitation.organization_id == context.organization_id,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        result = await session.execute(stmt)
        revoked = result.rowcount > 0

        if revoked:
            logger.info(
                "invitation_revoked",
                organization_id=context.organization_id,
                invitation_id=invitation_id,
            )
        return revoked
