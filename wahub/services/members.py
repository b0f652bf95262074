"""Team members: role changes and removal."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.exceptions import InvalidMemberChange, MemberNotFound, PermissionDenied
from wahub.models.organization import MANAGER_ROLES, Membership, MemberRole
from wahub.services.directory import MembershipContext, require_role

logger = structlog.get_logger()


def can_manage_role(actor_role: str, target_role: str) -> bool:
    """Owners manage everyone; admins manage everyone but owners."""
    if actor_role == MemberRole.OWNER:
        return True
    return actor_role == MemberRole.ADMIN and target_role != MemberRole.OWNER


class MemberService:
    """Changes to existing memberships of the caller's organization."""

    async def _get_active_member(
        self,
        session: AsyncSession,
        context: MembershipContext,
        member_id: str,
    ) -> Membership:
        stmt = (
            select(Membership)
            .where(
                Membership.id == member_id,
                Membership.organization_id == context.organization_id,
                Membership.is_active.is_(True),
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        member = result.scalars().first()
        if member is None:
            raise MemberNotFound(member_id)
        return member

    async def update_role(
        self,
        session: AsyncSession,
        context: MembershipContext,
        member_id: str,
        role: MemberRole,
    ) -> Membership:
        """
        Change another member's role.

        Raises:
            PermissionDenied: Caller is not a manager, or cannot manage the
                member's current or new role
            MemberNotFound: No active member with this id
            InvalidMemberChange: Caller targets their own membership
        """
        require_role(context, *MANAGER_ROLES)
        member = await self._get_active_member(session, context, member_id)

        if member.id == context.membership.id:
            raise InvalidMemberChange("Cannot change your own role")
        if not (
            can_manage_role(context.role, member.role)
            and can_manage_role(context.role, role.value)
        ):
            logger.warning(
                "member_role_change_denied",
                organization_id=context.organization_id,
                member_id=member_id,
                current_role=member.role,
                new_role=role.value,
                actor_role=context.role,
            )
            raise PermissionDenied("Cannot manage this role change")

        old_role = member.role
        member.role = role.value
        await session.flush()

        logger.info(
            "member_role_changed",
            organization_id=context.organization_id,
            member_id=member_id,
            old_role=old_role,
            new_role=role.value,
        )
        return member

    async def remove_member(
        self,
        session: AsyncSession,
        context: MembershipContext,
        member_id: str,
    ) -> Membership:
        """
        Deactivate a membership. The row is kept, so a later invitation
        reactivates it.
        """
        require_role(context, *MANAGER_ROLES)
        member = await self._get_active_member(session, context, member_id)

        if member.id == context.membership.id:
            raise InvalidMemberChange("Cannot remove yourself")
        if not can_manage_role(context.role, member.role):
            raise PermissionDenied("Cannot remove this member")

        member.is_active = False
        await session.flush()

        logger.info(
            "member_removed",
            organization_id=context.organization_id,
            member_id=member_id,
            role=member.role,
        )
        return member
