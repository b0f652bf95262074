"""Tests for the invitation service."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from tests.helpers import OWNER_ID
from wahub.exceptions import InvitationError, PermissionDenied
from wahub.models import Invitation, Membership
from wahub.models.base import utcnow
from wahub.models.organization import InvitationStatus, MemberRole
from wahub.services.directory import UserIdentity, resolve_membership
from wahub.services.invitations import InvitationService

INVITEE_ID = "44444444-4444-4444-4444-444444444444"


async def owner_context(session):
    return await resolve_membership(session, UserIdentity(id=OWNER_ID))


@pytest.mark.asyncio
class TestCreateInvitation:
    """Tests for inviting users."""

    async def test_create(self, session_factory, organization, owner):
        async with session_factory() as session:
            invitation = await InvitationService().create_invitation(
                session, await owner_context(session), " New@Example.com ", MemberRole.ADMIN
            )
            await session.commit()

        assert invitation.email == "new@example.com"
        assert invitation.role == "admin"
        assert invitation.status == InvitationStatus.PENDING.value
        assert invitation.invited_by == OWNER_ID
        assert len(invitation.token) >= 32

    async def test_reinvite_refreshes_pending_invitation(self, session_factory, organization, owner):
        service = InvitationService()
        async with session_factory() as session:
            first = await service.create_invitation(
                session, await owner_context(session), "new@example.com"
            )
            first_token = first.token
            await session.commit()

        async with session_factory() as session:
            second = await service.create_invitation(
                session, await owner_context(session), "new@example.com"
            )
            await session.commit()

        assert second.id == first.id
        assert second.token != first_token

    async def test_member_cannot_invite(self, session_factory, organization):
        async with session_factory() as session:
            session.add(
                Membership(
                    organization_id=organization.id,
                    user_id=INVITEE_ID,
                    role=MemberRole.MEMBER.value,
                )
            )
            await session.commit()

        async with session_factory() as session:
            context = await resolve_membership(session, UserIdentity(id=INVITEE_ID))
            with pytest.raises(PermissionDenied):
                await InvitationService().create_invitation(session, context, "x@example.com")

    async def test_admin_cannot_invite_owner(self, session_factory, organization):
        async with session_factory() as session:
            session.add(
                Membership(
                    organization_id=organization.id,
                    user_id=INVITEE_ID,
                    role=MemberRole.ADMIN.value,
                )
            )
            await session.commit()

        async with session_factory() as session:
            context = await resolve_membership(session, UserIdentity(id=INVITEE_ID))
            with pytest.raises(PermissionDenied):
                await InvitationService().create_invitation(
                    session, context, "x@example.com", MemberRole.OWNER
                )


@pytest.mark.asyncio
class TestAcceptInvitation:
    """Tests for consuming invitations."""

    async def _invite(self, session_factory, email="new@example.com", expires_in_days=7) -> str:
        async with session_factory() as session:
            invitation = await InvitationService().create_invitation(
                session, await owner_context(session), email
            )
            invitation.expires_at = utcnow() + timedelta(days=expires_in_days)
            await session.commit()
            return invitation.token

    async def test_accept_creates_membership(self, session_factory, organization, owner):
        token = await self._invite(session_factory)
        identity = UserIdentity(id=INVITEE_ID, email="new@example.com")

        async with session_factory() as session:
            membership = await InvitationService().accept_invitation(session, identity, token)
            await session.commit()

        assert membership.organization_id == organization.id
        assert membership.role == MemberRole.MEMBER.value
        assert membership.invited_by == OWNER_ID

        async with session_factory() as session:
            context = await resolve_membership(session, identity)
            invitation = (
                await session.execute(select(Invitation).where(Invitation.token == token))
            ).scalar_one()

        assert context.organization_id == organization.id
        assert invitation.status == InvitationStatus.ACCEPTED.value
        assert invitation.accepted_at is not None

    async def test_token_is_single_use(self, session_factory, organization, owner):
        token = await self._invite(session_factory)
        identity = UserIdentity(id=INVITEE_ID, email="new@example.com")

        async with session_factory() as session:
            await InvitationService().accept_invitation(session, identity, token)
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(InvitationError) as exc_info:
                await InvitationService().accept_invitation(session, identity, token)

        assert exc_info.value.expired is False

    async def test_expired(self, session_factory, organization, owner):
        token = await self._invite(session_factory, expires_in_days=-1)

        async with session_factory() as session:
            with pytest.raises(InvitationError) as exc_info:
                await InvitationService().accept_invitation(
                    session, UserIdentity(id=INVITEE_ID, email="new@example.com"), token
                )

        assert exc_info.value.expired is True

    async def test_wrong_email(self, session_factory, organization, owner):
        token = await self._invite(session_factory)

        async with session_factory() as session:
            with pytest.raises(InvitationError):
                await InvitationService().accept_invitation(
                    session, UserIdentity(id=INVITEE_ID, email="other@example.com"), token
                )

    async def test_unknown_token(self, session_factory, organization):
        async with session_factory() as session:
            with pytest.raises(InvitationError):
                await InvitationService().accept_invitation(
                    session, UserIdentity(id=INVITEE_ID), "nope"
                )


@pytest.mark.asyncio
class TestRevokeInvitation:
    """Tests for revoking invitations."""

    async def test_revoke_pending(self, session_factory, organization, owner):
        service = InvitationService()
        async with session_factory() as session:
            invitation = await service.create_invitation(
                session, await owner_context(session), "new@example.com"
            )
            await session.commit()

        async with session_factory() as session:
            assert await service.revoke_invitation(
                session, await owner_context(session), invitation.id
            ) is True
            await session.commit()

        async with session_factory() as session:
            assert await service.revoke_invitation(
                session, await owner_context(session), invitation.id
            ) is False
