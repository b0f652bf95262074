"""Team membership and invitation endpoints."""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.api.middleware.auth import get_identity, get_membership_context
from wahub.api.schemas import (
    CreateInvitationRequest,
    InvitationResponse,
    MemberResponse,
    UpdateMemberRequest,
)
from wahub.config import settings
from wahub.database import get_session
from wahub.exceptions import InvitationError
from wahub.services.directory import MembershipContext, UserIdentity, list_members
from wahub.services.invitations import InvitationService
from wahub.services.members import MemberService

logger = structlog.get_logger()
router = APIRouter()


def _invite_url(token: str) -> str | None:
    if not settings.app_public_url:
        return None
    return f"{settings.app_public_url.rstrip('/')}/invitations/{token}"


@router.get("/team/members", response_model=list[MemberResponse])
async def get_members(
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    members = await list_members(session, context.organization_id)
    return [MemberResponse.model_validate(member) for member in members]


@router.put("/team/members/{member_id}", response_model=MemberResponse)
async def update_member_role(
    member_id: str,
    request: UpdateMemberRequest,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role (owner or admin)."""
    member = await MemberService().update_role(session, context, member_id, request.role)
    return MemberResponse.model_validate(member)


@router.delete("/team/members/{member_id}")
async def remove_member(
    member_id: str,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member. The membership is deactivated, not deleted."""
    await MemberService().remove_member(session, context, member_id)
    return {"success": True}


@router.post("/team/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    request: CreateInvitationRequest,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Invite an email address into the organization (owner or admin)."""
    invitation = await InvitationService().create_invitation(
        session, context, request.email, request.role
    )
    response = InvitationResponse.model_validate(invitation)
    response.invite_url = _invite_url(invitation.token)
    return response


@router.delete("/team/invitations/{invitation_id}")
async def revoke_invitation(
    invitation_id: str,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    revoked = await InvitationService().revoke_invitation(session, context, invitation_id)
    if not revoked:
        raise InvitationError("Invitation not found")
    return {"success": True}


@router.post("/invitations/{token}/accept", response_model=MemberResponse)
async def accept_invitation(
    token: str,
    identity: UserIdentity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
):
    """
    Accept an invitation.

    Requires only a verified identity; the caller has no membership yet.
    """
    membership = await InvitationService().accept_invitation(session, identity, token)
    return MemberResponse.model_validate(membership)
