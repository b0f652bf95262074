"""WhatsApp gateway endpoints, scoped to the caller's organization."""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.api.middleware.auth import get_membership_context
from wahub.api.schemas import (
    ChatsOverviewResponse,
    ChatSummaryResponse,
    CreateSessionRequest,
    LastMessageResponse,
    QRCodeResponse,
    SendMessageRequest,
    SendMessageResponse,
    SessionStatusResponse,
)
from wahub.config import settings
from wahub.database import get_session
from wahub.exceptions import SessionNameTaken
from wahub.ingestion.events import timestamp_to_datetime
from wahub.ingestion.pipeline import MessageStore, upsert_gateway_session
from wahub.integrations.waha import ChatSummary, WahaClient, client_for_organization
from wahub.models import Contact, Message, Organization
from wahub.models.base import utcnow
from wahub.models.messaging import MessageDirection
from wahub.models.organization import MANAGER_ROLES
from wahub.services.directory import MembershipContext, get_organization, require_role

logger = structlog.get_logger()
router = APIRouter(prefix="/whatsapp")


async def _gateway(session: AsyncSession, context: MembershipContext) -> WahaClient:
    return await client_for_organization(session, context.organization_id)


def _gateway_message_id(data: dict[str, Any]) -> str | None:
    """Message id from a gateway send response (plain or serialized form)."""
    message_id = data.get("id")
    if isinstance(message_id, dict):
        message_id = message_id.get("_serialized") or message_id.get("id")
    if not message_id:
        key = data.get("key") or {}
        message_id = key.get("id")
    return str(message_id) if message_id else None


def _gateway_sent_at(data: dict[str, Any]) -> datetime:
    """Send time reported by the gateway, or now when it reports none."""
    timestamp = data.get("timestamp")
    # Gateway engines report seconds or milliseconds; bool is an int subclass
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        if timestamp > 0:
            return timestamp_to_datetime(timestamp)
    return utcnow()


def _chat_response(chat: ChatSummary) -> ChatSummaryResponse:
    last = chat.last_message
    return ChatSummaryResponse(
        id=chat.id,
        name=chat.name,
        picture=chat.picture,
        lastMessage=LastMessageResponse(
            body=last.body, timestamp=last.timestamp, fromMe=last.from_me
        )
        if last
        else None,
        unreadCount=chat.unread_count,
    )


@router.get("/session-status", response_model=SessionStatusResponse)
async def session_status(
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Current gateway status of the organization's session."""
    client = await _gateway(session, context)
    async with client:
        data = await client.get_session()

    return SessionStatusResponse(
        name=data.get("name") or client.session_name,
        status=data.get("status") or "UNKNOWN",
        session=data,
    )


@router.post("/create-session", response_model=SessionStatusResponse)
async def create_session(
    request: CreateSessionRequest,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """
    Create the organization's gateway session and point its webhook here.

    The session name is bound to the organization so incoming events for it
    are attributed correctly. A name owned by another organization is refused.
    """
    require_role(context, *MANAGER_ROLES)

    organization = await get_organization(session, context.organization_id)
    session_name = request.session_name or organization.session_name

    if organization.gateway_session_name != session_name:
        await _bind_session_name(session, organization, session_name)

    client = await _gateway(session, context)
    async with client:
        data = await client.create_session(
            session_name,
            webhook_url=request.webhook_url or settings.webhook_url,
        )

    status = data.get("status") or "STARTING"
    await upsert_gateway_session(session, organization.id, session_name, status)

    logger.info(
        "gateway_session_created",
        organization_id=organization.id,
        session_name=session_name,
        status=status,
    )
    return SessionStatusResponse(name=session_name, status=status, session=data)


async def _bind_session_name(
    session: AsyncSession,
    organization: Organization,
    session_name: str,
) -> None:
    stmt = select(Organization.id).where(
        Organization.gateway_session_name == session_name,
        Organization.id != organization.id,
    )
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        raise SessionNameTaken(session_name)

    organization.gateway_session_name = session_name
    try:
        await session.flush()
    except IntegrityError:
        raise SessionNameTaken(session_name)


@router.get("/qr-code", response_model=QRCodeResponse)
async def qr_code(
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Pairing QR code of the organization's session."""
    client = await _gateway(session, context)
    async with client:
        qr = await client.get_qr_code()

    return QRCodeResponse(session=client.session_name, qr=qr.data, mimetype=qr.mimetype)


@router.get("/chats/overview", response_model=ChatsOverviewResponse)
async def chats_overview(
    limit: int = Query(100, ge=1, le=500),
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    client = await _gateway(session, context)
    async with client:
        chats = await client.get_chats_overview(limit=limit)

    return ChatsOverviewResponse(chats=[_chat_response(chat) for chat in chats])


@router.get("/chats/{chat_id}/messages")
async def chat_messages(
    chat_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """A page of one chat's messages, straight from the gateway."""
    client = await _gateway(session, context)
    async with client:
        messages = await client.get_chat_messages(None, chat_id, limit=limit, offset=offset)

    return {"success": True, "chatId": chat_id, "messages": messages}


@router.get("/media/{path:path}")
async def media(
    path: str,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Proxy a media file from the gateway so the browser never sees its API key."""
    client = await _gateway(session, context)
    async with client:
        media_file = await client.get_file(path)

    return Response(
        content=media_file.content,
        media_type=media_file.content_type,
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(
    request: SendMessageRequest,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """
    Send a text message and record it as outgoing.

    The message is stored under the gateway's id, so the webhook echo of the
    same message is recognized as a duplicate.
    """
    client = await _gateway(session, context)
    async with client:
        data = await client.send_text(None, request.chat_id, request.message)

    message_id = _gateway_message_id(data)
    stored = False
    if message_id:
        stored = (
            await MessageStore().store(
                session,
                organization_id=context.organization_id,
                external_id=message_id,
                contact_external_id=request.chat_id,
                direction=MessageDirection.OUTGOING,
                sent_at=_gateway_sent_at(data),
                content=request.message,
                status="sent",
            )
            is not None
        )
    else:
        logger.warning(
            "gateway_send_without_id",
            organization_id=context.organization_id,
            chat_id=request.chat_id,
        )

    return SendMessageResponse(
        messageId=message_id or "",
        status="sent",
        stored=stored,
    )


@router.post("/chats/{chat_id}/read")
async def mark_chat_read(
    chat_id: str,
    context: MembershipContext = Depends(get_membership_context),
    session: AsyncSession = Depends(get_session),
):
    """Mark a chat as read on the gateway and flag its stored messages."""
    client = await _gateway(session, context)
    async with client:
        await client.send_seen(None, chat_id)

    contact_ids = select(Contact.id).where(
        Contact.organization_id == context.organization_id,
        Contact.external_id == chat_id,
    )
    result = await session.execute(
        update(Message)
        .where(
            Message.organization_id == context.organization_id,
            Message.contact_id.in_(contact_ids.scalar_subquery()),
            Message.direction == MessageDirection.INCOMING.value,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
    )
    return {"success": True, "chatId": chat_id, "marked": result.rowcount}
