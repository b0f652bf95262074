"""API request/response schemas."""

from datetime import date, datetime
from typing import Any, Optional, List

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from wahub.models.organization import MemberRole


# === WhatsApp Schemas ===

class CreateSessionRequest(BaseModel):
    """Request to create a gateway session for the organization."""
    model_config = ConfigDict(populate_by_name=True)

    session_name: Optional[str] = Field(
        None,
        alias="sessionName",
        min_length=1,
        max_length=100,
        pattern=r"^[A-Za-z0-9_.-]+$",
    )
    webhook_url: Optional[str] = Field(None, alias="webhookUrl", max_length=500)


class SendMessageRequest(BaseModel):
    """Request to send a text message to a chat."""
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(..., alias="chatId", min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=4096)


class LastMessageResponse(BaseModel):
    body: Optional[str] = None
    timestamp: Optional[int] = None
    fromMe: bool = False


class ChatSummaryResponse(BaseModel):
    """One chat of the overview."""
    id: str
    name: Optional[str] = None
    picture: Optional[str] = None
    lastMessage: Optional[LastMessageResponse] = None
    unreadCount: int = 0


class ChatsOverviewResponse(BaseModel):
    success: bool = True
    chats: List[ChatSummaryResponse]


class SessionStatusResponse(BaseModel):
    success: bool = True
    name: str
    status: str
    session: dict[str, Any] = {}


class QRCodeResponse(BaseModel):
    success: bool = True
    session: str
    qr: str
    mimetype: str


class SendMessageResponse(BaseModel):
    success: bool = True
    messageId: str
    status: str
    stored: bool


# === Analytics Schemas ===

class DailyAnalyticsResponse(BaseModel):
    """Counters of one day."""
    model_config = ConfigDict(from_attributes=True)

    day: date
    total_messages: int
    messages_sent: int
    messages_received: int
    unique_contacts: int
    response_count: int
    avg_response_seconds: Optional[float] = None


class AnalyticsRangeResponse(BaseModel):
    start: date
    end: date
    days: List[DailyAnalyticsResponse]


# === Team Schemas ===

class CreateInvitationRequest(BaseModel):
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: str
    status: str
    expires_at: datetime
    invite_url: Optional[str] = None


class UpdateMemberRequest(BaseModel):
    role: MemberRole


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    role: str
    joined_at: Optional[datetime] = None
