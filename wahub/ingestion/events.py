"""Typed webhook events delivered by the WAHA gateway."""

from datetime import UTC, datetime
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from wahub.exceptions import MalformedEvent
from wahub.models.messaging import MessageDirection, MessageType, SessionState

MESSAGE_EVENTS = frozenset({"message", "message.any"})
SESSION_STATUS_EVENT = "session.status"

# Gateway type names that differ from stored ones
_TYPE_ALIASES = {
    "chat": MessageType.TEXT,
    "ptt": MessageType.AUDIO,
    "voice": MessageType.AUDIO,
    "file": MessageType.DOCUMENT,
}

_SESSION_STATES = {
    "WORKING": SessionState.CONNECTED,
    "SCAN_QR_CODE": SessionState.QR_PENDING,
    "FAILED": SessionState.FAILED,
}


def normalize_message_type(value: str | None) -> MessageType:
    if not value:
        return MessageType.TEXT
    value = value.lower()
    if value in _TYPE_ALIASES:
        return _TYPE_ALIASES[value]
    try:
        return MessageType(value)
    except ValueError:
        return MessageType.TEXT


def session_state(status: str) -> SessionState:
    return _SESSION_STATES.get(status.upper(), SessionState.DISCONNECTED)


def timestamp_to_datetime(value: float) -> datetime:
    # Some gateway engines report milliseconds
    if value > 10**12:
        value = value / 1000
    return datetime.fromtimestamp(value, tz=UTC)


class MessagePayload(BaseModel):
    """Payload of ``message`` / ``message.any`` events."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    from_: str = Field(alias="from", min_length=1)
    to: str | None = None
    body: str | None = None
    timestamp: datetime
    type: str | None = None
    from_me: bool = Field(default=False, alias="fromMe")
    notify_name: str | None = Field(default=None, alias="notifyName")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("timestamp must be a number")
        if isinstance(value, (int, float)):
            return timestamp_to_datetime(value)
        return value

    @property
    def direction(self) -> MessageDirection:
        return MessageDirection.OUTGOING if self.from_me else MessageDirection.INCOMING

    @property
    def contact_external_id(self) -> str:
        """The counterpart of the conversation, whichever side sent it."""
        if self.from_me and self.to:
            return self.to
        return self.from_

    @property
    def message_type(self) -> MessageType:
        return normalize_message_type(self.type)


class SessionStatusPayload(BaseModel):
    """Payload of ``session.status`` events."""

    model_config = ConfigDict(extra="ignore")

    status: str = Field(min_length=1)

    @property
    def state(self) -> SessionState:
        return session_state(self.status)


class MessageEvent(BaseModel):
    kind: Literal["message"] = "message"
    event: str
    session: str
    payload: MessagePayload


class SessionStatusEvent(BaseModel):
    kind: Literal["session.status"] = "session.status"
    event: str
    session: str
    payload: SessionStatusPayload


class UnknownEvent(BaseModel):
    """Recognized envelope with an event kind we do not act on."""

    kind: Literal["unknown"] = "unknown"
    event: str
    session: str
    payload: dict[str, Any]


WebhookEvent = Union[MessageEvent, SessionStatusEvent, UnknownEvent]


def parse_event(body: Any) -> WebhookEvent:
    """
    Validate a raw webhook body into a typed event.

    Raises:
        MalformedEvent: Missing event/session/payload or an invalid payload
            for a known event kind
    """
    if not isinstance(body, dict):
        raise MalformedEvent("Webhook body must be a JSON object")

    event = body.get("event")
    session = body.get("session")
    payload = body.get("payload")

    if not isinstance(event, str) or not event:
        raise MalformedEvent("Missing event")
    if not isinstance(session, str) or not session:
        raise MalformedEvent("Missing session")
    if not isinstance(payload, dict):
        raise MalformedEvent("Missing payload")

    try:
        if event in MESSAGE_EVENTS:
            return MessageEvent(
                event=event,
                session=session,
                payload=MessagePayload.model_validate(payload),
            )
        if event == SESSION_STATUS_EVENT:
            return SessionStatusEvent(
                event=event,
                session=session,
                payload=SessionStatusPayload.model_validate(payload),
            )
    except ValidationError as e:
        raise MalformedEvent(f"Invalid {event} payload: {e.errors()[0]['msg']}") from e

    return UnknownEvent(event=event, session=session, payload=payload)
