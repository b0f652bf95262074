"""WAHA (WhatsApp HTTP API) gateway integration."""

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from wahub.config import settings
from wahub.exceptions import (
    GatewayNotConfigured,
    GatewayRequestError,
    GatewayUnavailable,
    InvalidMediaPath,
)
from wahub.services.directory import get_organization

logger = structlog.get_logger()


@dataclass
class QRCode:
    """QR code image for pairing a session."""

    data: str  # base64
    mimetype: str = "image/png"


@dataclass
class MediaFile:
    """Media bytes downloaded from the gateway file store."""

    content: bytes
    content_type: str = "image/jpeg"


@dataclass
class LastMessage:
    body: str | None
    timestamp: int | None
    from_me: bool


@dataclass
class ChatSummary:
    """One entry of the chats overview."""

    id: str
    name: str | None
    picture: str | None
    last_message: LastMessage | None
    unread_count: int

    @classmethod
    def from_gateway(cls, data: dict[str, Any]) -> "ChatSummary":
        chat_id = data.get("id")
        if isinstance(chat_id, dict):
            chat_id = chat_id.get("_serialized") or chat_id.get("user")
        last = data.get("lastMessage")
        return cls(
            id=str(chat_id),
            name=data.get("name"),
            picture=data.get("picture"),
            last_message=LastMessage(
                body=last.get("body"),
                timestamp=last.get("timestamp"),
                from_me=bool(last.get("fromMe")),
            )
            if last
            else None,
            unread_count=int(data.get("unreadCount") or 0),
        )


class WahaClient:
    """Client for one organization's WAHA gateway."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        session_name: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize WAHA client.

        Args:
            base_url: Gateway root URL (e.g., "https://waha.example.com")
            api_key: Value for the X-Api-Key header
            session_name: Session used when a call names none
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.session_name = session_name or settings.waha_default_session
        self.timeout = timeout or settings.waha_request_timeout
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["X-Api-Key"] = api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WahaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _send(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> httpx.Response:
        """Make an API request and map transport and status errors. Never retried."""
        url = f"{self.base_url}/{endpoint}"

        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("waha_timeout", url=url, error=str(e))
            raise GatewayUnavailable("WhatsApp gateway timed out") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                "waha_api_error",
                status_code=status_code,
                url=url,
                response=e.response.text[:500],
            )
            if status_code == 404:
                raise GatewayUnavailable("WhatsApp gateway resource not found") from e
            raise GatewayRequestError(status_code, e.response.text[:200]) from e
        except httpx.RequestError as e:
            logger.error("waha_request_error", url=url, error=str(e))
            raise GatewayUnavailable() from e

        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> Any:
        """Make an API request and decode its JSON body."""
        response = await self._send(method, endpoint, **kwargs)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error(
                "waha_invalid_response",
                url=str(response.url),
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
            )
            raise GatewayRequestError(
                response.status_code, "Gateway returned a non-JSON response"
            ) from e

    def _session(self, name: str | None) -> str:
        return name or self.session_name

    # === Sessions ===

    async def create_session(
        self,
        name: str | None = None,
        webhook_url: str | None = None,
    ) -> dict[str, Any]:
        """
        Create (and start) a gateway session.

        Args:
            name: Session name
            webhook_url: Where the gateway should deliver events

        Returns:
            Session descriptor including its status
        """
        config: dict[str, Any] = {"webhooks": []}
        if webhook_url:
            config["webhooks"] = [
                {"url": webhook_url, "events": list(settings.waha_webhook_events)}
            ]
        return await self._request(
            "POST",
            "api/sessions",
            json={"name": self._session(name), "config": config},
        )

    async def get_session(self, name: str | None = None) -> dict[str, Any]:
        """Fetch session descriptor with its current status."""
        return await self._request("GET", f"api/sessions/{self._session(name)}")

    async def get_qr_code(self, name: str | None = None) -> QRCode:
        """Fetch the pairing QR code as a base64 image."""
        data = await self._request(
            "GET",
            f"api/{self._session(name)}/auth/qr",
            params={"format": "image"},
            headers={"Accept": "application/json"},
        )
        return QRCode(
            data=data.get("data") or data.get("qr") or data.get("qrCode") or "",
            mimetype=data.get("mimetype") or "image/png",
        )

    # === Chats ===

    async def get_chats_overview(
        self,
        name: str | None = None,
        limit: int = 100,
    ) -> list[ChatSummary]:
        """List chats with their last message and unread count."""
        data = await self._request(
            "GET",
            f"api/{self._session(name)}/chats/overview",
            params={"limit": limit},
        )
        return [ChatSummary.from_gateway(chat) for chat in data or []]

    async def get_chat_messages(
        self,
        name: str | None,
        chat_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch a page of messages of one chat."""
        data = await self._request(
            "GET",
            f"api/{self._session(name)}/chats/{quote(chat_id, safe='@')}/messages",
            params={"limit": limit, "offset": offset},
        )
        return list(data or [])

    # === Messages ===

    async def send_text(
        self,
        name: str | None,
        chat_id: str,
        text: str,
    ) -> dict[str, Any]:
        """Send a text message; returns the gateway's message record."""
        return await self._request(
            "POST",
            "api/sendText",
            json={"session": self._session(name), "chatId": chat_id, "text": text},
        )

    async def send_seen(
        self,
        name: str | None,
        chat_id: str,
        message_id: str | None = None,
    ) -> dict[str, Any]:
        """Mark a chat (or one message) as read."""
        body: dict[str, Any] = {"session": self._session(name), "chatId": chat_id}
        if message_id:
            body["messageId"] = message_id
        return await self._request("POST", "api/sendSeen", json=body)

    # === Media ===

    async def get_file(self, path: str) -> MediaFile:
        """
        Download a media file saved by the gateway.

        Raises:
            InvalidMediaPath: Path is empty or leaves the file store
        """
        segments = path.strip("/").split("/")
        if not path.strip("/") or any(s in ("", ".", "..") for s in segments):
            raise InvalidMediaPath(path)

        response = await self._send(
            "GET", "api/files/" + "/".join(quote(s, safe="@") for s in segments)
        )
        content_type = response.headers.get("content-type") or MediaFile.content_type
        return MediaFile(content=response.content, content_type=content_type)


async def client_for_organization(
    session: AsyncSession,
    organization_id: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> WahaClient:
    """
    Build a gateway client bound to an organization's credentials.

    Credentials are read on every call so a rotation applies on the next
    request.

    Raises:
        OrganizationNotFound: Unknown organization
        GatewayNotConfigured: Organization has no gateway base URL
    """
    organization = await get_organization(session, organization_id)

    if not organization.gateway_base_url:
        logger.info("waha_not_configured", organization_id=organization_id)
        raise GatewayNotConfigured(organization_id)

    return WahaClient(
        base_url=organization.gateway_base_url,
        api_key=organization.gateway_api_key,
        session_name=organization.session_name,
        transport=transport,
    )
