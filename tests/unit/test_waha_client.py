"""Unit tests for the WAHA gateway client."""

import json

import httpx
import pytest

from wahub.exceptions import GatewayRequestError, GatewayUnavailable, InvalidMediaPath
from wahub.integrations.waha import WahaClient


def make_client(handler, **kwargs) -> WahaClient:
    return WahaClient(
        base_url="http://waha.test/",
        api_key="waha-secret",
        session_name="acme-session",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestWahaRequests:
    """Tests for request shape and response decoding."""

    @pytest.mark.asyncio
    async def test_api_key_header_and_session_path(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["api_key"] = request.headers.get("X-Api-Key")
            return httpx.Response(200, json={"name": "acme-session", "status": "WORKING"})

        async with make_client(handler) as client:
            data = await client.get_session()

        assert data["status"] == "WORKING"
        assert seen["url"] == "http://waha.test/api/sessions/acme-session"
        assert seen["api_key"] == "waha-secret"

    @pytest.mark.asyncio
    async def test_no_api_key_header_when_unset(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["has_key"] = "X-Api-Key" in request.headers
            return httpx.Response(200, json={})

        client = WahaClient(base_url="http://waha.test", transport=httpx.MockTransport(handler))
        async with client:
            await client.get_session()

        assert seen["has_key"] is False

    @pytest.mark.asyncio
    async def test_create_session_registers_webhook(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"name": "shop-1", "status": "STARTING"})

        async with make_client(handler) as client:
            data = await client.create_session("shop-1", webhook_url="https://hub.test/hook")

        assert data["status"] == "STARTING"
        assert seen["body"]["name"] == "shop-1"
        webhook = seen["body"]["config"]["webhooks"][0]
        assert webhook["url"] == "https://hub.test/hook"
        assert "message" in webhook["events"]

    @pytest.mark.asyncio
    async def test_send_text_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "true_4915112345678@c.us_3EB0"})

        async with make_client(handler) as client:
            data = await client.send_text(None, "4915112345678@c.us", "Hi there")

        assert seen["path"] == "/api/sendText"
        assert seen["body"] == {
            "session": "acme-session",
            "chatId": "4915112345678@c.us",
            "text": "Hi there",
        }
        assert data["id"] == "true_4915112345678@c.us_3EB0"

    @pytest.mark.asyncio
    async def test_chats_overview(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["limit"] == "20"
            return httpx.Response(
                200,
                json=[
                    {
                        "id": {"_serialized": "4915112345678@c.us"},
                        "name": "Jane",
                        "lastMessage": {"body": "Hi", "timestamp": 1773136800, "fromMe": False},
                        "unreadCount": 2,
                    },
                    {"id": "120363@g.us", "name": None},
                ],
            )

        async with make_client(handler) as client:
            chats = await client.get_chats_overview(limit=20)

        assert [chat.id for chat in chats] == ["4915112345678@c.us", "120363@g.us"]
        assert chats[0].unread_count == 2
        assert chats[0].last_message.body == "Hi"
        assert chats[1].last_message is None

    @pytest.mark.asyncio
    async def test_qr_code(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/acme-session/auth/qr"
            return httpx.Response(200, json={"mimetype": "image/png", "data": "iVBORw0KGgo="})

        async with make_client(handler) as client:
            qr = await client.get_qr_code()

        assert qr.data == "iVBORw0KGgo="
        assert qr.mimetype == "image/png"

    @pytest.mark.asyncio
    async def test_chat_id_is_quoted_in_path(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["raw_path"] = request.url.raw_path.split(b"?")[0]
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            await client.get_chat_messages(None, "odd/chat id@c.us")

        assert seen["raw_path"] == b"/api/acme-session/chats/odd%2Fchat%20id@c.us/messages"


class TestWahaErrors:
    """Tests for mapping transport failures to gateway errors."""

    @pytest.mark.asyncio
    async def test_not_found_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Session not found"})

        async with make_client(handler) as client:
            with pytest.raises(GatewayUnavailable):
                await client.get_session()

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(GatewayUnavailable):
                await client.get_session()

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(GatewayUnavailable):
                await client.get_chats_overview()

    @pytest.mark.asyncio
    async def test_other_errors_keep_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"message": "chatId is invalid"})

        async with make_client(handler) as client:
            with pytest.raises(GatewayRequestError) as exc_info:
                await client.send_text(None, "bad", "Hi")

        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_non_json_success_is_request_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text="<html>proxy login</html>", headers={"Content-Type": "text/html"}
            )

        async with make_client(handler) as client:
            with pytest.raises(GatewayRequestError) as exc_info:
                await client.get_session()

        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_requests_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, text="boom")

        async with make_client(handler) as client:
            with pytest.raises(GatewayRequestError):
                await client.get_session()

        assert len(calls) == 1


class TestWahaMedia:
    """Tests for downloading media from the gateway file store."""

    @pytest.mark.asyncio
    async def test_get_file(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["api_key"] = request.headers.get("X-Api-Key")
            return httpx.Response(
                200, content=b"\x89PNG", headers={"Content-Type": "image/png"}
            )

        async with make_client(handler) as client:
            media = await client.get_file("acme-session/true_4915112345678@c.us_3EB0.png")

        assert seen["path"] == "/api/files/acme-session/true_4915112345678@c.us_3EB0.png"
        assert seen["api_key"] == "waha-secret"
        assert media.content == b"\x89PNG"
        assert media.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_missing_content_type_defaults_to_jpeg(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\xff\xd8\xff")

        async with make_client(handler) as client:
            media = await client.get_file("photo.jpeg")

        assert media.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_path_cannot_leave_file_store(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            for path in ("../sessions/acme-session", "a/./b.jpeg", "", "/"):
                with pytest.raises(InvalidMediaPath):
                    await client.get_file(path)

        assert calls == []

    @pytest.mark.asyncio
    async def test_missing_file_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Not Found")

        async with make_client(handler) as client:
            with pytest.raises(GatewayUnavailable):
                await client.get_file("gone.jpeg")
