"""
Tests for the httpx Graph API gateway.
"""

import json

import httpx
import pytest

from whatsapp_integration.providers.base import WEBHOOK_SUBSCRIBED_FIELDS, ProviderError
from whatsapp_integration.providers.meta_cloud import MetaGraphGateway


class RecordingHandler:
    """httpx MockTransport handler that records requests and returns a canned response."""

    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {"success": True}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


def make_gateway(handler) -> MetaGraphGateway:
    return MetaGraphGateway(
        api_version="v20.0",
        base_url="https://graph.test",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestMetaGraphGateway:
    """Tests for MetaGraphGateway request shaping and error normalization."""

    @pytest.mark.asyncio
    async def test_versioned_url_and_bearer(self):
        """Test requests go to the versioned base URL with a bearer token."""
        handler = RecordingHandler(payload={"id": "3000", "name": "Acme"})
        gateway = make_gateway(handler)

        response = await gateway.get_waba_identity("3000", "EAA123")
        await gateway.close()

        request = handler.requests[0]
        assert response == {"id": "3000", "name": "Acme"}
        assert request.method == "GET"
        assert request.url.path == "/v20.0/3000"
        assert request.url.params["fields"] == "id,name"
        assert request.headers["Authorization"] == "Bearer EAA123"

    @pytest.mark.asyncio
    async def test_error_response_becomes_provider_error(self):
        """Test a Graph error body is surfaced as ProviderError."""
        handler = RecordingHandler(
            status_code=400,
            payload={"error": {"message": "Invalid OAuth access token.", "type": "OAuthException", "code": 190}},
        )
        gateway = make_gateway(handler)

        with pytest.raises(ProviderError) as exc_info:
            await gateway.get_waba_phone_numbers("3000", "EAA123")

        error = exc_info.value
        assert error.message == "Invalid OAuth access token."
        assert error.code == "190"
        assert error.status_code == 400
        assert error.details["type"] == "OAuthException"
        assert error.retryable is False

    @pytest.mark.asyncio
    async def test_server_error_without_body_is_retryable(self):
        """Test a 5xx without an error body gets a generic message."""
        gateway = make_gateway(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(ProviderError) as exc_info:
            await gateway.get_media("media_1", "EAA123")

        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_provider_error(self):
        """Test connection errors are normalized to HTTP_ERROR."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(ProviderError) as exc_info:
            await gateway.get_media("media_1", "EAA123")

        assert exc_info.value.code == "HTTP_ERROR"
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_send_message_adds_messaging_product(self):
        """Test send_message posts JSON with messaging_product=whatsapp."""
        handler = RecordingHandler(payload={"messages": [{"id": "wamid.1"}]})
        gateway = make_gateway(handler)

        await gateway.send_message("2000", "EAA123", {"to": "5511888888888", "type": "text", "text": {"body": "Oi"}})

        request = handler.requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/v20.0/2000/messages"
        assert body["messaging_product"] == "whatsapp"
        assert body["text"] == {"body": "Oi"}

    @pytest.mark.asyncio
    async def test_code_exchange_uses_query_params_only(self):
        """Test the OAuth exchange sends credentials as query params without a token."""
        handler = RecordingHandler(payload={"access_token": "EAAnew"})
        gateway = make_gateway(handler)

        await gateway.exchange_code_for_token("code_1", "111", "secret", "https://app.example.com/cb")

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v20.0/oauth/access_token"
        assert request.url.params["code"] == "code_1"
        assert request.url.params["client_secret"] == "secret"
        assert request.url.params["redirect_uri"] == "https://app.example.com/cb"
        assert "Authorization" not in request.headers
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_debug_token_uses_app_token(self):
        """Test debug_token authenticates with app_id|app_secret."""
        handler = RecordingHandler(payload={"data": {"is_valid": True}})
        gateway = make_gateway(handler)

        await gateway.debug_token("EAA123", "111", "secret")

        params = handler.requests[0].url.params
        assert params["input_token"] == "EAA123"
        assert params["access_token"] == "111|secret"

    @pytest.mark.asyncio
    async def test_subscribe_sends_subscribed_fields(self):
        """Test the WABA subscription lists every webhook field."""
        handler = RecordingHandler()
        gateway = make_gateway(handler)

        await gateway.subscribe_to_waba("3000", "EAA123")

        request = handler.requests[0]
        assert request.url.path == "/v20.0/3000/subscribed_apps"
        assert request.url.params["subscribed_fields"] == ",".join(WEBHOOK_SUBSCRIBED_FIELDS)

    @pytest.mark.asyncio
    async def test_delete_template_targets_template_id(self):
        """Test template deletion is a DELETE on the template id."""
        handler = RecordingHandler()
        gateway = make_gateway(handler)

        await gateway.delete_template("tpl_9", "EAA123")

        assert handler.requests[0].method == "DELETE"
        assert handler.requests[0].url.path == "/v20.0/tpl_9"

    @pytest.mark.asyncio
    async def test_template_listing_follows_paging(self):
        """Test template pages are fetched with the after cursor until no next link."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.params.get("after") == "c2":
                return httpx.Response(200, json={"data": [{"id": "tpl_2"}], "paging": {"cursors": {"after": "c3"}}})
            return httpx.Response(
                200,
                json={
                    "data": [{"id": "tpl_1"}],
                    "paging": {"cursors": {"after": "c2"}, "next": "https://graph.test/next"},
                },
            )

        gateway = make_gateway(handler)

        response = await gateway.get_message_templates("3000", "EAA123")

        assert response == {"data": [{"id": "tpl_1"}, {"id": "tpl_2"}]}
        assert len(requests) == 2
        assert "after" not in requests[0].url.params
        assert requests[1].url.params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_upload_media_is_multipart(self):
        """Test media upload sends a multipart form."""
        handler = RecordingHandler(payload={"id": "media_1"})
        gateway = make_gateway(handler)

        response = await gateway.upload_media("2000", "EAA123", b"\x89PNG", "logo.png", "image/png")

        request = handler.requests[0]
        assert response == {"id": "media_1"}
        assert request.url.path == "/v20.0/2000/media"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="messaging_product"' in request.content
        assert b'filename="logo.png"' in request.content

    @pytest.mark.asyncio
    async def test_list_response_is_wrapped(self):
        """Test a non-object JSON response is wrapped under data."""
        gateway = make_gateway(lambda request: httpx.Response(200, json=[1, 2]))

        assert await gateway.get_media("media_1", "EAA123") == {"data": [1, 2]}

    @pytest.mark.asyncio
    async def test_client_recreated_after_close(self):
        """Test the gateway can be reused after close()."""
        handler = RecordingHandler()
        gateway = make_gateway(handler)

        await gateway.get_media("a", "EAA123")
        await gateway.close()
        await gateway.get_media("b", "EAA123")
        await gateway.close()

        assert len(handler.requests) == 2
