"""
Meta Graph API Gateway

Production gateway for the WhatsApp Business Cloud API, built on httpx.
"""

import logging
from typing import Any

import httpx

from whatsapp_integration.core.settings import get_settings
from whatsapp_integration.providers.base import GraphGateway, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_API_VERSION = "v20.0"
DEFAULT_GRAPH_API_BASE_URL = "https://graph.facebook.com"


class MetaGraphGateway(GraphGateway):
    """
    Graph API gateway over a lazily created httpx.AsyncClient.

    The client is reused across calls; call `close()` when done.
    """

    def __init__(
        self,
        api_version: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_version = api_version or settings.GRAPH_API_VERSION or DEFAULT_GRAPH_API_VERSION
        root = (base_url or settings.GRAPH_API_BASE_URL or DEFAULT_GRAPH_API_BASE_URL).rstrip("/")
        self.base_url = f"{root}/{self.api_version}"
        self.timeout = timeout if timeout is not None else settings.WHATSAPP_HTTP_TIMEOUT
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        method = method.upper()
        return await self._request(
            method,
            endpoint,
            access_token,
            params=params,
            json=body if method == "POST" and body is not None else None,
        )

    async def upload_media(
        self,
        phone_number_id: str,
        access_token: str,
        file_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"{phone_number_id}/media",
            access_token,
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, file_bytes, mime_type)},
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        access_token: str | None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make a request and normalize every failure into ProviderError."""
        client = await self._get_client()

        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await client.request(method, self._url(endpoint), headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.error(
                f"Graph API request failed: {e}",
                extra={"endpoint": endpoint, "method": method},
            )
            raise ProviderError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {}

        if response.status_code >= 400:
            error = response_data.get("error", {}) if isinstance(response_data, dict) else {}
            if not isinstance(error, dict):
                error = {"message": str(error)}
            code = error.get("code")
            logger.warning(
                f"Graph API error on {method} {endpoint}: {error.get('message')}",
                extra={
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "error_code": code,
                },
            )
            raise ProviderError(
                message=error.get("message") or f"Graph API request failed with status {response.status_code}",
                code=str(code) if code is not None else None,
                details=error,
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )

        if not isinstance(response_data, dict):
            return {"data": response_data}
        return response_data
