"""
Stub Graph API Gateway

Development gateway that records every call without touching the network.
Responses can be scripted per (method, endpoint); anything not scripted gets
a plausible default (fake message/media ids, empty lists elsewhere).
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from whatsapp_integration.providers.base import GraphGateway, ProviderError

logger = logging.getLogger(__name__)

StubResponse = dict[str, Any] | ProviderError | Callable[..., dict[str, Any]]


@dataclass
class RecordedCall:
    method: str
    endpoint: str
    body: dict[str, Any] | None = None
    access_token: str | None = None
    params: dict[str, Any] | None = None
    files: dict[str, Any] = field(default_factory=dict)


class StubGraphGateway(GraphGateway):
    """
    Stub gateway for development and testing.

    - Records every call in `calls`
    - Returns scripted responses registered with `respond()`
    - Raises scripted ProviderErrors
    - Generates fake message and media IDs
    """

    def __init__(self):
        self.calls: list[RecordedCall] = []
        self._responses: dict[tuple[str, str], StubResponse] = {}

    def respond(self, method: str, endpoint: str, response: StubResponse) -> None:
        """
        Script the response for a (method, endpoint) pair.

        `response` may be a dict, a ProviderError to raise, or a callable
        receiving (body, params) and returning a dict.
        """
        self._responses[(method.upper(), endpoint)] = response

    def calls_to(self, endpoint: str, method: str | None = None) -> list[RecordedCall]:
        return [
            c for c in self.calls
            if c.endpoint == endpoint and (method is None or c.method == method.upper())
        ]

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        method = method.upper()
        self.calls.append(
            RecordedCall(
                method=method,
                endpoint=endpoint,
                body=body,
                access_token=access_token,
                params=params,
            )
        )
        logger.info(f"[STUB] {method} {endpoint}", extra={"params": params})
        return self._resolve(method, endpoint, body, params)

    async def upload_media(
        self,
        phone_number_id: str,
        access_token: str,
        file_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> dict[str, Any]:
        endpoint = f"{phone_number_id}/media"
        self.calls.append(
            RecordedCall(
                method="POST",
                endpoint=endpoint,
                access_token=access_token,
                files={"file": (filename, len(file_bytes), mime_type)},
            )
        )
        logger.info(f"[STUB] Uploading media {filename}", extra={"size": len(file_bytes)})
        if ("POST", endpoint) in self._responses:
            return self._resolve("POST", endpoint, None, None)
        return {"id": f"stub_media_{uuid4().hex[:16]}"}

    def _resolve(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None,
        params: dict[str, Any] | None,
    ) -> dict[str, Any]:
        response = self._responses.get((method, endpoint))

        if isinstance(response, ProviderError):
            raise response
        if callable(response):
            return response(body, params)
        if response is not None:
            return response

        if method == "POST" and endpoint.endswith("/messages"):
            return {
                "messaging_product": "whatsapp",
                "contacts": [{"input": (body or {}).get("to"), "wa_id": (body or {}).get("to")}],
                "messages": [{"id": f"wamid.stub_{uuid4().hex[:16]}"}],
            }
        if method == "GET" and endpoint.endswith(("/phone_numbers", "/message_templates")):
            return {"data": []}
        if method == "POST":
            return {"success": True}
        return {}
