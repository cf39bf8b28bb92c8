"""
Graph API Gateway Base

Abstract interface for the Meta Graph API as used by the integration.
Implementations: MetaGraphGateway (httpx), StubGraphGateway (development/tests).

Only `call` and `upload_media` touch the transport; every other operation is
a thin parameter binding over `call`, so all implementations share the exact
same endpoints, query parameters and request bodies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Graph API field selections
PHONE_NUMBER_FIELDS = (
    "status,display_phone_number,verified_name,quality_rating,"
    "name_status,messaging_limit_tier"
)
BUSINESS_PROFILE_FIELDS = (
    "about,address,description,industry,email,profile_picture_url,websites,vertical"
)
TEMPLATE_FIELDS = "id,name,category,language,status,components,rejected_reason"
TEMPLATE_PAGE_LIMIT = 100
WEBHOOK_SUBSCRIBED_FIELDS = [
    "messages",
    "message_deliveries",
    "message_reads",
    "message_reactions",
    "message_echoes",
]


class ProviderError(Exception):
    """Error from the Graph API (HTTP error response or transport failure)."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "status_code": self.status_code,
        }


@dataclass
class InboundMessage:
    """
    Parsed inbound message from a webhook.

    `message_type` is the provider's raw type string ("text", "sticker", ...).
    """

    message_id: str
    from_phone: str
    phone_number_id: str
    waba_id: str
    message_type: str
    timestamp: datetime
    text: str | None = None
    caption: str | None = None
    media_id: str | None = None
    context_message_id: str | None = None  # Replied-to message
    contact_name: str | None = None  # Sender's WhatsApp profile name
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeliveryStatus:
    """Delivery status update for a previously sent message."""

    message_id: str
    recipient_phone: str
    status: str  # sent, delivered, read, failed
    timestamp: datetime
    error_code: str | None = None
    error_message: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


class GraphGateway(ABC):
    """
    Abstract gateway to the Meta Graph API.

    Stateless with respect to tenants: every call receives the access token it
    should use. Failures are raised as ProviderError; nothing is retried here.
    """

    @abstractmethod
    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Perform one Graph API request.

        Args:
            endpoint: Path relative to the versioned base URL (e.g. "123/messages")
            method: HTTP method
            body: JSON body (POST only)
            access_token: Bearer token, omitted when None
            params: Query string parameters

        Returns:
            Decoded JSON response

        Raises:
            ProviderError: On non-2xx responses or transport failures
        """
        pass

    @abstractmethod
    async def upload_media(
        self,
        phone_number_id: str,
        access_token: str,
        file_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> dict[str, Any]:
        """Upload a media file (multipart). Returns {"id": ...}."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None

    # =========================================================================
    # OAuth / token
    # =========================================================================

    async def exchange_code_for_token(
        self,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> dict[str, Any]:
        return await self.call(
            "oauth/access_token",
            "POST",
            params={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )

    async def debug_token(
        self,
        input_token: str,
        app_id: str,
        app_secret: str,
    ) -> dict[str, Any]:
        return await self.call(
            "debug_token",
            "GET",
            params={
                "input_token": input_token,
                "access_token": f"{app_id}|{app_secret}",
            },
        )

    # =========================================================================
    # WABA / phone numbers
    # =========================================================================

    async def get_waba_identity(self, waba_id: str, access_token: str) -> dict[str, Any]:
        return await self.call(
            waba_id, "GET", access_token=access_token, params={"fields": "id,name"}
        )

    async def get_waba_phone_numbers(
        self, waba_id: str, access_token: str
    ) -> dict[str, Any]:
        return await self.call(f"{waba_id}/phone_numbers", "GET", access_token=access_token)

    async def get_phone_number_details(
        self,
        phone_number_id: str,
        access_token: str,
        fields: str = PHONE_NUMBER_FIELDS,
    ) -> dict[str, Any]:
        return await self.call(
            phone_number_id, "GET", access_token=access_token, params={"fields": fields}
        )

    async def get_account_review_status(
        self, waba_id: str, access_token: str
    ) -> dict[str, Any]:
        return await self.call(
            waba_id,
            "GET",
            access_token=access_token,
            params={"fields": "account_review_status"},
        )

    async def register_phone_number(
        self,
        phone_number_id: str,
        access_token: str,
        pin: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"messaging_product": "whatsapp"}
        if pin:
            body["pin"] = pin
        return await self.call(
            f"{phone_number_id}/register", "POST", body=body, access_token=access_token
        )

    # =========================================================================
    # Business profile
    # =========================================================================

    async def get_business_profile(
        self, phone_number_id: str, access_token: str
    ) -> dict[str, Any]:
        return await self.call(
            f"{phone_number_id}/whatsapp_business_profile",
            "GET",
            access_token=access_token,
            params={"fields": BUSINESS_PROFILE_FIELDS},
        )

    async def update_business_profile(
        self,
        phone_number_id: str,
        access_token: str,
        profile: dict[str, Any],
    ) -> dict[str, Any]:
        return await self.call(
            f"{phone_number_id}/whatsapp_business_profile",
            "POST",
            body={"messaging_product": "whatsapp", **profile},
            access_token=access_token,
        )

    # =========================================================================
    # Webhook subscription
    # =========================================================================

    async def subscribe_to_waba(self, waba_id: str, access_token: str) -> dict[str, Any]:
        return await self.call(
            f"{waba_id}/subscribed_apps",
            "POST",
            access_token=access_token,
            params={"subscribed_fields": ",".join(WEBHOOK_SUBSCRIBED_FIELDS)},
        )

    async def override_callback_url(
        self,
        waba_id: str,
        access_token: str,
        callback_url: str,
        verify_token: str,
    ) -> dict[str, Any]:
        return await self.call(
            f"{waba_id}/subscribed_apps",
            "POST",
            body={
                "override_callback_uri": callback_url,
                "verify_token": verify_token,
            },
            access_token=access_token,
        )

    # =========================================================================
    # Templates
    # =========================================================================

    async def get_message_templates(
        self, waba_id: str, access_token: str
    ) -> dict[str, Any]:
        """All templates of the account, following `paging.next` page by page."""
        templates: list[dict[str, Any]] = []
        params: dict[str, Any] = {"fields": TEMPLATE_FIELDS, "limit": TEMPLATE_PAGE_LIMIT}
        while True:
            page = await self.call(
                f"{waba_id}/message_templates",
                "GET",
                access_token=access_token,
                params=dict(params),
            )
            templates.extend(page.get("data") or [])

            paging = page.get("paging") or {}
            after = (paging.get("cursors") or {}).get("after")
            if not paging.get("next") or not after or after == params.get("after"):
                break
            params["after"] = after

        return {"data": templates}

    async def create_template(
        self,
        waba_id: str,
        access_token: str,
        template: dict[str, Any],
    ) -> dict[str, Any]:
        return await self.call(
            f"{waba_id}/message_templates", "POST", body=template, access_token=access_token
        )

    async def update_template(
        self,
        template_id: str,
        access_token: str,
        template: dict[str, Any],
    ) -> dict[str, Any]:
        return await self.call(template_id, "POST", body=template, access_token=access_token)

    async def delete_template(self, template_id: str, access_token: str) -> dict[str, Any]:
        return await self.call(template_id, "DELETE", access_token=access_token)

    # =========================================================================
    # Messages / media
    # =========================================================================

    async def send_message(
        self,
        phone_number_id: str,
        access_token: str,
        message_data: dict[str, Any],
    ) -> dict[str, Any]:
        return await self.call(
            f"{phone_number_id}/messages",
            "POST",
            body={"messaging_product": "whatsapp", **message_data},
            access_token=access_token,
        )

    async def get_media(self, media_id: str, access_token: str) -> dict[str, Any]:
        return await self.call(media_id, "GET", access_token=access_token)
