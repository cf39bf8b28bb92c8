"""
WhatsApp Messaging Service

Per-tenant facade over the Graph API gateway:
1. Lazily loads the tenant's config
2. Normalizes typed message content into provider wire payloads
3. Sends via the gateway and records the message locally
4. Manages templates, business profile and media
"""

import logging
import time
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from whatsapp_integration.contracts.config import REQUIRED_CONFIG_FIELDS, WhatsAppConfig
from whatsapp_integration.contracts.payloads import (
    CONTENT_MODELS,
    MEDIA_TYPES,
    SendMessageRequest,
    SendResult,
)
from whatsapp_integration.errors import ConfigIncomplete, InvalidMessageContent, UnsupportedMessageType
from whatsapp_integration.persistence.models import (
    MessageDirection,
    MessageStatus,
    MessageType,
    TemplateStatus,
    WhatsAppContact,
    WhatsAppMessage,
    WhatsAppTemplate,
)
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers.base import GraphGateway
from whatsapp_integration.service.config_store import ConfigStore

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_CATEGORY = "UTILITY"
DEFAULT_TEMPLATE_LANGUAGE = "en"


def resolve_message_type(type_tag: str) -> MessageType:
    """Map a request type tag to MessageType, rejecting anything unknown."""
    if isinstance(type_tag, MessageType):
        return type_tag
    try:
        return MessageType(str(type_tag).lower())
    except ValueError:
        raise UnsupportedMessageType(str(type_tag)) from None


def build_message_payload(to: str, message_type: MessageType, content: dict[str, Any]) -> dict[str, Any]:
    """
    Build the provider wire payload (without messaging_product) for a message.

    Raises:
        InvalidMessageContent: If content does not fit the type's model
        UnsupportedMessageType: If the type has no wire mapping
    """
    model_cls = CONTENT_MODELS.get(message_type)
    if model_cls is None:
        raise UnsupportedMessageType(message_type.value)

    try:
        model = model_cls.model_validate(content)
    except ValidationError as e:
        raise InvalidMessageContent(message_type.value, str(e)) from e

    message_data: dict[str, Any] = {
        "recipient_type": "individual",
        "to": to,
        "type": message_type.value,
    }

    if message_type == MessageType.TEXT:
        message_data["text"] = {"body": model.body, "preview_url": model.preview_url}

    elif message_type == MessageType.TEMPLATE:
        message_data["template"] = dict(content)

    elif message_type in MEDIA_TYPES:
        media = {
            "link": model.url,
            "id": model.id,
            "caption": model.caption,
            "filename": model.filename,
        }
        message_data[message_type.value] = {k: v for k, v in media.items() if v is not None}

    elif message_type == MessageType.LOCATION:
        message_data["location"] = model.model_dump(exclude_none=True)

    elif message_type == MessageType.CONTACT:
        # Provider type is plural
        message_data["type"] = "contacts"
        message_data["contacts"] = [dict(content)]

    elif message_type == MessageType.INTERACTIVE:
        message_data["interactive"] = model.model_dump(exclude_none=True)

    else:
        raise UnsupportedMessageType(message_type.value)

    return message_data


def _first_message_id(response: dict[str, Any]) -> str | None:
    messages = response.get("messages") or []
    if messages and isinstance(messages[0], dict):
        return messages[0].get("id")
    return None


class WhatsAppService:
    """
    Messaging facade for one organization.

    Config is loaded on first use. Remote operations require a complete
    config (access_token, app_id, waba_id, phone_number_id).
    """

    def __init__(
        self,
        organization_id: UUID,
        repository: WhatsAppRepository,
        gateway: GraphGateway,
        config_store: ConfigStore | None = None,
    ):
        self.organization_id = organization_id
        self.repo = repository
        self.gateway = gateway
        self.config_store = config_store or ConfigStore(repository)
        self._config: WhatsAppConfig | None = None

    @property
    def config(self) -> WhatsAppConfig:
        """Tenant config (raises ConfigNotFound when absent)."""
        if self._config is None:
            self._config = self.config_store.require(self.organization_id)
        return self._config

    def _require_complete(self) -> WhatsAppConfig:
        config = self.config
        missing = config.missing_fields(REQUIRED_CONFIG_FIELDS)
        if missing:
            raise ConfigIncomplete(self.organization_id, missing)
        return config

    # =========================================================================
    # Messages
    # =========================================================================

    async def send_message(self, request: SendMessageRequest) -> SendResult:
        """
        Send a message and record it as OUTBOUND/SENT.

        Raises:
            UnsupportedMessageType: Before any provider call
            InvalidMessageContent: Before any provider call
            ConfigNotFound / ConfigIncomplete: Before any provider call
            ProviderError: If the provider rejects the message
        """
        message_type = resolve_message_type(request.type)
        message_data = build_message_payload(request.to, message_type, request.content)
        config = self._require_complete()

        response = await self.gateway.send_message(
            config.phone_number_id, config.access_token, message_data
        )
        wam_id = _first_message_id(response)
        conversation_id = request.conversation_id or f"conv_{int(time.time() * 1000)}"

        try:
            contact, _ = self.repo.find_or_create_contact(self.organization_id, request.to)
            message = self.repo.create_message(
                organization_id=self.organization_id,
                conversation_id=conversation_id,
                direction=MessageDirection.OUTBOUND,
                message_type=message_type,
                status=MessageStatus.SENT,
                content=request.content,
                wam_id=wam_id,
                contact_id=contact.id,
                user_id=request.user_id,
            )
            self.repo.commit()
        except SQLAlchemyError:
            self.repo.rollback()
            logger.error(
                f"Message {wam_id} was sent but could not be recorded",
                extra={"organization_id": str(self.organization_id), "wam_id": wam_id},
                exc_info=True,
            )
            raise

        logger.info(
            f"Sent {message_type.value} message",
            extra={
                "organization_id": str(self.organization_id),
                "to": request.to,
                "wam_id": wam_id,
                "conversation_id": conversation_id,
            },
        )

        return SendResult(
            message_id=wam_id,
            database_id=message.id,
            conversation_id=conversation_id,
            response=response,
        )

    async def send_text_message(
        self,
        to: str,
        body: str,
        preview_url: bool = False,
        conversation_id: str | None = None,
    ) -> SendResult:
        return await self.send_message(
            SendMessageRequest(
                to=to,
                type=MessageType.TEXT.value,
                content={"body": body, "preview_url": preview_url},
                conversation_id=conversation_id,
            )
        )

    async def send_template_message(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]] | None = None,
        conversation_id: str | None = None,
    ) -> SendResult:
        return await self.send_message(
            SendMessageRequest(
                to=to,
                type=MessageType.TEMPLATE.value,
                content={
                    "name": template_name,
                    "language": {"code": language_code},
                    "components": components or [],
                },
                conversation_id=conversation_id,
            )
        )

    async def send_media_message(
        self,
        to: str,
        media_type: str,
        url: str | None = None,
        media_id: str | None = None,
        caption: str | None = None,
        filename: str | None = None,
        conversation_id: str | None = None,
    ) -> SendResult:
        content = {"url": url, "id": media_id, "caption": caption, "filename": filename}
        return await self.send_message(
            SendMessageRequest(
                to=to,
                type=media_type,
                content={k: v for k, v in content.items() if v is not None},
                conversation_id=conversation_id,
            )
        )

    async def send_location_message(
        self,
        to: str,
        latitude: float,
        longitude: float,
        name: str | None = None,
        address: str | None = None,
        conversation_id: str | None = None,
    ) -> SendResult:
        content: dict[str, Any] = {"latitude": latitude, "longitude": longitude}
        if name:
            content["name"] = name
        if address:
            content["address"] = address
        return await self.send_message(
            SendMessageRequest(
                to=to,
                type=MessageType.LOCATION.value,
                content=content,
                conversation_id=conversation_id,
            )
        )

    async def send_contact_message(
        self,
        to: str,
        contact: dict[str, Any],
        conversation_id: str | None = None,
    ) -> SendResult:
        return await self.send_message(
            SendMessageRequest(
                to=to,
                type=MessageType.CONTACT.value,
                content=contact,
                conversation_id=conversation_id,
            )
        )

    async def send_interactive_message(
        self,
        to: str,
        interactive: dict[str, Any],
        conversation_id: str | None = None,
    ) -> SendResult:
        return await self.send_message(
            SendMessageRequest(
                to=to,
                type=MessageType.INTERACTIVE.value,
                content=interactive,
                conversation_id=conversation_id,
            )
        )

    async def react_to_message(self, to: str, message_id: str, emoji: str) -> dict[str, Any]:
        """React to a message. Reactions are not recorded locally."""
        config = self._require_complete()
        return await self.gateway.send_message(
            config.phone_number_id,
            config.access_token,
            {
                "recipient_type": "individual",
                "to": to,
                "type": "reaction",
                "reaction": {"message_id": message_id, "emoji": emoji},
            },
        )

    def get_conversation_messages(self, conversation_id: str, limit: int = 50) -> list[WhatsAppMessage]:
        """Messages of one conversation, newest first."""
        return self.repo.list_messages(self.organization_id, conversation_id, limit=limit)

    def get_or_create_contact(self, phone: str, **extra: Any) -> WhatsAppContact:
        contact, created = self.repo.find_or_create_contact(self.organization_id, phone, **extra)
        self.repo.commit()
        if created:
            logger.debug(f"Created contact for {phone}", extra={"organization_id": str(self.organization_id)})
        return contact

    # =========================================================================
    # Business profile
    # =========================================================================

    async def get_business_profile(self) -> dict[str, Any]:
        config = self._require_complete()
        response = await self.gateway.get_business_profile(config.phone_number_id, config.access_token)
        return (response.get("data") or [{}])[0]

    async def update_business_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        """Update the profile at the provider, then merge it into the stored config."""
        config = self._require_complete()
        response = await self.gateway.update_business_profile(
            config.phone_number_id, config.access_token, profile
        )
        self._config = self.config_store.update(self.organization_id, {"business_profile": profile})
        return response

    # =========================================================================
    # Templates
    # =========================================================================

    async def create_template(self, template: dict[str, Any]) -> dict[str, Any]:
        """
        Create a template at the provider.

        A local PENDING row is written only when the provider returns an id.
        """
        config = self._require_complete()
        response = await self.gateway.create_template(config.waba_id, config.access_token, template)

        meta_id = response.get("id")
        if meta_id:
            self.repo.create_template(
                organization_id=self.organization_id,
                meta_id=str(meta_id),
                name=template.get("name", ""),
                language=template.get("language") or DEFAULT_TEMPLATE_LANGUAGE,
                category=str(template.get("category") or DEFAULT_TEMPLATE_CATEGORY).upper(),
                status=TemplateStatus.PENDING,
                metadata={**template, "meta_response": response},
            )
            self.repo.commit()

        logger.info(
            f"Created template {template.get('name')}",
            extra={"organization_id": str(self.organization_id), "meta_id": meta_id},
        )
        return response

    async def update_template(self, meta_id: str, template: dict[str, Any]) -> dict[str, Any]:
        """Update a template at the provider; the local status goes back to PENDING."""
        config = self._require_complete()
        response = await self.gateway.update_template(meta_id, config.access_token, template)

        self.repo.update_template_fields(
            self.organization_id, meta_id, status=TemplateStatus.PENDING.value
        )
        self.repo.commit()
        return response

    async def delete_template(self, meta_id: str) -> dict[str, Any]:
        """Delete a template at the provider, then locally."""
        config = self._require_complete()
        response = await self.gateway.delete_template(meta_id, config.access_token)

        deleted = self.repo.delete_templates(self.organization_id, meta_id)
        self.repo.commit()
        logger.info(
            f"Deleted template {meta_id}",
            extra={"organization_id": str(self.organization_id), "local_rows": deleted},
        )
        return response

    async def sync_templates(self) -> int:
        """
        Upsert every provider template by (organization, meta_id).

        Local templates missing at the provider are left alone.

        Returns:
            Number of templates synced
        """
        config = self._require_complete()
        response = await self.gateway.get_message_templates(config.waba_id, config.access_token)
        templates = response.get("data") or []

        outcomes = {"created": 0, "updated": 0, "unchanged": 0}
        try:
            for template in templates:
                if not template.get("id"):
                    logger.warning("Skipping provider template without id", extra={"template": template})
                    continue
                _, outcome = self.repo.upsert_template(
                    self.organization_id,
                    str(template["id"]),
                    name=template.get("name", ""),
                    language=template.get("language") or DEFAULT_TEMPLATE_LANGUAGE,
                    category=str(template.get("category") or DEFAULT_TEMPLATE_CATEGORY).upper(),
                    status=str(template.get("status") or TemplateStatus.PENDING.value).upper(),
                    rejection_reason=template.get("rejected_reason") or None,
                    template_metadata=template,
                )
                outcomes[outcome] += 1
            self.repo.commit()
        except SQLAlchemyError:
            self.repo.rollback()
            raise

        synced = sum(outcomes.values())
        logger.info(
            f"Synced {synced} templates",
            extra={
                "organization_id": str(self.organization_id),
                "templates_created": outcomes["created"],
                "templates_updated": outcomes["updated"],
                "templates_unchanged": outcomes["unchanged"],
            },
        )
        return synced

    def get_templates(self) -> list[WhatsAppTemplate]:
        """Local templates, newest first."""
        return self.repo.list_templates(self.organization_id)

    # =========================================================================
    # Media / account
    # =========================================================================

    async def upload_media(self, file_bytes: bytes, filename: str, mime_type: str) -> dict[str, Any]:
        config = self._require_complete()
        return await self.gateway.upload_media(
            config.phone_number_id, config.access_token, file_bytes, filename, mime_type
        )

    async def get_media(self, media_id: str) -> dict[str, Any]:
        config = self._require_complete()
        return await self.gateway.get_media(media_id, config.access_token)

    async def get_account_status(self) -> dict[str, Any]:
        """Live phone number and account review status."""
        config = self._require_complete()
        phone = await self.gateway.get_phone_number_details(config.phone_number_id, config.access_token)
        review = await self.gateway.get_account_review_status(config.waba_id, config.access_token)
        return {
            "phone_number_id": config.phone_number_id,
            "display_phone_number": phone.get("display_phone_number"),
            "verified_name": phone.get("verified_name"),
            "number_status": phone.get("status"),
            "quality_rating": phone.get("quality_rating"),
            "messaging_limit_tier": phone.get("messaging_limit_tier"),
            "account_review_status": review.get("account_review_status"),
        }
