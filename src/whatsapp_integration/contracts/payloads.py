"""
WhatsApp Message Payload Models

Pydantic models for outbound message content. A SendMessageRequest carries a
type tag plus a content object whose shape depends on that tag; the messaging
service validates the content against the model registered for the tag.
"""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from whatsapp_integration.persistence.models import MessageType


class TextContent(BaseModel):
    body: str = Field(..., min_length=1, max_length=4096)
    preview_url: bool = False


class TemplateLanguage(BaseModel):
    code: str = Field(..., description="Language code, e.g. en_US")


class TemplateContent(BaseModel):
    """Template message; sent to the provider verbatim."""

    model_config = ConfigDict(extra="allow")

    name: str
    language: TemplateLanguage
    components: list[dict[str, Any]] = Field(default_factory=list)


class MediaContent(BaseModel):
    """Image/video/audio/document; referenced by public link or uploaded media id."""

    url: str | None = None
    id: str | None = None
    caption: str | None = None
    filename: str | None = None

    @model_validator(mode="after")
    def _require_source(self) -> "MediaContent":
        if not self.url and not self.id:
            raise ValueError("Media content requires either 'url' or 'id'")
        return self


class LocationContent(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    name: str | None = None
    address: str | None = None


class ContactName(BaseModel):
    model_config = ConfigDict(extra="allow")

    formatted_name: str
    first_name: str | None = None
    last_name: str | None = None


class ContactContent(BaseModel):
    """A contact card (the provider's contacts[] element)."""

    model_config = ConfigDict(extra="allow")

    name: ContactName
    phones: list[dict[str, Any]] = Field(default_factory=list)
    emails: list[dict[str, Any]] = Field(default_factory=list)


class InteractiveContent(BaseModel):
    """Button list, list picker or CTA URL message."""

    model_config = ConfigDict(extra="allow")

    type: Literal["button", "list", "cta_url", "product", "product_list", "flow"]
    body: dict[str, Any]
    action: dict[str, Any]
    header: dict[str, Any] | None = None
    footer: dict[str, Any] | None = None


MEDIA_TYPES = (MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.DOCUMENT)

CONTENT_MODELS: dict[MessageType, type[BaseModel]] = {
    MessageType.TEXT: TextContent,
    MessageType.TEMPLATE: TemplateContent,
    MessageType.IMAGE: MediaContent,
    MessageType.VIDEO: MediaContent,
    MessageType.AUDIO: MediaContent,
    MessageType.DOCUMENT: MediaContent,
    MessageType.LOCATION: LocationContent,
    MessageType.CONTACT: ContactContent,
    MessageType.INTERACTIVE: InteractiveContent,
}


class SendMessageRequest(BaseModel):
    """
    Outbound message request.

    `type` is kept as a plain string so an unknown tag surfaces as
    UnsupportedMessageType from the messaging service.
    """

    to: str = Field(..., min_length=1, description="Recipient phone number")
    type: str = Field(..., description="Message type tag, e.g. 'text'")
    content: dict[str, Any] = Field(default_factory=dict, description="Type-specific content")
    conversation_id: str | None = None
    user_id: str | None = Field(None, description="Sending user, when known")


class SendResult(BaseModel):
    """Result of a successful send."""

    message_id: str | None = Field(None, description="Provider message id (wam_id)")
    database_id: UUID
    conversation_id: str
    response: dict[str, Any] = Field(default_factory=dict)
