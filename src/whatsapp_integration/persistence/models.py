"""
WhatsApp Integration Database Models

Tables:
- organizations: Tenants; WhatsApp config lives at metadata["whatsapp"]
- whatsapp_templates: Message templates mirrored from the provider
- whatsapp_contacts: Customers a tenant has exchanged messages with
- whatsapp_messages: All inbound/outbound messages

Every row except the organization itself belongs to exactly one organization.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

WhatsAppBase = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    """Message content types stored locally."""

    TEXT = "text"
    TEMPLATE = "template"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    LOCATION = "location"
    CONTACT = "contact"
    INTERACTIVE = "interactive"


class MessageDirection(str, Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class MessageStatus(str, Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"


class TemplateStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TimestampMixin:
    """Common fields for all integration models."""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Organization(WhatsAppBase, TimestampMixin):
    """
    A tenant.

    The slug doubles as the webhook verify token and callback path segment.
    Only metadata["whatsapp"] is written by this package.
    """

    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    org_metadata = Column("metadata", JSONType, nullable=False, default=dict)


class OrganizationScopedMixin(TimestampMixin):
    organization_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class WhatsAppTemplate(WhatsAppBase, OrganizationScopedMixin):
    """
    A message template, identified by (organization_id, meta_id).

    Status is authoritative from the provider and overwritten on every sync.
    """

    __tablename__ = "whatsapp_templates"

    meta_id = Column(String(100), nullable=False)
    name = Column(String(512), nullable=False)
    language = Column(String(20), nullable=False)
    category = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=TemplateStatus.PENDING.value)
    rejection_reason = Column(Text, nullable=True)
    template_metadata = Column("metadata", JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("organization_id", "meta_id", name="uq_whatsapp_templates_org_meta_id"),
        Index("idx_whatsapp_templates_org_name", "organization_id", "name"),
    )


class WhatsAppContact(WhatsAppBase, OrganizationScopedMixin):
    """A customer phone number, created lazily on first exchange."""

    __tablename__ = "whatsapp_contacts"

    phone = Column(String(32), nullable=False)  # As received from / sent to WhatsApp
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    profile_name = Column(String(255), nullable=True)  # From WhatsApp profile

    __table_args__ = (
        UniqueConstraint("organization_id", "phone", name="uq_whatsapp_contacts_org_phone"),
    )


class WhatsAppMessage(WhatsAppBase, OrganizationScopedMixin):
    """
    A sent or received message.

    wam_id is the provider message id; it is the key for status updates and
    inbound de-duplication.
    """

    __tablename__ = "whatsapp_messages"

    wam_id = Column(String(255), nullable=True)
    conversation_id = Column(String(100), nullable=False)
    contact_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("whatsapp_contacts.id", ondelete="SET NULL"),
        nullable=True,
    )
    type = Column(String(20), nullable=False, default=MessageType.TEXT.value)
    direction = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False)
    content = Column(JSONType, nullable=False, default=dict)  # Verbatim content snapshot
    user_id = Column(String(100), nullable=True)  # Sending user, when known
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_whatsapp_messages_org_wam_id", "organization_id", "wam_id"),
        Index("idx_whatsapp_messages_org_conversation", "organization_id", "conversation_id", "timestamp"),
    )
