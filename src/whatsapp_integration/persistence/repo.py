"""
WhatsApp Repository

Repository pattern for integration database operations. Methods add/flush
but never commit; the calling service owns the transaction.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from whatsapp_integration.persistence.models import (
    MessageDirection,
    MessageStatus,
    MessageType,
    Organization,
    TemplateStatus,
    WhatsAppContact,
    WhatsAppMessage,
    WhatsAppTemplate,
    utcnow,
)

TEMPLATE_SYNC_FIELDS = ("name", "language", "category", "status", "rejection_reason", "template_metadata")


class WhatsAppRepository:
    """Repository for integration database operations."""

    def __init__(self, db: Session):
        self.db = db

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    # =========================================================================
    # Organizations
    # =========================================================================

    def find_org(self, organization_id: UUID) -> Organization | None:
        """Get organization by ID."""
        return self.db.query(Organization).filter(Organization.id == organization_id).first()

    def find_org_by_slug(self, slug: str) -> Organization | None:
        """Get active organization by slug."""
        return (
            self.db.query(Organization)
            .filter(
                Organization.slug == slug,
                Organization.is_active == True,  # noqa: E712
            )
            .first()
        )

    def create_org(self, name: str, slug: str, metadata: dict[str, Any] | None = None) -> Organization:
        org = Organization(name=name, slug=slug, org_metadata=metadata or {})
        self.db.add(org)
        self.db.flush()
        return org

    def update_org_metadata(self, organization: Organization, metadata: dict[str, Any]) -> None:
        """Replace the organization's metadata map (a new dict, so the change is tracked)."""
        organization.org_metadata = dict(metadata)

    # =========================================================================
    # Templates
    # =========================================================================

    def get_template(self, organization_id: UUID, meta_id: str) -> WhatsAppTemplate | None:
        return (
            self.db.query(WhatsAppTemplate)
            .filter(
                WhatsAppTemplate.organization_id == organization_id,
                WhatsAppTemplate.meta_id == meta_id,
            )
            .first()
        )

    def create_template(
        self,
        organization_id: UUID,
        meta_id: str,
        name: str,
        language: str,
        category: str,
        status: TemplateStatus | str = TemplateStatus.PENDING,
        rejection_reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> WhatsAppTemplate:
        """Create a new template record."""
        template = WhatsAppTemplate(
            organization_id=organization_id,
            meta_id=meta_id,
            name=name,
            language=language,
            category=category,
            status=status.value if isinstance(status, TemplateStatus) else status,
            rejection_reason=rejection_reason,
            template_metadata=metadata or {},
        )
        self.db.add(template)
        self.db.flush()
        return template

    def upsert_template(
        self,
        organization_id: UUID,
        meta_id: str,
        **fields: Any,
    ) -> tuple[WhatsAppTemplate, str]:
        """
        Insert or update a template by (organization_id, meta_id).

        Only assigns attributes whose value actually differs, so re-syncing
        identical data leaves rows (and updated_at) untouched.

        Returns:
            Tuple of (template, outcome) where outcome is "created",
            "updated" or "unchanged".
        """
        unknown = set(fields) - set(TEMPLATE_SYNC_FIELDS)
        if unknown:
            raise ValueError(f"Unknown template fields: {', '.join(sorted(unknown))}")

        template = self.get_template(organization_id, meta_id)
        if template is None:
            template = WhatsAppTemplate(organization_id=organization_id, meta_id=meta_id, **fields)
            self.db.add(template)
            self.db.flush()
            return template, "created"

        changed = False
        for name, value in fields.items():
            if getattr(template, name) != value:
                setattr(template, name, value)
                changed = True
        return template, "updated" if changed else "unchanged"

    def update_template_fields(
        self,
        organization_id: UUID,
        meta_id: str,
        **fields: Any,
    ) -> int:
        """Update local templates matching meta_id. Returns the number of rows touched."""
        templates = (
            self.db.query(WhatsAppTemplate)
            .filter(
                WhatsAppTemplate.organization_id == organization_id,
                WhatsAppTemplate.meta_id == meta_id,
            )
            .all()
        )
        for template in templates:
            for name, value in fields.items():
                setattr(template, name, value)
        return len(templates)

    def delete_templates(self, organization_id: UUID, meta_id: str) -> int:
        """Delete local templates matching meta_id. Returns the number deleted."""
        return (
            self.db.query(WhatsAppTemplate)
            .filter(
                WhatsAppTemplate.organization_id == organization_id,
                WhatsAppTemplate.meta_id == meta_id,
            )
            .delete(synchronize_session="fetch")
        )

    def list_templates(self, organization_id: UUID) -> list[WhatsAppTemplate]:
        """List templates for an organization, newest first."""
        return (
            self.db.query(WhatsAppTemplate)
            .filter(WhatsAppTemplate.organization_id == organization_id)
            .order_by(WhatsAppTemplate.created_at.desc())
            .all()
        )

    # =========================================================================
    # Contacts
    # =========================================================================

    def get_contact(self, organization_id: UUID, phone: str) -> WhatsAppContact | None:
        return (
            self.db.query(WhatsAppContact)
            .filter(
                WhatsAppContact.organization_id == organization_id,
                WhatsAppContact.phone == phone,
            )
            .first()
        )

    def find_or_create_contact(
        self,
        organization_id: UUID,
        phone: str,
        **extra: Any,
    ) -> tuple[WhatsAppContact, bool]:
        """
        Get existing contact or create a new one.

        Empty enrichment values never overwrite stored ones.

        Returns:
            Tuple of (contact, created) where created is True if new.
        """
        extra = {k: v for k, v in extra.items() if v}
        contact = self.get_contact(organization_id, phone)
        if contact:
            for name, value in extra.items():
                if getattr(contact, name) != value:
                    setattr(contact, name, value)
            return contact, False

        contact = WhatsAppContact(organization_id=organization_id, phone=phone, **extra)
        self.db.add(contact)
        self.db.flush()
        return contact, True

    # =========================================================================
    # Messages
    # =========================================================================

    def get_message_by_wam_id(self, organization_id: UUID, wam_id: str) -> WhatsAppMessage | None:
        """Get message by provider message ID within a tenant."""
        return (
            self.db.query(WhatsAppMessage)
            .filter(
                WhatsAppMessage.organization_id == organization_id,
                WhatsAppMessage.wam_id == wam_id,
            )
            .first()
        )

    def create_message(
        self,
        organization_id: UUID,
        conversation_id: str,
        direction: MessageDirection,
        message_type: MessageType,
        status: MessageStatus,
        content: dict[str, Any],
        wam_id: str | None = None,
        contact_id: UUID | None = None,
        user_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> WhatsAppMessage:
        """Create a new message record."""
        message = WhatsAppMessage(
            organization_id=organization_id,
            conversation_id=conversation_id,
            direction=direction.value,
            type=message_type.value,
            status=status.value,
            content=content,
            wam_id=wam_id,
            contact_id=contact_id,
            user_id=user_id,
            timestamp=timestamp or utcnow(),
        )
        self.db.add(message)
        self.db.flush()
        return message

    def update_message_status(
        self,
        organization_id: UUID,
        wam_id: str,
        status: MessageStatus,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> WhatsAppMessage | None:
        """Update the status of the message with this provider id. None if unknown."""
        message = self.get_message_by_wam_id(organization_id, wam_id)
        if message is None:
            return None

        message.status = status.value
        if error_code:
            message.error_code = error_code
        if error_message:
            message.error_message = error_message
        return message

    def list_messages(
        self,
        organization_id: UUID,
        conversation_id: str,
        limit: int = 50,
    ) -> list[WhatsAppMessage]:
        """Get messages for a conversation, newest first."""
        return (
            self.db.query(WhatsAppMessage)
            .filter(
                WhatsAppMessage.organization_id == organization_id,
                WhatsAppMessage.conversation_id == conversation_id,
            )
            .order_by(WhatsAppMessage.timestamp.desc(), WhatsAppMessage.created_at.desc())
            .limit(limit)
            .all()
        )
