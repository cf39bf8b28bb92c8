"""
WhatsApp Integration Persistence

SQLAlchemy models and repository for organizations, templates, contacts and messages.
"""

from whatsapp_integration.persistence.models import (
    MessageDirection,
    MessageStatus,
    MessageType,
    Organization,
    TemplateStatus,
    WhatsAppBase,
    WhatsAppContact,
    WhatsAppMessage,
    WhatsAppTemplate,
)
from whatsapp_integration.persistence.repo import WhatsAppRepository

__all__ = [
    "MessageDirection",
    "MessageStatus",
    "MessageType",
    "Organization",
    "TemplateStatus",
    "WhatsAppBase",
    "WhatsAppContact",
    "WhatsAppMessage",
    "WhatsAppRepository",
    "WhatsAppTemplate",
]
