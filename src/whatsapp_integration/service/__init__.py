"""
WhatsApp Service Layer

Onboarding (guided and manual), messaging and webhook reconciliation.
"""

from whatsapp_integration.service.config_store import ConfigStore
from whatsapp_integration.service.embedded_signup import EmbeddedSignupService
from whatsapp_integration.service.manual_setup import ManualSetupService
from whatsapp_integration.service.messaging import WhatsAppService
from whatsapp_integration.service.webhook_reconciler import ReconciliationReport, WebhookReconciler

__all__ = [
    "ConfigStore",
    "EmbeddedSignupService",
    "ManualSetupService",
    "ReconciliationReport",
    "WebhookReconciler",
    "WhatsAppService",
]
