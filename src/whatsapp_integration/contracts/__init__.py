"""
WhatsApp Integration Contracts

Configuration, onboarding and message payload models.
"""

from whatsapp_integration.contracts.config import (
    BusinessProfile,
    ConfigValidation,
    ManualSetupCredentials,
    OnboardingResult,
    WhatsAppConfig,
)
from whatsapp_integration.contracts.payloads import (
    ContactContent,
    InteractiveContent,
    LocationContent,
    MediaContent,
    SendMessageRequest,
    SendResult,
    TemplateContent,
    TextContent,
)

__all__ = [
    "BusinessProfile",
    "ConfigValidation",
    "ManualSetupCredentials",
    "OnboardingResult",
    "WhatsAppConfig",
    "ContactContent",
    "InteractiveContent",
    "LocationContent",
    "MediaContent",
    "SendMessageRequest",
    "SendResult",
    "TemplateContent",
    "TextContent",
]
