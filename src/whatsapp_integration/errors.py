"""
WhatsApp Integration Errors

Domain exception hierarchy. Provider (Graph API) failures live in
whatsapp_integration.providers.base.ProviderError.
"""

from uuid import UUID


class WhatsAppError(Exception):
    """Base class for all integration errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SetupValidationError(WhatsAppError):
    """Caller supplied malformed or incomplete setup input."""

    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)


class TokenValidationError(WhatsAppError):
    """Access token was rejected or does not grant access to the WABA."""


class SystemConfigMissing(WhatsAppError):
    """System app credentials for embedded signup are not configured."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"WhatsApp system configuration is incomplete: {', '.join(missing)}"
        )


# =============================================================================
# Tenant configuration
# =============================================================================


class ConfigError(WhatsAppError):
    """Base class for tenant configuration problems."""


class OrganizationNotFound(ConfigError):
    def __init__(self, organization_id: UUID | str):
        self.organization_id = organization_id
        super().__init__(f"Organization {organization_id} not found")


class ConfigNotFound(ConfigError):
    def __init__(self, organization_id: UUID | str):
        self.organization_id = organization_id
        super().__init__(
            f"WhatsApp configuration not found for organization {organization_id}"
        )


class ConfigIncomplete(ConfigError):
    def __init__(self, organization_id: UUID | str, missing: list[str]):
        self.organization_id = organization_id
        self.missing = missing
        super().__init__(
            f"WhatsApp configuration incomplete for organization {organization_id}: "
            f"missing {', '.join(missing)}"
        )


# =============================================================================
# Provisioning / messaging
# =============================================================================


class NoPhoneNumbers(WhatsAppError):
    def __init__(self, waba_id: str):
        self.waba_id = waba_id
        super().__init__("No phone numbers found for this WhatsApp Business Account")


class PhoneNumberNotFound(WhatsAppError):
    def __init__(self, phone_number_id: str, waba_id: str):
        self.phone_number_id = phone_number_id
        self.waba_id = waba_id
        super().__init__(f"Phone number ID {phone_number_id} not found in WABA {waba_id}")


class UnsupportedMessageType(WhatsAppError):
    def __init__(self, message_type: str):
        self.message_type = message_type
        super().__init__(f"Unsupported message type: {message_type}")


class InvalidMessageContent(WhatsAppError):
    def __init__(self, message_type: str, detail: str):
        self.message_type = message_type
        self.detail = detail
        super().__init__(f"Invalid {message_type} message content: {detail}")
