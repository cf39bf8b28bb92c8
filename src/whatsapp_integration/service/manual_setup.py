"""
Manual WhatsApp Setup

Operator-entered credentials (token, app id, phone number id, WABA id) are
checked locally, verified against the Graph API and stored as the tenant's
configuration with is_embedded_signup=False.
"""

import logging
from typing import Any
from uuid import UUID

from whatsapp_integration.contracts.config import (
    BusinessProfile,
    ManualSetupCredentials,
    WhatsAppConfig,
)
from whatsapp_integration.core.settings import Settings, get_settings
from whatsapp_integration.errors import (
    ConfigNotFound,
    PhoneNumberNotFound,
    SetupValidationError,
    TokenValidationError,
)
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers.base import GraphGateway, ProviderError
from whatsapp_integration.routing.tenant_resolver import TenantResolver
from whatsapp_integration.service.config_store import ConfigStore
from whatsapp_integration.service.messaging import WhatsAppService

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("access_token", "app_id", "phone_number_id", "waba_id")
NUMERIC_FIELDS = ("app_id", "phone_number_id", "waba_id")
ACCESS_TOKEN_PREFIX = "EAA"

PHONE_STATUS_FIELDS = "status,code_verification_status"
MANUAL_PROFILE_FIELDS = ("about", "address", "description", "vertical", "email")


def validate_credentials(credentials: ManualSetupCredentials) -> None:
    """
    Check credentials before any network call.

    Raises:
        SetupValidationError: Naming the missing or malformed field(s)
    """
    missing = [name for name in CREDENTIAL_FIELDS if not getattr(credentials, name)]
    if missing:
        raise SetupValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    if not credentials.access_token.startswith(ACCESS_TOKEN_PREFIX):
        raise SetupValidationError(
            f'Invalid access token format. Should start with "{ACCESS_TOKEN_PREFIX}"',
            fields=["access_token"],
        )

    for name in NUMERIC_FIELDS:
        value = getattr(credentials, name)
        if not (value.isascii() and value.isdigit()):
            raise SetupValidationError(f"Invalid {name} format. Should be numeric", fields=[name])


class ManualSetupService:
    """Manual onboarding orchestrator."""

    def __init__(
        self,
        repository: WhatsAppRepository,
        gateway: GraphGateway,
        config_store: ConfigStore | None = None,
        settings: Settings | None = None,
    ):
        self.repo = repository
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.config_store = config_store or ConfigStore(
            repository, encryption_key=self.settings.WHATSAPP_ENCRYPTION_KEY
        )

    async def setup_manual_configuration(
        self,
        organization_id: UUID,
        credentials: ManualSetupCredentials,
    ) -> WhatsAppConfig:
        """
        Validate, verify and store manually entered credentials.

        Raises:
            SetupValidationError: Malformed input (no network call made)
            TokenValidationError: Token rejected or not valid for the WABA
            PhoneNumberNotFound: Phone number is not part of the WABA
            ProviderError: Any other Graph API failure
            OrganizationNotFound: Tenant does not exist
        """
        validate_credentials(credentials)

        access_token = credentials.access_token
        waba_id = credentials.waba_id
        phone_number_id = credentials.phone_number_id

        await self._verify_access_token(access_token, waba_id)

        phone_numbers = await self.gateway.get_waba_phone_numbers(waba_id, access_token)
        phone_number = next(
            (p for p in phone_numbers.get("data") or [] if str(p.get("id")) == phone_number_id),
            None,
        )
        if phone_number is None:
            raise PhoneNumberNotFound(phone_number_id, waba_id)

        phone_status = await self.gateway.get_phone_number_details(
            phone_number_id, access_token, fields=PHONE_STATUS_FIELDS
        )
        review = await self.gateway.get_account_review_status(waba_id, access_token)
        profile_response = await self.gateway.get_business_profile(phone_number_id, access_token)

        config = WhatsAppConfig(
            is_embedded_signup=False,
            access_token=access_token,
            app_id=credentials.app_id,
            phone_number_id=phone_number_id,
            waba_id=waba_id,
            display_phone_number=phone_number.get("display_phone_number"),
            verified_name=phone_number.get("verified_name"),
            quality_rating=phone_number.get("quality_rating"),
            name_status=phone_number.get("name_status"),
            messaging_limit_tier=phone_number.get("messaging_limit_tier"),
            number_status=phone_status.get("status"),
            code_verification_status=phone_status.get("code_verification_status"),
            account_review_status=review.get("account_review_status"),
            business_profile=self._business_profile(profile_response),
        )

        self.config_store.store(organization_id, config)
        logger.info(
            f"Manual WhatsApp setup stored for organization {organization_id}",
            extra={"organization_id": str(organization_id), "waba_id": waba_id},
        )

        try:
            service = WhatsAppService(organization_id, self.repo, self.gateway, self.config_store)
            await service.sync_templates()
        except Exception as e:
            logger.warning(
                f"Template sync failed during setup: {e}",
                extra={"organization_id": str(organization_id)},
            )

        return config

    async def refresh_configuration(self, organization_id: UUID) -> WhatsAppConfig:
        """Re-run setup with the stored credentials to refresh account data."""
        config = self.config_store.get(organization_id)
        if config is None:
            raise ConfigNotFound(organization_id)

        return await self.setup_manual_configuration(organization_id, self._credentials_from(config))

    async def update_access_token(self, organization_id: UUID, access_token: str) -> WhatsAppConfig:
        """Re-run setup with a new token and the stored ids."""
        config = self.config_store.get(organization_id)
        if config is None:
            raise ConfigNotFound(organization_id)

        credentials = self._credentials_from(config)
        credentials.access_token = access_token
        return await self.setup_manual_configuration(organization_id, credentials)

    def get_webhook_config(self, organization_id: UUID) -> dict[str, str]:
        """Webhook URL and verify token to enter in the Meta app dashboard."""
        resolver = TenantResolver(self.repo, webhook_base_url=self.settings.WEBHOOK_BASE_URL)
        return resolver.webhook_config(organization_id)

    async def _verify_access_token(self, access_token: str, waba_id: str) -> None:
        try:
            response = await self.gateway.get_waba_identity(waba_id, access_token)
        except ProviderError as e:
            message = e.message or ""
            if "Invalid OAuth access token" in message:
                raise TokenValidationError(
                    "Invalid access token. Please generate a new token from Facebook Developer Console."
                ) from e
            if "Insufficient permissions" in message:
                raise TokenValidationError(
                    "Access token does not have sufficient permissions for WhatsApp Business API."
                ) from e
            raise TokenValidationError(f"Token validation failed: {message}") from e

        if str(response.get("id", "")) != waba_id:
            raise TokenValidationError(
                "Access token does not have permission to access the specified WABA"
            )

    @staticmethod
    def _business_profile(response: dict[str, Any]) -> BusinessProfile:
        profile = (response.get("data") or [{}])[0]
        return BusinessProfile(**{name: profile.get(name) or "" for name in MANUAL_PROFILE_FIELDS})

    @staticmethod
    def _credentials_from(config: WhatsAppConfig) -> ManualSetupCredentials:
        return ManualSetupCredentials(
            access_token=config.access_token,
            app_id=config.app_id,
            phone_number_id=config.phone_number_id,
            waba_id=config.waba_id,
        )
