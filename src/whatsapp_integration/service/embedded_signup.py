"""
Embedded Signup (guided onboarding)

Turns an OAuth authorization code from Meta's embedded signup dialog into a
stored tenant configuration:

 1. CodeExchange        (fatal)
 2. TokenDebug          (fatal)  app id + WABA id
 3. PhoneDiscovery      (fatal)  first number of the WABA
 4. PhoneStatus         (fatal)
 5. AccountReview       (fatal)
 6. PhoneRegistration   (fatal, only when a PIN is given)
 7. BusinessProfile     (best-effort)
 8. WebhookSubscribe    (fatal)
 9. Persist             (fatal)  the only write
10. CallbackOverride    (best-effort)
11. TemplateSync        (best-effort)

Nothing is written unless every fatal step up to Persist succeeds.
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from whatsapp_integration.contracts.config import ConfigValidation, OnboardingResult, WhatsAppConfig
from whatsapp_integration.core.settings import Settings, SystemAppConfig, get_settings
from whatsapp_integration.errors import (
    NoPhoneNumbers,
    OrganizationNotFound,
    SystemConfigMissing,
    TokenValidationError,
)
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers.base import GraphGateway, ProviderError
from whatsapp_integration.routing.tenant_resolver import build_callback_url
from whatsapp_integration.service.config_store import ConfigStore
from whatsapp_integration.service.messaging import WhatsAppService
from whatsapp_integration.service.steps import Step, StepRunner

logger = logging.getLogger(__name__)

WHATSAPP_MANAGEMENT_SCOPES = ("whatsapp_business_management", "whatsapp_business_messaging")


@dataclass
class SignupContext:
    """State threaded through the signup steps."""

    authorization_code: str
    organization_id: UUID
    pin: str | None = None

    system: SystemAppConfig | None = None
    access_token: str | None = None
    app_id: str | None = None
    waba_id: str | None = None
    phone_number_id: str | None = None
    display_phone_number: str | None = None
    verified_name: str | None = None
    quality_rating: str | None = None
    name_status: str | None = None
    messaging_limit_tier: str | None = None
    account_review_status: str | None = None
    business_profile: dict[str, Any] = field(default_factory=dict)
    config: WhatsAppConfig | None = None

    def result_data(self) -> dict[str, Any]:
        return {
            "phone_number_id": self.phone_number_id,
            "display_phone_number": self.display_phone_number,
            "verified_name": self.verified_name,
            "quality_rating": self.quality_rating,
            "account_review_status": self.account_review_status,
            "business_profile": self.business_profile,
        }


def extract_waba_id(debug_data: dict[str, Any]) -> str | None:
    """
    WABA id from a debug_token payload.

    Uses `user_id`; falls back to the first WhatsApp-scoped granular target id.
    """
    if debug_data.get("user_id"):
        return str(debug_data["user_id"])

    for scope in debug_data.get("granular_scopes") or []:
        if scope.get("scope") in WHATSAPP_MANAGEMENT_SCOPES and scope.get("target_ids"):
            return str(scope["target_ids"][0])
    return None


class EmbeddedSignupService:
    """Guided onboarding orchestrator."""

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
        self.runner: StepRunner[SignupContext] = StepRunner(self._steps(), name="embedded_signup")

    def _steps(self) -> list[Step[SignupContext]]:
        return [
            Step("code_exchange", self._exchange_code),
            Step("token_debug", self._debug_token),
            Step("phone_discovery", self._discover_phone_number),
            Step("phone_status", self._fetch_phone_status),
            Step("account_review", self._fetch_account_review),
            Step("phone_registration", self._register_phone_number, condition=lambda ctx: bool(ctx.pin)),
            Step("business_profile", self._fetch_business_profile, fatal=False),
            Step("webhook_subscribe", self._subscribe_webhooks),
            Step("persist", self._persist),
            Step("callback_override", self._override_callback_url, fatal=False),
            Step("template_sync", self._sync_templates, fatal=False),
        ]

    async def handle_signup_flow(
        self,
        authorization_code: str,
        organization_id: UUID,
        pin: str | None = None,
    ) -> OnboardingResult:
        """
        Run the guided onboarding.

        Never raises for step failures: a fatal failure comes back as a failed
        OnboardingResult carrying the failing step's message.
        """
        context = SignupContext(
            authorization_code=authorization_code,
            organization_id=organization_id,
            pin=pin,
        )
        report = await self.runner.run(context)

        if not report.success:
            error = report.error
            message = getattr(error, "message", None) or str(error) or "Failed to complete embedded signup"
            logger.error(
                f"Embedded signup failed at {report.failed_step}: {message}",
                extra={"organization_id": str(organization_id), "step": report.failed_step},
            )
            return OnboardingResult.failed(message, warnings=report.warnings)

        logger.info(
            f"Embedded signup completed for organization {organization_id}",
            extra={
                "organization_id": str(organization_id),
                "waba_id": context.waba_id,
                "phone_number_id": context.phone_number_id,
                "warnings": len(report.warnings),
            },
        )
        return OnboardingResult.ok(context.result_data(), warnings=report.warnings)

    # =========================================================================
    # Steps
    # =========================================================================

    async def _exchange_code(self, ctx: SignupContext) -> None:
        missing = self.settings.missing_system_app_fields()
        if missing:
            raise SystemConfigMissing(missing)
        ctx.system = self.settings.system_app_config()

        response = await self.gateway.exchange_code_for_token(
            ctx.authorization_code,
            ctx.system.client_id,
            ctx.system.client_secret,
            self.settings.redirect_uri,
        )
        ctx.access_token = response.get("access_token")
        if not ctx.access_token:
            raise TokenValidationError("Authorization code exchange returned no access token")

    async def _debug_token(self, ctx: SignupContext) -> None:
        response = await self.gateway.debug_token(
            ctx.access_token, ctx.system.app_id, ctx.system.client_secret
        )
        data = response.get("data") or {}

        if data.get("is_valid") is False:
            raise TokenValidationError("Access token is invalid or expired")

        ctx.app_id = str(data.get("app_id") or ctx.system.app_id)
        ctx.waba_id = extract_waba_id(data)
        if not ctx.waba_id:
            raise TokenValidationError("Could not determine the WhatsApp Business Account from the token")

    async def _discover_phone_number(self, ctx: SignupContext) -> None:
        response = await self.gateway.get_waba_phone_numbers(ctx.waba_id, ctx.access_token)
        phone_numbers = response.get("data") or []
        if not phone_numbers:
            raise NoPhoneNumbers(ctx.waba_id)

        phone_number = phone_numbers[0]
        if not isinstance(phone_number, dict) or not phone_number.get("id"):
            raise ProviderError("Phone number listed for the WhatsApp Business Account has no id")
        ctx.phone_number_id = str(phone_number["id"])
        ctx.display_phone_number = phone_number.get("display_phone_number")
        ctx.verified_name = phone_number.get("verified_name")

    async def _fetch_phone_status(self, ctx: SignupContext) -> None:
        details = await self.gateway.get_phone_number_details(ctx.phone_number_id, ctx.access_token)
        ctx.quality_rating = details.get("quality_rating") or "UNKNOWN"
        ctx.name_status = details.get("name_status") or "UNVERIFIED"
        ctx.messaging_limit_tier = details.get("messaging_limit_tier") or "TIER_1000"

    async def _fetch_account_review(self, ctx: SignupContext) -> None:
        response = await self.gateway.get_account_review_status(ctx.waba_id, ctx.access_token)
        ctx.account_review_status = response.get("account_review_status") or "PENDING"

    async def _register_phone_number(self, ctx: SignupContext) -> None:
        await self.gateway.register_phone_number(ctx.phone_number_id, ctx.access_token, ctx.pin)

    async def _fetch_business_profile(self, ctx: SignupContext) -> None:
        response = await self.gateway.get_business_profile(ctx.phone_number_id, ctx.access_token)
        ctx.business_profile = (response.get("data") or [{}])[0]

    async def _subscribe_webhooks(self, ctx: SignupContext) -> None:
        await self.gateway.subscribe_to_waba(ctx.waba_id, ctx.access_token)

    async def _persist(self, ctx: SignupContext) -> None:
        ctx.config = WhatsAppConfig(
            is_embedded_signup=True,
            access_token=ctx.access_token,
            app_id=ctx.app_id,
            client_id=ctx.system.client_id,
            client_secret=ctx.system.client_secret,
            config_id=ctx.system.config_id,
            waba_id=ctx.waba_id,
            phone_number_id=ctx.phone_number_id,
            display_phone_number=ctx.display_phone_number,
            verified_name=ctx.verified_name,
            quality_rating=ctx.quality_rating,
            name_status=ctx.name_status,
            messaging_limit_tier=ctx.messaging_limit_tier,
            account_review_status=ctx.account_review_status,
            business_profile=ctx.business_profile,
        )
        self.config_store.store(ctx.organization_id, ctx.config)

    async def _override_callback_url(self, ctx: SignupContext) -> None:
        organization = self.repo.find_org(ctx.organization_id)
        if organization is None:
            raise OrganizationNotFound(ctx.organization_id)

        callback_url = build_callback_url(self.settings.WEBHOOK_BASE_URL, organization.slug)
        await self.gateway.override_callback_url(
            ctx.waba_id, ctx.access_token, callback_url, organization.slug
        )
        logger.info(
            f"Callback URL set to {callback_url}",
            extra={"organization_id": str(ctx.organization_id), "waba_id": ctx.waba_id},
        )

    async def _sync_templates(self, ctx: SignupContext) -> None:
        await self.sync_templates(ctx.organization_id)

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def sync_templates(self, organization_id: UUID) -> int:
        service = WhatsAppService(organization_id, self.repo, self.gateway, self.config_store)
        return await service.sync_templates()

    async def validate_config(self, organization_id: UUID) -> ConfigValidation:
        """Stored-config checks plus a live token check when app credentials are stored."""
        validation = self.config_store.validate(organization_id)
        config = self.config_store.get(organization_id)
        if config is None:
            return validation

        errors = list(validation.errors)
        if config.access_token and config.app_id and config.client_secret:
            try:
                response = await self.gateway.debug_token(
                    config.access_token, config.app_id, config.client_secret
                )
                if (response.get("data") or {}).get("is_valid") is False:
                    errors.append("Access token is invalid or expired")
            except ProviderError as e:
                logger.warning(
                    f"Token check failed: {e}",
                    extra={"organization_id": str(organization_id)},
                )
                errors.append("Access token is invalid or expired")

        return ConfigValidation(is_valid=not errors, errors=errors, warnings=validation.warnings)
