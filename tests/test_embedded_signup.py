"""
Tests for guided onboarding (embedded signup).
"""

import pytest

from whatsapp_integration.core.settings import Settings
from whatsapp_integration.providers.base import ProviderError
from whatsapp_integration.service.embedded_signup import EmbeddedSignupService, extract_waba_id

from factories import PHONE_NUMBER_ID, WABA_ID, waba_lookup

SIGNUP_TOKEN = "EAAsignup"

SUCCESS_DATA = {
    "phone_number_id": PHONE_NUMBER_ID,
    "display_phone_number": "+1 555 0100",
    "verified_name": "Acme",
    "quality_rating": "GREEN",
    "account_review_status": "APPROVED",
    "business_profile": {"about": "We sell cement", "email": "hi@acme.test"},
}


@pytest.fixture
def meta_signup(gateway):
    """Stub gateway answering a complete embedded signup."""
    gateway.respond("POST", "oauth/access_token", {"access_token": SIGNUP_TOKEN, "token_type": "bearer"})
    gateway.respond(
        "GET",
        "debug_token",
        {"data": {"is_valid": True, "app_id": "111", "user_id": WABA_ID}},
    )
    gateway.respond(
        "GET",
        f"{WABA_ID}/phone_numbers",
        {
            "data": [
                {"id": PHONE_NUMBER_ID, "display_phone_number": "+1 555 0100", "verified_name": "Acme"},
                {"id": "2001", "display_phone_number": "+1 555 0101", "verified_name": "Acme 2"},
            ]
        },
    )
    gateway.respond(
        "GET",
        PHONE_NUMBER_ID,
        {"id": PHONE_NUMBER_ID, "quality_rating": "GREEN", "name_status": "APPROVED", "messaging_limit_tier": "TIER_1K"},
    )
    gateway.respond("GET", WABA_ID, waba_lookup())
    gateway.respond(
        "GET",
        f"{PHONE_NUMBER_ID}/whatsapp_business_profile",
        {"data": [{"about": "We sell cement", "email": "hi@acme.test"}]},
    )
    return gateway


@pytest.fixture
def service(repo, meta_signup, config_store, settings):
    return EmbeddedSignupService(repo, meta_signup, config_store=config_store, settings=settings)


def reject_callback_override(body, params):
    """subscribed_apps responder: subscription succeeds, callback override fails."""
    if body and "override_callback_uri" in body:
        raise ProviderError("Callback override not permitted", code="100", status_code=400)
    return {"success": True}


class TestWabaExtraction:
    """Tests for finding the WABA id in debug_token data."""

    def test_user_id(self):
        """Test user_id is preferred."""
        assert extract_waba_id({"user_id": 3000}) == "3000"

    def test_granular_scopes_fallback(self):
        """Test WhatsApp granular scopes are used when user_id is absent."""
        data = {
            "granular_scopes": [
                {"scope": "business_management", "target_ids": ["1"]},
                {"scope": "whatsapp_business_management", "target_ids": ["3000", "3001"]},
            ]
        }
        assert extract_waba_id(data) == "3000"

    def test_nothing_found(self):
        """Test None when no WABA id is present."""
        assert extract_waba_id({"granular_scopes": [{"scope": "email"}]}) is None


class TestSignupFlow:
    """Tests for handle_signup_flow."""

    @pytest.mark.asyncio
    async def test_successful_signup(self, service, gateway, config_store, organization_id):
        """Test a full signup stores config and returns the phone summary."""
        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is True
        assert result.warnings == []
        assert result.data == SUCCESS_DATA

        config = config_store.get(organization_id)
        assert config.is_embedded_signup is True
        assert config.access_token == SIGNUP_TOKEN
        assert config.app_id == "111"
        assert config.client_id == "111"
        assert config.client_secret == "system_secret"
        assert config.config_id == "cfg_1"
        assert config.waba_id == WABA_ID
        assert config.messaging_limit_tier == "TIER_1K"

    @pytest.mark.asyncio
    async def test_code_exchange_request(self, service, gateway, organization_id):
        """Test the code is exchanged with system credentials and redirect URI."""
        await service.handle_signup_flow("auth_code", organization_id)

        call = gateway.calls_to("oauth/access_token", "POST")[0]
        assert call.params == {
            "client_id": "111",
            "client_secret": "system_secret",
            "code": "auth_code",
            "redirect_uri": "https://app.example.com/api/whatsapp/exchange-code",
        }

    @pytest.mark.asyncio
    async def test_callback_override_targets_tenant_url(self, service, gateway, organization_id):
        """Test the callback override points at the tenant's slug URL."""
        await service.handle_signup_flow("auth_code", organization_id)

        bodies = [c.body for c in gateway.calls_to(f"{WABA_ID}/subscribed_apps", "POST") if c.body]
        assert bodies == [
            {
                "override_callback_uri": "https://hooks.example.com/webhook/whatsapp/acme",
                "verify_token": "acme",
            }
        ]

    @pytest.mark.asyncio
    async def test_no_phone_numbers(self, service, gateway, config_store, organization_id):
        """Test a WABA without phone numbers fails before anything is stored."""
        gateway.respond("GET", f"{WABA_ID}/phone_numbers", {"data": []})

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is False
        assert result.error == "No phone numbers found for this WhatsApp Business Account"
        assert config_store.get(organization_id) is None
        assert gateway.calls_to(f"{WABA_ID}/subscribed_apps") == []

    @pytest.mark.asyncio
    async def test_phone_number_without_id(self, service, gateway, config_store, organization_id):
        """Test a listed phone number without an id fails with a readable error."""
        gateway.respond("GET", f"{WABA_ID}/phone_numbers", {"data": [{"display_phone_number": "+1 555 0100"}]})

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is False
        assert result.error == "Phone number listed for the WhatsApp Business Account has no id"
        assert config_store.get(organization_id) is None

    @pytest.mark.asyncio
    async def test_code_exchange_failure(self, service, gateway, config_store, organization_id):
        """Test a rejected authorization code fails with the provider message."""
        gateway.respond("POST", "oauth/access_token", ProviderError("Invalid verification code format."))

        result = await service.handle_signup_flow("bad_code", organization_id)

        assert result.success is False
        assert result.error == "Invalid verification code format."
        assert config_store.get(organization_id) is None

    @pytest.mark.asyncio
    async def test_invalid_token(self, service, gateway, config_store, organization_id):
        """Test a token reported invalid by debug_token aborts the flow."""
        gateway.respond("GET", "debug_token", {"data": {"is_valid": False}})

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is False
        assert result.error == "Access token is invalid or expired"
        assert config_store.get(organization_id) is None

    @pytest.mark.asyncio
    async def test_granular_scope_waba(self, service, gateway, config_store, organization_id):
        """Test the WABA id is taken from granular scopes when user_id is absent."""
        gateway.respond(
            "GET",
            "debug_token",
            {
                "data": {
                    "is_valid": True,
                    "app_id": "111",
                    "granular_scopes": [{"scope": "whatsapp_business_messaging", "target_ids": [WABA_ID]}],
                }
            },
        )

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is True
        assert config_store.get(organization_id).waba_id == WABA_ID

    @pytest.mark.asyncio
    async def test_callback_override_failure_is_warning(self, service, gateway, config_store, organization_id):
        """Test a failed callback override still succeeds with a warning."""
        gateway.respond("POST", f"{WABA_ID}/subscribed_apps", reject_callback_override)

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is True
        assert result.data == SUCCESS_DATA
        assert result.warnings == ["callback_override: Callback override not permitted"]
        assert config_store.get(organization_id) is not None

    @pytest.mark.asyncio
    async def test_subscription_failure_is_fatal(self, service, gateway, config_store, organization_id):
        """Test a failed webhook subscription aborts before storing."""
        gateway.respond("POST", f"{WABA_ID}/subscribed_apps", ProviderError("Subscription failed"))

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is False
        assert result.error == "Subscription failed"
        assert config_store.get(organization_id) is None

    @pytest.mark.asyncio
    async def test_business_profile_best_effort(self, service, gateway, config_store, organization_id):
        """Test a failing profile lookup leaves an empty profile and a warning."""
        gateway.respond(
            "GET", f"{PHONE_NUMBER_ID}/whatsapp_business_profile", ProviderError("Profile unavailable")
        )

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is True
        assert result.data["business_profile"] == {}
        assert result.warnings == ["business_profile: Profile unavailable"]

    @pytest.mark.asyncio
    async def test_phone_registered_with_pin(self, service, gateway, organization_id):
        """Test the phone number is registered only when a PIN is given."""
        await service.handle_signup_flow("auth_code", organization_id, pin="123456")

        call = gateway.calls_to(f"{PHONE_NUMBER_ID}/register", "POST")[0]
        assert call.body == {"messaging_product": "whatsapp", "pin": "123456"}

    @pytest.mark.asyncio
    async def test_no_registration_without_pin(self, service, gateway, organization_id):
        """Test no registration call is made without a PIN."""
        await service.handle_signup_flow("auth_code", organization_id)

        assert gateway.calls_to(f"{PHONE_NUMBER_ID}/register") == []

    @pytest.mark.asyncio
    async def test_defaults_for_missing_status(self, service, gateway, config_store, organization_id):
        """Test absent phone and review fields fall back to defaults."""
        gateway.respond("GET", PHONE_NUMBER_ID, {"id": PHONE_NUMBER_ID})
        gateway.respond("GET", WABA_ID, {"id": WABA_ID})

        await service.handle_signup_flow("auth_code", organization_id)

        config = config_store.get(organization_id)
        assert config.quality_rating == "UNKNOWN"
        assert config.name_status == "UNVERIFIED"
        assert config.messaging_limit_tier == "TIER_1000"
        assert config.account_review_status == "PENDING"

    @pytest.mark.asyncio
    async def test_templates_synced(self, service, gateway, repo, organization_id):
        """Test templates are pulled after the config is stored."""
        gateway.respond(
            "GET",
            f"{WABA_ID}/message_templates",
            {"data": [{"id": "tpl_1", "name": "order_update", "category": "utility", "status": "APPROVED"}]},
        )

        await service.handle_signup_flow("auth_code", organization_id)

        template = repo.get_template(organization_id, "tpl_1")
        assert template.category == "UTILITY"
        assert template.language == "en"
        assert template.status == "APPROVED"

    @pytest.mark.asyncio
    async def test_missing_system_config(self, repo, gateway, config_store, organization_id):
        """Test missing system app credentials fail before any provider call."""
        settings = Settings(_env_file=None, WHATSAPP_CLIENT_SECRET="s", WHATSAPP_CLIENT_ID="c")
        service = EmbeddedSignupService(repo, gateway, config_store=config_store, settings=settings)

        result = await service.handle_signup_flow("auth_code", organization_id)

        assert result.success is False
        assert "WHATSAPP_APP_ID" in result.error
        assert "WHATSAPP_CONFIG_ID" in result.error
        assert gateway.calls == []


class TestValidateConfig:
    """Tests for validate_config."""

    @pytest.mark.asyncio
    async def test_manual_config_skips_token_check(self, service, gateway, configured_org):
        """Test configs without app credentials are only checked locally."""
        result = await service.validate_config(configured_org.id)

        assert result.is_valid is True
        assert gateway.calls_to("debug_token") == []

    @pytest.mark.asyncio
    async def test_expired_token(self, service, gateway, config_store, organization_id, complete_config):
        """Test an expired token is reported as an error."""
        config_store.store(organization_id, complete_config.model_copy(update={"client_secret": "system_secret"}))
        gateway.respond("GET", "debug_token", {"data": {"is_valid": False}})

        result = await service.validate_config(organization_id)

        assert result.is_valid is False
        assert result.errors == ["Access token is invalid or expired"]

    @pytest.mark.asyncio
    async def test_token_check_error(self, service, gateway, config_store, organization_id, complete_config):
        """Test a failing token check counts as an invalid token."""
        config_store.store(organization_id, complete_config.model_copy(update={"client_secret": "system_secret"}))
        gateway.respond("GET", "debug_token", ProviderError("Invalid OAuth access token."))

        result = await service.validate_config(organization_id)

        assert result.errors == ["Access token is invalid or expired"]

    @pytest.mark.asyncio
    async def test_missing_config(self, service, organization_id):
        """Test validating an unconfigured tenant."""
        result = await service.validate_config(organization_id)

        assert result.is_valid is False
        assert result.errors == ["WhatsApp configuration not found"]
