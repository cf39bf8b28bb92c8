"""
WhatsApp Configuration Models

Per-tenant configuration stored at organization.metadata["whatsapp"], plus
the input/outcome models of the onboarding flows.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Must all be present before any messaging operation
REQUIRED_CONFIG_FIELDS = ("access_token", "app_id", "waba_id", "phone_number_id")

# Never shown outside the store
SENSITIVE_CONFIG_FIELDS = ("access_token", "client_secret")


class BusinessProfile(BaseModel):
    """WhatsApp Business profile as returned by the Graph API."""

    model_config = ConfigDict(extra="allow")

    about: str | None = None
    address: str | None = None
    description: str | None = None
    email: str | None = None
    profile_picture_url: str | None = None
    websites: list[str] | None = None
    vertical: str | None = None


class WhatsAppConfig(BaseModel):
    """
    Tenant WhatsApp configuration.

    Unknown keys already present in stored metadata are kept on round-trip.
    """

    model_config = ConfigDict(extra="allow")

    is_embedded_signup: bool = Field(False, description="True when provisioned via guided signup")
    access_token: str | None = None
    app_id: str | None = None

    # Guided signup only
    client_id: str | None = None
    client_secret: str | None = None
    config_id: str | None = None

    waba_id: str | None = Field(None, description="WhatsApp Business Account ID")
    phone_number_id: str | None = None
    display_phone_number: str | None = None
    verified_name: str | None = None
    quality_rating: str | None = None
    name_status: str | None = None
    messaging_limit_tier: str | None = None
    number_status: str | None = None
    code_verification_status: str | None = Field(None, description="Manual setup only")
    account_review_status: str | None = None
    business_profile: BusinessProfile | None = None

    def missing_fields(self, fields: tuple[str, ...] = REQUIRED_CONFIG_FIELDS) -> list[str]:
        return [name for name in fields if not getattr(self, name, None)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ConfigValidation(BaseModel):
    """Outcome of validating a stored configuration."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ManualSetupCredentials(BaseModel):
    """Credentials entered by an operator for manual setup. Checked by the flow itself."""

    access_token: str | None = None
    app_id: str | None = None
    phone_number_id: str | None = None
    waba_id: str | None = None


class OnboardingResult(BaseModel):
    """
    Outcome of the guided signup flow.

    On failure `error` carries the message of the step that aborted the run.
    Best-effort step failures never fail the run; they land in `warnings`.
    """

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: dict[str, Any], warnings: list[str] | None = None) -> "OnboardingResult":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def failed(cls, error: str, warnings: list[str] | None = None) -> "OnboardingResult":
        return cls(success=False, error=error, warnings=warnings or [])
