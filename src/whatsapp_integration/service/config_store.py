"""
Config Store

Accessor/mutator for the per-tenant WhatsApp configuration kept at
organization.metadata["whatsapp"]. Other metadata keys are never touched.

Sensitive fields are Fernet-encrypted at rest when an encryption key is
configured; stored values carry a prefix so plaintext written before a key
was configured still reads back.
"""

import logging
from typing import Any
from uuid import UUID

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.exc import SQLAlchemyError

from whatsapp_integration.contracts.config import (
    REQUIRED_CONFIG_FIELDS,
    SENSITIVE_CONFIG_FIELDS,
    ConfigValidation,
    WhatsAppConfig,
)
from whatsapp_integration.core.settings import get_settings
from whatsapp_integration.errors import ConfigError, ConfigNotFound, OrganizationNotFound
from whatsapp_integration.persistence.repo import WhatsAppRepository

logger = logging.getLogger(__name__)

METADATA_KEY = "whatsapp"
ENCRYPTED_PREFIX = "fernet:"

HEALTHY_QUALITY_RATINGS = ("GREEN", "YELLOW")

FIELD_LABELS = {
    "access_token": "Access token",
    "app_id": "App ID",
    "waba_id": "WABA ID",
    "phone_number_id": "Phone Number ID",
}


class ConfigStore:
    """Reads and writes tenant WhatsApp configuration."""

    def __init__(self, repository: WhatsAppRepository, encryption_key: str | None = None):
        self.repo = repository
        if encryption_key is None:
            encryption_key = get_settings().WHATSAPP_ENCRYPTION_KEY
        self._fernet = Fernet(encryption_key.encode()) if encryption_key else None

    # =========================================================================
    # Accessors
    # =========================================================================

    def get(self, organization_id: UUID) -> WhatsAppConfig | None:
        """Get the tenant's config, or None if the tenant or its config is absent."""
        organization = self.repo.find_org(organization_id)
        if organization is None:
            return None

        raw = (organization.org_metadata or {}).get(METADATA_KEY)
        if not raw:
            return None

        return WhatsAppConfig.model_validate(self._decrypt_fields(raw))

    def store(self, organization_id: UUID, config: WhatsAppConfig) -> None:
        """
        Replace the tenant's config wholesale.

        Raises:
            OrganizationNotFound: If the tenant does not exist
        """
        organization = self.repo.find_org(organization_id)
        if organization is None:
            raise OrganizationNotFound(organization_id)

        metadata = dict(organization.org_metadata or {})
        metadata[METADATA_KEY] = self._encrypt_fields(config.to_storage())
        try:
            self.repo.update_org_metadata(organization, metadata)
            self.repo.commit()
        except SQLAlchemyError:
            self.repo.rollback()
            logger.error(
                f"Failed to store WhatsApp config for organization {organization_id}",
                exc_info=True,
            )
            raise

        logger.info(
            f"Stored WhatsApp config for organization {organization_id}",
            extra={
                "organization_id": str(organization_id),
                "is_embedded_signup": config.is_embedded_signup,
                "waba_id": config.waba_id,
            },
        )

    def update(self, organization_id: UUID, partial: WhatsAppConfig | dict[str, Any]) -> WhatsAppConfig:
        """
        Merge a partial config into the stored one.

        Top-level keys overwrite; business_profile is merged one level deep.

        Raises:
            ConfigNotFound: If nothing is stored yet
        """
        current = self.get(organization_id)
        if current is None:
            raise ConfigNotFound(organization_id)

        if isinstance(partial, WhatsAppConfig):
            changes = partial.model_dump(exclude_unset=True)
        else:
            changes = dict(partial)

        merged = current.model_dump(exclude_none=True)
        for key, value in changes.items():
            if key == "business_profile" and isinstance(value, dict):
                merged["business_profile"] = {**(merged.get("business_profile") or {}), **value}
            else:
                merged[key] = value

        config = WhatsAppConfig.model_validate(merged)
        self.store(organization_id, config)
        return config

    def require(self, organization_id: UUID) -> WhatsAppConfig:
        config = self.get(organization_id)
        if config is None:
            raise ConfigNotFound(organization_id)
        return config

    # =========================================================================
    # Reporting
    # =========================================================================

    def validate(self, organization_id: UUID) -> ConfigValidation:
        """Check a stored config for missing fields and unhealthy account state."""
        config = self.get(organization_id)
        if config is None:
            return ConfigValidation(is_valid=False, errors=["WhatsApp configuration not found"])

        errors = [
            f"{FIELD_LABELS[name]} is missing"
            for name in config.missing_fields(REQUIRED_CONFIG_FIELDS)
        ]
        warnings = []

        if config.account_review_status != "APPROVED":
            warnings.append(f"Account review status: {config.account_review_status}")
        if config.quality_rating and config.quality_rating not in HEALTHY_QUALITY_RATINGS:
            warnings.append(f"Quality rating: {config.quality_rating}")

        return ConfigValidation(is_valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def public_view(config: WhatsAppConfig) -> dict[str, Any]:
        """Config without credentials, for display."""
        data = config.model_dump(exclude_none=True)
        for name in SENSITIVE_CONFIG_FIELDS:
            data.pop(name, None)
        return data

    # =========================================================================
    # Encryption
    # =========================================================================

    def _encrypt_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        if self._fernet is None:
            return data
        result = dict(data)
        for name in SENSITIVE_CONFIG_FIELDS:
            value = result.get(name)
            if value and not str(value).startswith(ENCRYPTED_PREFIX):
                token = self._fernet.encrypt(str(value).encode()).decode()
                result[name] = f"{ENCRYPTED_PREFIX}{token}"
        return result

    def _decrypt_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        result = dict(data)
        for name in SENSITIVE_CONFIG_FIELDS:
            value = result.get(name)
            if not (isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)):
                continue
            if self._fernet is None:
                raise ConfigError(
                    f"Stored {name} is encrypted but WHATSAPP_ENCRYPTION_KEY is not set"
                )
            try:
                result[name] = self._fernet.decrypt(value[len(ENCRYPTED_PREFIX):].encode()).decode()
            except InvalidToken as e:
                logger.error(f"Failed to decrypt stored {name}")
                raise ConfigError(f"Stored {name} could not be decrypted") from e
        return result
