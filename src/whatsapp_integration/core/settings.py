"""
Integration settings.

All values come from the environment (or a local .env file). Only
DATABASE_URL is needed to boot; the WhatsApp system app credentials are
required by the guided (embedded signup) flow alone.
"""

import functools
from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class SystemAppConfig:
    """Credentials of the platform's own Meta app, used for embedded signup."""

    app_id: str
    client_id: str
    client_secret: str
    config_id: str


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql://localhost:5432/whatsapp_integration"
    LOG_LEVEL: str = "INFO"

    # Graph API ("meta" talks to Meta, "stub" records calls locally)
    WHATSAPP_GATEWAY: str = "meta"
    GRAPH_API_VERSION: str = "v20.0"
    GRAPH_API_BASE_URL: str = "https://graph.facebook.com"
    WHATSAPP_HTTP_TIMEOUT: float = 30.0

    # System app (embedded signup)
    WHATSAPP_APP_ID: str = ""
    WHATSAPP_CLIENT_ID: str = ""
    WHATSAPP_CLIENT_SECRET: str = ""
    WHATSAPP_CONFIG_ID: str = ""

    # Public URLs
    APP_URL: str = "http://localhost:3000"
    WEBHOOK_BASE_URL: str = "http://localhost:8090"

    # Webhooks
    WHATSAPP_WEBHOOK_VERIFY_TOKEN: str = ""
    WHATSAPP_APP_SECRET: str = ""  # Optional: enables X-Hub-Signature-256 checks

    # Fernet key for tokens at rest; empty means plaintext (development only)
    WHATSAPP_ENCRYPTION_KEY: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def redirect_uri(self) -> str:
        return f"{self.APP_URL.rstrip('/')}/api/whatsapp/exchange-code"

    def system_app_config(self) -> SystemAppConfig:
        return SystemAppConfig(
            app_id=self.WHATSAPP_APP_ID,
            client_id=self.WHATSAPP_CLIENT_ID,
            client_secret=self.WHATSAPP_CLIENT_SECRET,
            config_id=self.WHATSAPP_CONFIG_ID,
        )

    def missing_system_app_fields(self) -> list[str]:
        """Names of the embedded-signup env vars that are not set."""
        required = {
            "WHATSAPP_APP_ID": self.WHATSAPP_APP_ID,
            "WHATSAPP_CLIENT_ID": self.WHATSAPP_CLIENT_ID,
            "WHATSAPP_CLIENT_SECRET": self.WHATSAPP_CLIENT_SECRET,
            "WHATSAPP_CONFIG_ID": self.WHATSAPP_CONFIG_ID,
        }
        return [name for name, value in required.items() if not value]


@functools.lru_cache()
def get_settings() -> Settings:
    """Get settings (cached)."""
    return Settings()
