"""
Tenant Resolver

Resolves the tenant for webhook traffic from the callback URL slug and builds
the per-tenant callback URL registered with Meta.
"""

import logging
from uuid import UUID

from whatsapp_integration.core.settings import get_settings
from whatsapp_integration.errors import OrganizationNotFound
from whatsapp_integration.persistence.models import Organization
from whatsapp_integration.persistence.repo import WhatsAppRepository

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhook/whatsapp"


def build_callback_url(base_url: str, slug: str) -> str:
    """Per-tenant webhook URL: {base}/webhook/whatsapp/{slug}."""
    return f"{base_url.rstrip('/')}{WEBHOOK_PATH}/{slug}"


class TenantResolver:
    """
    Resolves organizations for webhook routing.

    The slug is both the callback path segment and the verify token.
    """

    def __init__(self, repository: WhatsAppRepository, webhook_base_url: str | None = None):
        self.repo = repository
        self.webhook_base_url = webhook_base_url or get_settings().WEBHOOK_BASE_URL

    def resolve_slug(self, slug: str) -> Organization | None:
        """
        Resolve an active organization from its slug.

        Returns:
            Organization if found and active, None otherwise
        """
        organization = self.repo.find_org_by_slug(slug)

        if organization:
            logger.debug(
                "Resolved tenant from slug",
                extra={"slug": slug, "organization_id": str(organization.id)},
            )
        else:
            logger.warning(f"No active organization found for slug: {slug}")

        return organization

    def webhook_config(self, organization_id: UUID) -> dict[str, str]:
        """
        Webhook URL and verify token an operator registers in the Meta dashboard.

        Raises:
            OrganizationNotFound: If the organization does not exist
        """
        organization = self.repo.find_org(organization_id)
        if organization is None:
            raise OrganizationNotFound(organization_id)

        return {
            "webhook_url": build_callback_url(self.webhook_base_url, organization.slug),
            "verify_token": organization.slug,
        }
