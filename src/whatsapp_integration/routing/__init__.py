"""Tenant resolution for webhook traffic."""

from whatsapp_integration.routing.tenant_resolver import TenantResolver, build_callback_url

__all__ = ["TenantResolver", "build_callback_url"]
