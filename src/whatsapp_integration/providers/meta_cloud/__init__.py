"""Meta Cloud API gateway and webhook helpers."""

from whatsapp_integration.providers.meta_cloud.client import MetaGraphGateway

__all__ = ["MetaGraphGateway"]
