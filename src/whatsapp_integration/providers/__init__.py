"""
Graph API Gateways

Meta Cloud API (production) and Stub (development).
"""

from whatsapp_integration.core.settings import get_settings
from whatsapp_integration.providers.base import (
    DeliveryStatus,
    GraphGateway,
    InboundMessage,
    ProviderError,
)
from whatsapp_integration.providers.meta_cloud.client import MetaGraphGateway
from whatsapp_integration.providers.stub.client import StubGraphGateway


def get_gateway(gateway_type: str | None = None) -> GraphGateway:
    """
    Get the configured gateway.

    Uses WHATSAPP_GATEWAY from settings when gateway_type is not specified.
    """
    gateway_type = gateway_type or get_settings().WHATSAPP_GATEWAY

    if gateway_type == "stub":
        return StubGraphGateway()
    return MetaGraphGateway()


__all__ = [
    "DeliveryStatus",
    "GraphGateway",
    "InboundMessage",
    "MetaGraphGateway",
    "ProviderError",
    "StubGraphGateway",
    "get_gateway",
]
