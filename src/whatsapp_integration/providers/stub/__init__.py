"""Stub gateway for development and tests."""

from whatsapp_integration.providers.stub.client import RecordedCall, StubGraphGateway

__all__ = ["RecordedCall", "StubGraphGateway"]
