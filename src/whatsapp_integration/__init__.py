"""
WhatsApp Integration

Per-tenant WhatsApp Business (Meta Cloud API) onboarding, messaging and
webhook reconciliation.
"""

__version__ = "0.1.0"
