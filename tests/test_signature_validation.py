"""
Tests for webhook signature validation and the verification handshake.
"""

import hashlib
import hmac

from whatsapp_integration.providers.meta_cloud.webhook import (
    validate_signature,
    verify_webhook_challenge,
)


def _sign(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class TestSignatureValidation:
    """Tests for webhook signature validation."""

    def test_valid_signature(self):
        """Test valid HMAC-SHA256 signature validation."""
        app_secret = "test_secret_key"
        payload = b'{"test": "data"}'

        assert validate_signature(payload, f"sha256={_sign(payload, app_secret)}", app_secret) is True

    def test_invalid_signature(self):
        """Test invalid signature is rejected."""
        assert validate_signature(b'{"test": "data"}', "sha256=invalid_signature_here", "test_secret_key") is False

    def test_missing_signature_prefix(self):
        """Test signature without sha256= prefix is rejected."""
        app_secret = "test_secret_key"
        payload = b'{"test": "data"}'

        # Valid hash but wrong format
        assert validate_signature(payload, _sign(payload, app_secret), app_secret) is False

    def test_empty_signature(self):
        """Test empty signature is rejected."""
        assert validate_signature(b"payload", "", "secret") is False
        assert validate_signature(b"payload", None, "secret") is False

    def test_signature_from_other_secret(self):
        """Test a signature computed with another secret is rejected."""
        payload = b'{"object": "whatsapp_business_account"}'

        assert validate_signature(payload, f"sha256={_sign(payload, 'other')}", "my_app_secret") is False


class TestVerificationHandshake:
    """Tests for the hub.challenge handshake."""

    def test_matching_token_returns_challenge(self):
        """Test subscribe mode with the right token echoes the challenge."""
        assert verify_webhook_challenge("subscribe", "acme", "12345", "acme") == "12345"

    def test_wrong_token_rejected(self):
        """Test a mismatched token is rejected."""
        assert verify_webhook_challenge("subscribe", "other", "12345", "acme") is None

    def test_wrong_mode_rejected(self):
        """Test a mode other than subscribe is rejected."""
        assert verify_webhook_challenge("unsubscribe", "acme", "12345", "acme") is None

    def test_missing_token_rejected(self):
        """Test a request without a token is rejected."""
        assert verify_webhook_challenge("subscribe", None, "12345", "acme") is None

    def test_empty_expected_token_never_matches(self):
        """Test an unconfigured verify token rejects even an empty token."""
        assert verify_webhook_challenge("subscribe", "", "12345", "") is None
