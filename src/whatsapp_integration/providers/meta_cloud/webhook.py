"""
Meta Webhook Utilities

Verification handshake, signature validation and item-level parsing for
Meta Cloud API webhooks. Parsing is strict per item (malformed items raise
ValueError) so callers can isolate failures item by item.
"""

import hashlib
import hmac
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

from whatsapp_integration.providers.base import DeliveryStatus, InboundMessage

logger = logging.getLogger(__name__)


def verify_webhook_challenge(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    verify_token: str,
) -> str | None:
    """
    Handle the Meta webhook verification handshake.

    Returns the challenge when mode is "subscribe" and the token matches,
    None otherwise. The comparison is constant-time.
    """
    if (
        mode == "subscribe"
        and token is not None
        and verify_token
        and hmac.compare_digest(token.encode("utf-8"), verify_token.encode("utf-8"))
    ):
        logger.info("Webhook verification successful")
        return challenge if challenge is not None else ""

    logger.warning(f"Webhook verification failed: mode={mode}, token mismatch")
    return None


def validate_signature(
    payload: bytes,
    signature_header: str | None,
    app_secret: str,
) -> bool:
    """
    Validate Meta webhook signature.

    Args:
        payload: Raw request body bytes
        signature_header: X-Hub-Signature-256 header value
        app_secret: Facebook App Secret

    Returns:
        True if signature is valid
    """
    if not signature_header:
        logger.warning("Missing signature header")
        return False

    if not signature_header.startswith("sha256="):
        logger.warning("Invalid signature format")
        return False

    expected = signature_header[7:]

    computed = hmac.new(
        app_secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(computed, expected)


def iter_change_values(payload: dict[str, Any]) -> Iterator[tuple[str, dict[str, Any]]]:
    """
    Yield (waba_id, value) for every "messages" change in a webhook payload.

    Payload format:
    {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA_ID",
            "changes": [{
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"display_phone_number": "...", "phone_number_id": "..."},
                    "contacts": [...],
                    "messages": [...],
                    "statuses": [...]
                },
                "field": "messages"
            }]
        }]
    }

    Entries or changes that are not objects, and entries whose changes are
    not a list, are skipped with a warning.
    """
    if payload.get("object") != "whatsapp_business_account":
        logger.debug(f"Ignoring non-WhatsApp webhook: {payload.get('object')}")
        return

    entries = payload.get("entry") or []
    if not isinstance(entries, list):
        logger.warning("Webhook payload 'entry' is not a list, ignoring")
        return

    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed webhook entry")
            continue
        waba_id = str(entry.get("id", ""))

        changes = entry.get("changes") or []
        if not isinstance(changes, list):
            logger.warning("Skipping webhook entry whose changes are not a list", extra={"waba_id": waba_id})
            continue

        for change in changes:
            if not isinstance(change, dict):
                logger.warning("Skipping malformed webhook change", extra={"waba_id": waba_id})
                continue
            if change.get("field", "messages") != "messages":
                continue
            value = change.get("value")
            if isinstance(value, dict):
                yield waba_id, value


def _parse_timestamp(raw: Any) -> datetime:
    if raw is None or raw == "":
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(int(raw), tz=timezone.utc)


def parse_message(
    waba_id: str,
    metadata: dict[str, Any],
    contacts: list[dict[str, Any]],
    msg_data: dict[str, Any],
) -> InboundMessage:
    """
    Parse a single inbound message item.

    Raises:
        ValueError: If the item lacks an id or sender, or its timestamp is not numeric
    """
    if not isinstance(msg_data, dict):
        raise ValueError("Message item is not an object")

    message_id = msg_data.get("id")
    from_phone = msg_data.get("from")
    if not message_id or not from_phone:
        raise ValueError("Message item is missing 'id' or 'from'")

    msg_type = str(msg_data.get("type") or "unknown")

    contact = next(
        (c for c in contacts if isinstance(c, dict) and c.get("wa_id") == from_phone),
        contacts[0] if contacts else {},
    )
    contact_name = (contact.get("profile") or {}).get("name")

    text = None
    caption = None
    media_id = None

    if msg_type == "text":
        text = (msg_data.get("text") or {}).get("body")
    elif msg_type in ("image", "video", "audio", "document", "sticker"):
        media_data = msg_data.get(msg_type) or {}
        media_id = media_data.get("id")
        caption = media_data.get("caption")
    elif msg_type == "button":
        text = (msg_data.get("button") or {}).get("text")
    elif msg_type == "interactive":
        interactive = msg_data.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        text = reply.get("title")

    return InboundMessage(
        message_id=str(message_id),
        from_phone=str(from_phone),
        phone_number_id=str(metadata.get("phone_number_id", "")),
        waba_id=waba_id,
        message_type=msg_type,
        timestamp=_parse_timestamp(msg_data.get("timestamp")),
        text=text,
        caption=caption,
        media_id=media_id,
        context_message_id=(msg_data.get("context") or {}).get("id"),
        contact_name=contact_name,
        raw_payload=msg_data,
    )


def parse_status(status_data: dict[str, Any]) -> DeliveryStatus:
    """
    Parse a single status item.

    Raises:
        ValueError: If the item lacks an id or status
    """
    if not isinstance(status_data, dict):
        raise ValueError("Status item is not an object")

    message_id = status_data.get("id")
    status = status_data.get("status")
    if not message_id or not status:
        raise ValueError("Status item is missing 'id' or 'status'")

    error_code = None
    error_message = None
    errors = status_data.get("errors") or []
    if errors:
        error = errors[0]
        error_code = str(error.get("code", ""))
        error_message = error.get("message") or error.get("title")

    return DeliveryStatus(
        message_id=str(message_id),
        recipient_phone=str(status_data.get("recipient_id", "")),
        status=str(status),
        timestamp=_parse_timestamp(status_data.get("timestamp")),
        error_code=error_code,
        error_message=error_message,
        raw_payload=status_data,
    )
