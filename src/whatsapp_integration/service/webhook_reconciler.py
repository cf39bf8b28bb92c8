"""
Webhook Reconciler

Applies Meta webhook payloads to local state for one organization:
1. Inbound messages -> contact get-or-create + INBOUND message row
2. Status updates   -> status of the matching outbound message

Every item is processed and committed on its own; a failing item is rolled
back, logged and counted without affecting its siblings.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from whatsapp_integration.persistence.models import (
    MessageDirection,
    MessageStatus,
    MessageType,
    Organization,
)
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers.base import DeliveryStatus, InboundMessage
from whatsapp_integration.providers.meta_cloud.webhook import (
    iter_change_values,
    parse_message,
    parse_status,
)

logger = logging.getLogger(__name__)

PROVIDER_TYPE_MAP = {
    "text": MessageType.TEXT,
    "image": MessageType.IMAGE,
    "sticker": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "document": MessageType.DOCUMENT,
    "location": MessageType.LOCATION,
    "contacts": MessageType.CONTACT,
    "interactive": MessageType.INTERACTIVE,
    "button": MessageType.INTERACTIVE,
}

STATUS_MAP = {
    "sent": MessageStatus.SENT,
    "delivered": MessageStatus.DELIVERED,
    "read": MessageStatus.READ,
    "failed": MessageStatus.FAILED,
}


def conversation_id_for(phone: str) -> str:
    return f"wa_{phone}"


@dataclass
class ReconciliationReport:
    messages_processed: int = 0
    statuses_processed: int = 0
    skipped: int = 0
    failures: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "messages_processed": self.messages_processed,
            "statuses_processed": self.statuses_processed,
            "skipped": self.skipped,
            "failures": self.failures,
        }


class WebhookReconciler:
    """Reconciles provider webhook events into the local store."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WhatsAppRepository(db)

    def process_payload(self, organization: Organization, payload: dict[str, Any]) -> ReconciliationReport:
        """
        Process a full webhook payload for an organization.

        Never raises for item-level problems.
        """
        report = ReconciliationReport()

        for waba_id, value in iter_change_values(payload):
            metadata = value.get("metadata") or {}
            contacts = value.get("contacts") or []

            for msg_data in self._items(report, organization, value, "messages"):
                self._apply(
                    report,
                    organization,
                    "message",
                    lambda: self._process_message(
                        organization, parse_message(waba_id, metadata, contacts, msg_data)
                    ),
                )

            for status_data in self._items(report, organization, value, "statuses"):
                self._apply(
                    report,
                    organization,
                    "status",
                    lambda: self._process_status(organization, parse_status(status_data)),
                )

        logger.info(
            f"Reconciled webhook for organization {organization.slug}",
            extra={"organization_id": str(organization.id), **report.to_dict()},
        )
        return report

    def _items(
        self, report: ReconciliationReport, organization: Organization, value: dict[str, Any], key: str
    ) -> list:
        """Item list under `key`; anything other than a list counts as one failure."""
        items = value.get(key) or []
        if isinstance(items, list):
            return items

        report.failures += 1
        logger.error(
            f"Webhook '{key}' is not a list",
            extra={"organization_id": str(organization.id), "item_kind": key},
        )
        return []

    def _apply(self, report: ReconciliationReport, organization: Organization, kind: str, handler) -> None:
        try:
            outcome = handler()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            report.failures += 1
            logger.error(
                f"Failed to process webhook {kind}: {e}",
                extra={"organization_id": str(organization.id), "item_kind": kind},
                exc_info=True,
            )
            return

        if outcome == "processed":
            if kind == "message":
                report.messages_processed += 1
            else:
                report.statuses_processed += 1
        else:
            report.skipped += 1

    def _process_message(self, organization: Organization, message: InboundMessage) -> str:
        if self.repo.get_message_by_wam_id(organization.id, message.message_id):
            logger.debug(f"Message {message.message_id} already processed, skipping")
            return "skipped"

        message_type = PROVIDER_TYPE_MAP.get(message.message_type)
        if message_type is None:
            logger.info(
                f"Storing unsupported inbound type '{message.message_type}' as text",
                extra={"organization_id": str(organization.id), "wam_id": message.message_id},
            )
            message_type = MessageType.TEXT

        contact, _ = self.repo.find_or_create_contact(
            organization.id,
            message.from_phone,
            profile_name=message.contact_name,
        )

        self.repo.create_message(
            organization_id=organization.id,
            conversation_id=conversation_id_for(message.from_phone),
            direction=MessageDirection.INBOUND,
            message_type=message_type,
            status=MessageStatus.DELIVERED,  # Inbound = already delivered
            content=message.raw_payload,
            wam_id=message.message_id,
            contact_id=contact.id,
            timestamp=message.timestamp,
        )
        return "processed"

    def _process_status(self, organization: Organization, status: DeliveryStatus) -> str:
        new_status = STATUS_MAP.get(status.status)
        if new_status is None:
            logger.info(
                f"Dropping unsupported status '{status.status}' for {status.message_id}",
                extra={"organization_id": str(organization.id)},
            )
            return "skipped"

        message = self.repo.update_message_status(
            organization.id,
            status.message_id,
            new_status,
            error_code=status.error_code,
            error_message=status.error_message,
        )
        if message is None:
            logger.warning(
                f"Dropping status '{status.status}' for unknown message {status.message_id}",
                extra={"organization_id": str(organization.id)},
            )
            return "skipped"

        return "processed"
