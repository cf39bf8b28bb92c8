"""
Tests for applying webhook payloads to tenant state.
"""

import pytest

from whatsapp_integration.persistence.models import (
    MessageDirection,
    MessageStatus,
    MessageType,
    WhatsAppContact,
    WhatsAppMessage,
)
from whatsapp_integration.service.webhook_reconciler import WebhookReconciler

from factories import WABA_ID, status_webhook, text_message_webhook


@pytest.fixture
def reconciler(db_session):
    return WebhookReconciler(db_session)


@pytest.fixture
def outbound_message(repo, organization):
    """A previously sent message awaiting status updates."""
    message = repo.create_message(
        organization_id=organization.id,
        conversation_id="conv_1",
        direction=MessageDirection.OUTBOUND,
        message_type=MessageType.TEXT,
        status=MessageStatus.SENT,
        content={"body": "Seu pedido saiu"},
        wam_id="wamid.OUT1",
    )
    repo.commit()
    return message


class TestInboundMessages:
    """Tests for inbound message reconciliation."""

    def test_creates_contact_and_message(self, reconciler, repo, organization, sample_phone):
        """Test an inbound text creates the contact and an INBOUND message."""
        report = reconciler.process_payload(organization, text_message_webhook(from_phone=sample_phone))

        assert report.messages_processed == 1
        assert report.failures == 0

        contact = repo.get_contact(organization.id, sample_phone)
        assert contact.profile_name == "John Doe"

        message = repo.get_message_by_wam_id(organization.id, "wamid.IN1")
        assert message.direction == MessageDirection.INBOUND.value
        assert message.status == MessageStatus.DELIVERED.value
        assert message.type == MessageType.TEXT.value
        assert message.conversation_id == f"wa_{sample_phone}"
        assert message.contact_id == contact.id
        assert message.content["text"]["body"] == "Preciso de cimento"

    def test_duplicate_delivery_skipped(self, reconciler, db_session, organization):
        """Test a redelivered message is stored once."""
        reconciler.process_payload(organization, text_message_webhook())
        report = reconciler.process_payload(organization, text_message_webhook())

        assert report.messages_processed == 0
        assert report.skipped == 1
        assert db_session.query(WhatsAppMessage).count() == 1
        assert db_session.query(WhatsAppContact).count() == 1

    def test_unknown_type_stored_as_text(self, reconciler, repo, organization):
        """Test provider types without a local mapping are stored as text."""
        payload = text_message_webhook()
        item = payload["entry"][0]["changes"][0]["value"]["messages"][0]
        item["type"] = "order"
        item["order"] = {"catalog_id": "1"}

        reconciler.process_payload(organization, payload)

        message = repo.get_message_by_wam_id(organization.id, "wamid.IN1")
        assert message.type == MessageType.TEXT.value
        assert message.content["order"] == {"catalog_id": "1"}

    def test_sticker_stored_as_image(self, reconciler, repo, organization):
        """Test stickers are stored as images."""
        payload = text_message_webhook()
        item = payload["entry"][0]["changes"][0]["value"]["messages"][0]
        item["type"] = "sticker"
        item["sticker"] = {"id": "media_9"}

        reconciler.process_payload(organization, payload)

        assert repo.get_message_by_wam_id(organization.id, "wamid.IN1").type == MessageType.IMAGE.value

    def test_messages_isolated_by_tenant(self, reconciler, repo, organization):
        """Test the same provider id can exist for two tenants."""
        other = repo.create_org(name="Other", slug="other")
        repo.commit()

        reconciler.process_payload(organization, text_message_webhook())
        report = reconciler.process_payload(other, text_message_webhook())

        assert report.messages_processed == 1
        assert repo.get_message_by_wam_id(other.id, "wamid.IN1") is not None


class TestStatusUpdates:
    """Tests for status reconciliation."""

    def test_delivered(self, reconciler, repo, organization, outbound_message):
        """Test a delivered status updates the message."""
        report = reconciler.process_payload(organization, status_webhook("wamid.OUT1"))

        assert report.statuses_processed == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.OUT1").status == MessageStatus.DELIVERED.value

    def test_failed_records_error(self, reconciler, repo, organization, outbound_message):
        """Test a failed status stores the provider error."""
        payload = status_webhook(
            "wamid.OUT1",
            status="failed",
            errors=[{"code": 131026, "title": "Message undeliverable"}],
        )

        reconciler.process_payload(organization, payload)

        message = repo.get_message_by_wam_id(organization.id, "wamid.OUT1")
        assert message.status == MessageStatus.FAILED.value
        assert message.error_code == "131026"
        assert message.error_message == "Message undeliverable"

    def test_unknown_message_dropped(self, reconciler, db_session, organization):
        """Test a status for an unknown message is dropped."""
        report = reconciler.process_payload(organization, status_webhook("wamid.UNKNOWN", status="read"))

        assert report.statuses_processed == 0
        assert report.skipped == 1
        assert report.failures == 0
        assert db_session.query(WhatsAppMessage).count() == 0

    def test_unknown_status_dropped(self, reconciler, repo, organization, outbound_message):
        """Test an unrecognized status leaves the message unchanged."""
        report = reconciler.process_payload(organization, status_webhook("wamid.OUT1", status="deleted"))

        assert report.skipped == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.OUT1").status == MessageStatus.SENT.value

    def test_other_tenant_status_ignored(self, reconciler, repo, organization, outbound_message):
        """Test statuses never touch another tenant's messages."""
        other = repo.create_org(name="Other", slug="other")
        repo.commit()

        report = reconciler.process_payload(other, status_webhook("wamid.OUT1", status="read"))

        assert report.skipped == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.OUT1").status == MessageStatus.SENT.value


class TestItemIsolation:
    """Tests for per-item failure isolation."""

    def test_malformed_message_does_not_block_status(self, reconciler, repo, organization, outbound_message):
        """Test a bad message item is counted while its sibling status applies."""
        payload = status_webhook("wamid.OUT1", status="read")
        payload["entry"][0]["changes"][0]["value"]["messages"] = [{"type": "text", "text": {"body": "no id"}}]

        report = reconciler.process_payload(organization, payload)

        assert report.failures == 1
        assert report.statuses_processed == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.OUT1").status == MessageStatus.READ.value

    def test_bad_timestamp_isolated(self, reconciler, repo, organization):
        """Test an unparseable timestamp fails only its own item."""
        payload = text_message_webhook()
        messages = payload["entry"][0]["changes"][0]["value"]["messages"]
        messages.append(dict(messages[0], id="wamid.IN2", timestamp="yesterday"))

        report = reconciler.process_payload(organization, payload)

        assert report.messages_processed == 1
        assert report.failures == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.IN2") is None

    def test_entry_with_non_list_changes_skipped(self, reconciler, repo, organization, outbound_message):
        """Test a malformed entry does not drop a status in the next entry."""
        payload = status_webhook("wamid.OUT1", status="read")
        payload["entry"].insert(0, {"id": WABA_ID, "changes": 5})

        report = reconciler.process_payload(organization, payload)

        assert report.statuses_processed == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.OUT1").status == MessageStatus.READ.value

    def test_non_list_items_counted_as_failures(self, reconciler, repo, organization, outbound_message):
        """Test non-list messages/statuses fail without blocking sibling changes."""
        payload = status_webhook("wamid.OUT1", status="delivered")
        changes = payload["entry"][0]["changes"]
        changes.insert(0, {"field": "messages", "value": {"messages": 5, "statuses": 5}})

        report = reconciler.process_payload(organization, payload)

        assert report.failures == 2
        assert report.statuses_processed == 1
        assert repo.get_message_by_wam_id(organization.id, "wamid.OUT1").status == MessageStatus.DELIVERED.value

    def test_non_whatsapp_payload(self, reconciler, organization):
        """Test payloads for other objects are ignored."""
        report = reconciler.process_payload(organization, {"object": "instagram", "entry": []})

        assert report.to_dict() == {
            "messages_processed": 0,
            "statuses_processed": 0,
            "skipped": 0,
            "failures": 0,
        }
