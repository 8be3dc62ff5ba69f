"""
Tests for the WhatsApp Business webhook processor.
"""

from datetime import UTC, datetime

import pytest

from omnihook.core.errors import MalformedPayloadError
from omnihook.processors.whatsapp_processor import WhatsAppWebhookProcessor
from omnihook.schemas.core.types import EventKind, MessageStatus, MessageType, SenderType

from tests.factories import (
    BASE_TS_S,
    whatsapp_payload,
    whatsapp_status,
    whatsapp_text,
)


@pytest.fixture
def processor():
    return WhatsAppWebhookProcessor()


def single(processor, message):
    (event,) = processor.extract_events(whatsapp_payload("PHONE_A", messages=[message]))
    return event


class TestWhatsAppMessages:
    def test_text_with_contact_name(self, processor):
        payload = whatsapp_payload(
            "PHONE_A",
            messages=[whatsapp_text("66812345678", "wamid.1", "hello")],
            contacts=[{"wa_id": "66812345678", "profile": {"name": "Somchai"}}],
        )

        (event,) = processor.extract_events(payload)

        assert event.event_kind == EventKind.MESSAGE_RECEIVED
        assert event.account_external_id == "PHONE_A"
        assert event.external_customer_id == "66812345678"
        assert event.customer_name == "Somchai"
        assert event.content == {"text": "hello"}
        assert event.sender_type == SenderType.CUSTOMER
        assert event.timestamp == datetime.fromtimestamp(BASE_TS_S, tz=UTC)

    def test_document_becomes_file(self, processor):
        message = {
            "from": "6681",
            "id": "wamid.2",
            "timestamp": str(BASE_TS_S),
            "type": "document",
            "document": {
                "id": "media-9",
                "mime_type": "application/pdf",
                "filename": "quote.pdf",
                "caption": "Quote",
            },
        }

        event = single(processor, message)

        assert event.message_type == MessageType.FILE
        assert event.content["media_id"] == "media-9"
        assert event.content["file_name"] == "quote.pdf"
        assert event.content["caption"] == "Quote"

    def test_sticker(self, processor):
        message = {
            "from": "6681",
            "id": "wamid.3",
            "timestamp": str(BASE_TS_S),
            "type": "sticker",
            "sticker": {"id": "st-1", "mime_type": "image/webp", "animated": True},
        }

        event = single(processor, message)

        assert event.message_type == MessageType.STICKER
        assert event.content["sticker_id"] == "st-1"
        assert event.content["animated"] is True

    def test_button_reply(self, processor):
        message = {
            "from": "6681",
            "id": "wamid.4",
            "timestamp": str(BASE_TS_S),
            "type": "interactive",
            "interactive": {
                "type": "button_reply",
                "button_reply": {"id": "confirm", "title": "Confirm"},
            },
        }

        event = single(processor, message)

        assert event.message_type == MessageType.TEXT
        assert event.content == {
            "text": "Confirm",
            "reply": {"kind": "button_reply", "id": "confirm"},
        }

    def test_template_button(self, processor):
        message = {
            "from": "6681",
            "id": "wamid.5",
            "timestamp": str(BASE_TS_S),
            "type": "button",
            "button": {"text": "Stop promotions", "payload": "STOP"},
        }

        event = single(processor, message)

        assert event.content["reply"] == {"kind": "button", "payload": "STOP"}

    def test_reaction(self, processor):
        message = {
            "from": "6681",
            "id": "wamid.6",
            "timestamp": str(BASE_TS_S),
            "type": "reaction",
            "reaction": {"emoji": "👍", "message_id": "wamid.out"},
        }

        event = single(processor, message)

        assert event.content["reaction"] == {"emoji": "👍", "message_id": "wamid.out"}

    def test_reply_context_kept(self, processor):
        message = whatsapp_text("6681", "wamid.7", "this one")
        message["context"] = {"from": "15550001111", "id": "wamid.out"}

        event = single(processor, message)

        assert event.content["reply_to"] == {"from": "15550001111", "id": "wamid.out"}

    def test_unknown_type_placeholder(self, processor):
        message = {
            "from": "6681",
            "id": "wamid.8",
            "timestamp": str(BASE_TS_S),
            "type": "unsupported",
        }

        event = single(processor, message)

        assert event.content["raw"] == message

    def test_missing_sender_is_malformed(self, processor):
        message = whatsapp_text("6681", "wamid.9", "x")
        del message["from"]

        with pytest.raises(MalformedPayloadError):
            single(processor, message)

    def test_missing_phone_number_id_is_malformed(self, processor):
        payload = whatsapp_payload("PHONE_A", messages=[whatsapp_text("6681", "wamid.10", "x")])
        del payload["entry"][0]["changes"][0]["value"]["metadata"]

        with pytest.raises(MalformedPayloadError):
            processor.extract_events(payload)


class TestWhatsAppStatuses:
    @pytest.mark.parametrize(
        "status, kind",
        [("delivered", EventKind.MESSAGE_DELIVERED), ("read", EventKind.MESSAGE_READ)],
    )
    def test_receipts(self, processor, status, kind):
        payload = whatsapp_payload(
            "PHONE_A", statuses=[whatsapp_status("wamid.out", "6681", status)]
        )

        (event,) = processor.extract_events(payload)

        assert event.event_kind == kind
        assert event.receipt_message_ids == ["wamid.out"]
        assert event.external_conversation_id == "PHONE_A_6681"
        assert event.error_message is None

    def test_failed_carries_error_text(self, processor):
        status = whatsapp_status(
            "wamid.out",
            "6681",
            "failed",
            errors=[
                {
                    "code": 131047,
                    "title": "Re-engagement message",
                    "error_data": {"details": "More than 24 hours have passed"},
                }
            ],
        )

        (event,) = processor.extract_events(whatsapp_payload("PHONE_A", statuses=[status]))

        assert event.event_kind == EventKind.MESSAGE_FAILED
        assert event.error_message == (
            "Re-engagement message: More than 24 hours have passed"
        )

    def test_sent_status_is_a_send_confirmation(self, processor):
        payload = whatsapp_payload(
            "PHONE_A", statuses=[whatsapp_status("wamid.out", "6681", "sent")]
        )

        (event,) = processor.extract_events(payload)

        assert event.event_kind == EventKind.MESSAGE_SENT
        assert event.external_message_id is None
        assert event.is_receipt
        assert event.receipt_status == MessageStatus.SENT

    def test_unknown_status_ignored(self, processor):
        payload = whatsapp_payload(
            "PHONE_A", statuses=[whatsapp_status("wamid.out", "6681", "deleted")]
        )

        assert processor.extract_events(payload) == []

    def test_messages_before_statuses(self, processor):
        payload = whatsapp_payload(
            "PHONE_A",
            messages=[whatsapp_text("6681", "wamid.in", "hi")],
            statuses=[whatsapp_status("wamid.out", "6681", "read")],
        )

        events = processor.split_events(payload)

        assert [event.kind for event in events] == ["message", "status"]
        assert [event.index for event in events] == [0, 1]

    def test_non_message_fields_skipped(self, processor):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [
                {"id": "WABA_1", "changes": [{"field": "account_update", "value": {}}]}
            ],
        }

        assert processor.split_events(payload) == []

    def test_non_object_item_fails_alone(self, processor):
        payload = whatsapp_payload(
            "PHONE_A", messages=["junk", whatsapp_text("6681", "wamid.ok", "fine")]
        )

        events = processor.split_events(payload)

        with pytest.raises(MalformedPayloadError):
            processor.normalize_event(events[0])
        assert processor.normalize_event(events[1]).external_message_id == "wamid.ok"

    @pytest.mark.parametrize("bad_part", ["entry", "change", "value"])
    def test_broken_envelope_part_fails_alone(self, processor, bad_part):
        payload = whatsapp_payload("PHONE_A", messages=[whatsapp_text("6681", "wamid.a", "a")])
        if bad_part == "entry":
            payload["entry"].insert(0, "garbage")
        elif bad_part == "change":
            payload["entry"][0]["changes"].insert(0, 42)
        else:
            payload["entry"][0]["changes"].insert(0, {"field": "messages", "value": "garbage"})

        events = processor.split_events(payload)

        assert [event.kind for event in events] == ["invalid", "message"]
        with pytest.raises(MalformedPayloadError):
            processor.normalize_event(events[0])
        assert processor.normalize_event(events[1]).external_message_id == "wamid.a"
