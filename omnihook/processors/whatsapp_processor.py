"""
WhatsApp Business Cloud API webhook processor.

Envelope: ``{"object": "whatsapp_business_account", "entry": [{"changes":
[{"field": "messages", "value": {...}}]}]}``. Each ``value.messages[]`` and
each ``value.statuses[]`` item is one provider event; the phone number id in
``value.metadata`` identifies the account. Timestamps are second epochs.
"""

from typing import Any

from omnihook.processors.base_processor import (
    BaseWebhookProcessor,
    ProcessorCapabilities,
)
from omnihook.processors.signature import SignatureVerifier
from omnihook.schemas.core.events import (
    UNSUPPORTED_MESSAGE_TEXT,
    ProcessedWebhookEvent,
    ProviderEvent,
    timestamp_from_seconds,
)
from omnihook.schemas.core.types import (
    EventKind,
    MessageContent,
    MessageType,
    PlatformType,
    SenderType,
)

MEDIA_TYPES: dict[str, MessageType] = {
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "document": MessageType.FILE,
    "sticker": MessageType.STICKER,
}

# WhatsApp status -> receipt event kind; "sent" confirms an outbound message left
STATUS_KINDS: dict[str, EventKind] = {
    "sent": EventKind.MESSAGE_SENT,
    "delivered": EventKind.MESSAGE_DELIVERED,
    "read": EventKind.MESSAGE_READ,
    "failed": EventKind.MESSAGE_FAILED,
}


class WhatsAppWebhookProcessor(BaseWebhookProcessor):
    """Processor for WhatsApp Business Cloud API webhooks."""

    def __init__(self, verifier: SignatureVerifier | None = None):
        super().__init__(verifier)

        self._capabilities = ProcessorCapabilities(
            platform=PlatformType.WHATSAPP,
            supported_message_types={
                MessageType.TEXT,
                MessageType.IMAGE,
                MessageType.VIDEO,
                MessageType.AUDIO,
                MessageType.FILE,
                MessageType.STICKER,
                MessageType.LOCATION,
                MessageType.CONTACT,
                MessageType.PRODUCT,
            },
            supports_challenge=True,
            supports_status_updates=True,
        )

        self.register_event_handler("message", self._normalize_message)
        self.register_event_handler("status", self._normalize_status)
        self.register_event_handler("invalid", self._reject_item)

    @property
    def platform(self) -> PlatformType:
        return PlatformType.WHATSAPP

    @property
    def capabilities(self) -> ProcessorCapabilities:
        return self._capabilities

    def split_events(self, payload: Any) -> list[ProviderEvent]:
        """
        Split a WhatsApp delivery into messages and statuses, in order.

        Args:
            payload: Parsed webhook JSON

        Returns:
            Messages before statuses inside each change, changes in order

        Raises:
            MalformedPayloadError: If ``entry`` is missing or not a list. A
                non-object entry, change or change value fails on its own.
        """
        payload = self._require_mapping(payload, "payload")
        entries = self._require_list(payload.get("entry"), "entry")

        events: list[ProviderEvent] = []

        def add(kind: str, account_id: str | None, data: Any, context: dict[str, Any]) -> None:
            if not isinstance(data, dict):
                kind, data = "invalid", {"item": data}
            events.append(
                ProviderEvent(
                    platform=self.platform,
                    index=len(events),
                    kind=kind,
                    account_external_id=account_id,
                    data=data,
                    context=context,
                )
            )

        for entry in entries:
            if not isinstance(entry, dict):
                add("invalid", None, entry, {})
                continue
            for change in entry.get("changes") or []:
                if not isinstance(change, dict):
                    add("invalid", None, change, {})
                    continue
                if change.get("field", "messages") != "messages":
                    self.logger.debug(f"Ignoring WhatsApp change field '{change.get('field')}'")
                    continue

                value = change.get("value")
                if not isinstance(value, dict):
                    add("invalid", None, value, {})
                    continue
                metadata = value.get("metadata") or {}
                account_id = metadata.get("phone_number_id")
                account_id = str(account_id) if account_id else None
                context = {
                    "waba_id": entry.get("id"),
                    "display_phone_number": metadata.get("display_phone_number"),
                    "contact_names": self._contact_names(value.get("contacts")),
                }

                for message in value.get("messages") or []:
                    add("message", account_id, message, context)
                for status in value.get("statuses") or []:
                    add("status", account_id, status, context)

        return events

    @staticmethod
    def _contact_names(contacts: Any) -> dict[str, str]:
        names: dict[str, str] = {}
        for contact in contacts or []:
            if not isinstance(contact, dict):
                continue
            name = (contact.get("profile") or {}).get("name")
            if contact.get("wa_id") and name:
                names[str(contact["wa_id"])] = name
        return names

    def _reject_item(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        raise self._malformed(f"item is not an object: {provider_event.data!r}")

    def _account_id(self, provider_event: ProviderEvent) -> str:
        if not provider_event.account_external_id:
            raise self._malformed("change without metadata.phone_number_id")
        return provider_event.account_external_id

    def _normalize_message(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        message = provider_event.data
        customer_id = self._require_id(message, "from", "sender")
        message_type, content = self.classify_message(message)

        if message.get("context"):
            content["reply_to"] = message["context"]

        return ProcessedWebhookEvent(
            platform=self.platform,
            event_kind=EventKind.MESSAGE_RECEIVED,
            account_external_id=self._account_id(provider_event),
            external_customer_id=customer_id,
            customer_name=provider_event.context.get("contact_names", {}).get(customer_id),
            external_message_id=self._require_id(message, "id", "message id"),
            message_type=message_type,
            content=content,
            sender_type=SenderType.CUSTOMER,
            timestamp=self._timestamp(message.get("timestamp"), timestamp_from_seconds),
            raw=message,
        )

    def classify_message(self, message: dict[str, Any]) -> tuple[MessageType, MessageContent]:
        """
        Map a WhatsApp message object to a canonical type and content.

        Buttons and interactive replies become text carrying the visible
        title, with the machine payload kept under ``reply``.
        """
        wa_type = message.get("type")
        body = message.get(wa_type) if isinstance(message.get(wa_type), dict) else {}

        if wa_type == "text":
            return MessageType.TEXT, {"text": body.get("body") or ""}

        if wa_type in MEDIA_TYPES:
            content: MessageContent = {
                "media_id": body.get("id"),
                "mime_type": body.get("mime_type"),
                "sha256": body.get("sha256"),
            }
            if body.get("caption"):
                content["caption"] = body["caption"]
            if wa_type == "document":
                content["file_name"] = body.get("filename")
            if wa_type == "sticker":
                content["sticker_id"] = str(body.get("id", ""))
                content["animated"] = bool(body.get("animated"))
            return MEDIA_TYPES[wa_type], content

        if wa_type == "location":
            return MessageType.LOCATION, {
                "location": {
                    "latitude": body.get("latitude"),
                    "longitude": body.get("longitude"),
                    "name": body.get("name"),
                    "address": body.get("address"),
                }
            }

        if wa_type == "contacts":
            return MessageType.CONTACT, {"contacts": message.get("contacts") or []}

        if wa_type == "order":
            return MessageType.PRODUCT, {
                "catalog_id": body.get("catalog_id"),
                "items": body.get("product_items") or [],
                "text": body.get("text") or "",
            }

        if wa_type == "button":
            return MessageType.TEXT, {
                "text": body.get("text") or "",
                "reply": {"kind": "button", "payload": body.get("payload")},
            }

        if wa_type == "interactive":
            return self._classify_interactive(body)

        if wa_type == "reaction":
            return MessageType.TEXT, {
                "text": body.get("emoji") or "",
                "reaction": {"emoji": body.get("emoji"), "message_id": body.get("message_id")},
            }

        return MessageType.TEXT, {"text": UNSUPPORTED_MESSAGE_TEXT, "raw": message}

    def _classify_interactive(self, body: dict[str, Any]) -> tuple[MessageType, MessageContent]:
        kind = body.get("type")
        reply = body.get(kind) if isinstance(body.get(kind), dict) else {}

        if kind in ("button_reply", "list_reply"):
            content: MessageContent = {
                "text": reply.get("title") or "",
                "reply": {"kind": kind, "id": reply.get("id")},
            }
            if reply.get("description"):
                content["reply"]["description"] = reply["description"]
            return MessageType.TEXT, content

        if kind == "nfm_reply":
            return MessageType.TEXT, {
                "text": reply.get("body") or reply.get("name") or "",
                "reply": {"kind": kind, "payload": reply.get("response_json")},
            }

        return MessageType.TEXT, {"text": UNSUPPORTED_MESSAGE_TEXT, "raw": body}

    def _normalize_status(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent | None:
        status = provider_event.data
        state = status.get("status")
        kind = STATUS_KINDS.get(state)
        if kind is None:
            self.logger.debug(f"Ignoring WhatsApp status '{state}'")
            return None

        error_message = None
        errors = status.get("errors") or []
        if errors and isinstance(errors[0], dict):
            first = errors[0]
            error_message = first.get("title") or first.get("message")
            details = (first.get("error_data") or {}).get("details")
            if details:
                error_message = f"{error_message}: {details}" if error_message else details

        return ProcessedWebhookEvent(
            platform=self.platform,
            event_kind=kind,
            account_external_id=self._account_id(provider_event),
            external_customer_id=self._require_id(status, "recipient_id", "recipient id"),
            receipt_message_ids=[self._require_id(status, "id", "status message id")],
            error_message=error_message if kind == EventKind.MESSAGE_FAILED else None,
            timestamp=self._timestamp(status.get("timestamp"), timestamp_from_seconds),
            raw=status,
        )
