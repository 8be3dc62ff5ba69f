"""
Meta-family webhook processor (Facebook Messenger and Instagram DMs).

Envelope: ``{"object": "page"|"instagram", "entry": [{"id", "time",
"messaging": [...], "changes": [...]}]}``. Each messaging item and each
change is one provider event; ``entry.id`` is the page / IG account id.
"""

from typing import Any

from omnihook.processors.base_processor import (
    BaseWebhookProcessor,
    ProcessorCapabilities,
)
from omnihook.processors.signature import SignatureVerifier
from omnihook.schemas.core.events import (
    UNSUPPORTED_ATTACHMENT_TEXT,
    UNSUPPORTED_MESSAGE_TEXT,
    ProcessedWebhookEvent,
    ProviderEvent,
    timestamp_from_epoch,
)
from omnihook.schemas.core.types import (
    EventKind,
    MessageContent,
    MessageType,
    PlatformType,
    SenderType,
)

# Attachment category -> canonical type. "image" is special-cased for stickers.
ATTACHMENT_TYPES: dict[str, MessageType] = {
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "file": MessageType.FILE,
    "location": MessageType.LOCATION,
    "template": MessageType.RICH_TEMPLATE,
}

MESSAGING_KIND = "messaging"
CHANGE_KIND = "change"
STANDBY_KIND = "standby"
INVALID_ENTRY_KIND = "invalid_entry"


class MetaWebhookProcessor(BaseWebhookProcessor):
    """
    Shared processor for Messenger and Instagram messaging webhooks.

    Handles messages (text, attachments, quick replies, echoes), postbacks,
    delivery and read receipts, opt-ins, and Instagram comment / mention
    changes.
    """

    _platform: PlatformType = PlatformType.FACEBOOK
    expected_objects: frozenset[str] = frozenset({"page"})

    def __init__(self, verifier: SignatureVerifier | None = None):
        """Initialize the processor with capabilities and handlers."""
        super().__init__(verifier)

        self._capabilities = ProcessorCapabilities(
            platform=self._platform,
            supported_message_types={
                MessageType.TEXT,
                MessageType.IMAGE,
                MessageType.VIDEO,
                MessageType.AUDIO,
                MessageType.FILE,
                MessageType.LOCATION,
                MessageType.STICKER,
                MessageType.RICH_TEMPLATE,
            },
            supports_challenge=True,
            supports_status_updates=True,
            supports_watermarks=True,
        )

        self.register_event_handler(MESSAGING_KIND, self._normalize_messaging)
        self.register_event_handler(CHANGE_KIND, self._normalize_change)
        self.register_event_handler(INVALID_ENTRY_KIND, self._reject_entry)

    @property
    def platform(self) -> PlatformType:
        """Get the platform this processor handles."""
        return self._platform

    @property
    def capabilities(self) -> ProcessorCapabilities:
        """Get the capabilities of this processor."""
        return self._capabilities

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def split_events(self, payload: Any) -> list[ProviderEvent]:
        """
        Split a Meta delivery into messaging items and changes, in order.

        Args:
            payload: Parsed webhook JSON

        Returns:
            Provider events; an entry that is not an object becomes a single
            event that fails normalization on its own

        Raises:
            MalformedPayloadError: If ``entry`` is missing or the object type
                belongs to another product
        """
        payload = self._require_mapping(payload, "payload")
        object_type = payload.get("object")
        if object_type is not None and object_type not in self.expected_objects:
            raise self._malformed(f"unexpected object type '{object_type}'")
        entries = self._require_list(payload.get("entry"), "entry")

        events: list[ProviderEvent] = []
        for entry in entries:
            if not isinstance(entry, dict):
                events.append(
                    self._provider_event(
                        len(events), INVALID_ENTRY_KIND, None, {"entry": entry}, {}
                    )
                )
                continue

            account_id = entry.get("id")
            account_id = str(account_id) if account_id not in (None, "") else None
            context = {"entry_time": entry.get("time"), "object": object_type}

            for item in entry.get("messaging") or []:
                events.append(
                    self._provider_event(len(events), MESSAGING_KIND, account_id, item, context)
                )
            for change in entry.get("changes") or []:
                events.append(
                    self._provider_event(len(events), CHANGE_KIND, account_id, change, context)
                )
            for item in entry.get("standby") or []:
                # Another app owns the thread (handover protocol)
                events.append(
                    self._provider_event(len(events), STANDBY_KIND, account_id, item, context)
                )

        return events

    def _provider_event(
        self,
        index: int,
        kind: str,
        account_id: str | None,
        data: Any,
        context: dict[str, Any],
    ) -> ProviderEvent:
        if not isinstance(data, dict):
            data, kind = {"item": data}, INVALID_ENTRY_KIND
        return ProviderEvent(
            platform=self.platform,
            index=index,
            kind=kind,
            account_external_id=account_id,
            data=data,
            context=context,
        )

    def _reject_entry(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        raise self._malformed(f"entry item is not an object: {provider_event.data!r}")

    # ------------------------------------------------------------------
    # Messaging items
    # ------------------------------------------------------------------

    def _normalize_messaging(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent | None:
        """Normalize one ``entry.messaging[]`` item."""
        item = provider_event.data
        sender = self._require_mapping(item.get("sender"), "sender")
        recipient = self._require_mapping(item.get("recipient"), "recipient")
        timestamp = self._timestamp(
            item.get("timestamp") or provider_event.context.get("entry_time"),
            timestamp_from_epoch,
        )
        account_id = provider_event.account_external_id or self._require_id(
            recipient, "id", "recipient id"
        )

        if "message" in item:
            return self._normalize_message(item, sender, recipient, account_id, timestamp)

        # Everything below is sent by the customer to the page
        customer_id = self._require_id(sender, "id", "sender id")
        base = {
            "platform": self.platform,
            "account_external_id": account_id,
            "external_customer_id": customer_id,
            "timestamp": timestamp,
            "raw": item,
        }

        if "postback" in item:
            postback = self._require_mapping(item["postback"], "postback")
            payload = postback.get("payload")
            content: MessageContent = {
                "text": postback.get("title") or (str(payload) if payload is not None else ""),
                "reply": {"kind": "postback", "payload": payload},
            }
            if postback.get("referral"):
                content["referral"] = postback["referral"]
            message_id = postback.get("mid")
            if not message_id:
                stamp = item.get("timestamp") or provider_event.context.get("entry_time")
                if stamp in (None, ""):
                    raise self._malformed("postback without mid or timestamp")
                message_id = f"postback_{stamp}"
            return ProcessedWebhookEvent(
                **base,
                event_kind=EventKind.POSTBACK,
                external_message_id=str(message_id),
                message_type=MessageType.TEXT,
                content=content,
            )

        if "delivery" in item:
            delivery = self._require_mapping(item["delivery"], "delivery")
            mids = [str(mid) for mid in delivery.get("mids") or []]
            watermark = delivery.get("watermark")
            if not mids and watermark is None:
                raise self._malformed("delivery without mids or watermark")
            return ProcessedWebhookEvent(
                **base,
                event_kind=EventKind.MESSAGE_DELIVERED,
                receipt_message_ids=mids,
                watermark=self._timestamp(watermark, timestamp_from_epoch)
                if watermark is not None
                else None,
            )

        if "read" in item:
            read = self._require_mapping(item["read"], "read")
            watermark = read.get("watermark")
            mids = [str(read["mid"])] if read.get("mid") else []
            if not mids and watermark is None:
                raise self._malformed("read without mid or watermark")
            return ProcessedWebhookEvent(
                **base,
                event_kind=EventKind.MESSAGE_READ,
                receipt_message_ids=mids,
                watermark=self._timestamp(watermark, timestamp_from_epoch)
                if watermark is not None
                else None,
            )

        if "optin" in item:
            return ProcessedWebhookEvent(
                **base,
                event_kind=EventKind.USER_SUBSCRIBED,
                content={"optin": item["optin"]},
            )

        self.logger.debug(
            f"Ignoring {self.platform.value} messaging item with keys {sorted(item)}"
        )
        return None

    def _normalize_message(
        self,
        item: dict[str, Any],
        sender: dict[str, Any],
        recipient: dict[str, Any],
        account_id: str,
        timestamp,
    ) -> ProcessedWebhookEvent | None:
        message = self._require_mapping(item["message"], "message")
        if message.get("is_deleted"):
            # Instagram unsend notification
            return None

        message_id = self._require_id(message, "mid", "message id")
        message_type, content = self.classify_message(message)

        if message.get("is_echo"):
            # Sent by the page (inbox or another app); the customer is the recipient
            return ProcessedWebhookEvent(
                platform=self.platform,
                event_kind=EventKind.MESSAGE_SENT,
                account_external_id=account_id,
                external_customer_id=self._require_id(recipient, "id", "recipient id"),
                external_message_id=message_id,
                message_type=message_type,
                content=content,
                sender_type=SenderType.AGENT,
                sender_external_id=str(message.get("app_id") or sender.get("id") or ""),
                timestamp=timestamp,
                raw=item,
            )

        return ProcessedWebhookEvent(
            platform=self.platform,
            event_kind=EventKind.MESSAGE_RECEIVED,
            account_external_id=account_id,
            external_customer_id=self._require_id(sender, "id", "sender id"),
            external_message_id=message_id,
            message_type=message_type,
            content=content,
            sender_type=SenderType.CUSTOMER,
            timestamp=timestamp,
            raw=item,
        )

    def classify_message(self, message: dict[str, Any]) -> tuple[MessageType, MessageContent]:
        """
        Detect the canonical type and content of a Meta message object.

        Attachments win over text. An ``image`` attachment whose payload
        carries ``sticker_id`` is a sticker. Unknown and ``fallback``
        attachments become text with a placeholder and keep the raw
        attachments.

        Args:
            message: The ``message`` object of a messaging item

        Returns:
            Tuple of message type and content
        """
        text = message.get("text")
        attachments = message.get("attachments") or []
        content: MessageContent

        if attachments:
            if not isinstance(attachments, list) or not isinstance(attachments[0], dict):
                raise self._malformed("attachments must be a list of objects")
            first = attachments[0]
            category = first.get("type")
            payload = first.get("payload") if isinstance(first.get("payload"), dict) else {}

            if category == "image" and payload.get("sticker_id") is not None:
                message_type = MessageType.STICKER
                content = {
                    "text": text or "",
                    "sticker_id": str(payload["sticker_id"]),
                    "media_url": payload.get("url"),
                    "attachments": attachments,
                }
            elif category in ATTACHMENT_TYPES:
                message_type = ATTACHMENT_TYPES[category]
                content = {"text": text or "", "attachments": attachments}
                if message_type == MessageType.LOCATION:
                    coordinates = payload.get("coordinates") or {}
                    content["location"] = {
                        "latitude": coordinates.get("lat"),
                        "longitude": coordinates.get("long"),
                        "title": first.get("title"),
                    }
                elif message_type == MessageType.RICH_TEMPLATE:
                    content["template"] = payload
                else:
                    content["media_url"] = payload.get("url")
                    if text:
                        content["caption"] = text
                    if message_type == MessageType.FILE:
                        content["file_name"] = first.get("title") or payload.get("title")
            else:
                message_type = MessageType.TEXT
                content = {
                    "text": text or UNSUPPORTED_ATTACHMENT_TEXT,
                    "attachments": attachments,
                }
        elif text is not None:
            message_type = MessageType.TEXT
            content = {"text": text}
        else:
            message_type = MessageType.TEXT
            content = {"text": UNSUPPORTED_MESSAGE_TEXT, "raw": message}

        quick_reply = message.get("quick_reply")
        if isinstance(quick_reply, dict):
            content["reply"] = {"kind": "quick_reply", "payload": quick_reply.get("payload")}
        if message.get("reply_to"):
            content["reply_to"] = message["reply_to"]

        return message_type, content

    # ------------------------------------------------------------------
    # Changes (Instagram comments and mentions)
    # ------------------------------------------------------------------

    def _normalize_change(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent | None:
        """Normalize one ``entry.changes[]`` item."""
        change = provider_event.data
        field = change.get("field")
        if field not in ("comments", "mentions"):
            self.logger.debug(f"Ignoring {self.platform.value} change field '{field}'")
            return None

        value = self._require_mapping(change.get("value"), "change value")
        author = self._require_mapping(value.get("from"), "comment author")
        account_id = provider_event.account_external_id
        if not account_id:
            raise self._malformed("change without account id")

        if field == "comments":
            message_id = self._require_id(value, "id", "comment id")
            content: MessageContent = {
                "text": value.get("text") or "",
                "channel": "comment",
                "media": value.get("media"),
            }
            if value.get("parent_id"):
                content["parent_id"] = value["parent_id"]
        else:
            message_id = self._require_id(value, "comment_id", "mention comment id")
            content = {
                "text": value.get("text") or "",
                "channel": "mention",
                "media": {"id": value.get("media_id")},
            }

        return ProcessedWebhookEvent(
            platform=self.platform,
            event_kind=EventKind.MESSAGE_RECEIVED,
            account_external_id=account_id,
            external_customer_id=self._require_id(author, "id", "comment author id"),
            customer_name=author.get("username"),
            external_message_id=message_id,
            message_type=MessageType.TEXT,
            content=content,
            timestamp=self._timestamp(
                value.get("timestamp") or provider_event.context.get("entry_time"),
                timestamp_from_epoch,
            ),
            raw=change,
        )


class FacebookWebhookProcessor(MetaWebhookProcessor):
    """Messenger webhooks for Facebook pages."""

    _platform = PlatformType.FACEBOOK
    expected_objects = frozenset({"page"})


class InstagramWebhookProcessor(MetaWebhookProcessor):
    """Instagram messaging webhooks (DMs, comments, mentions)."""

    _platform = PlatformType.INSTAGRAM
    expected_objects = frozenset({"instagram", "page"})
