"""
LINE Messaging API webhook processor.

Envelope: ``{"destination": "<bot user id>", "events": [...]}``. The
destination identifies the channel account; every item of ``events`` is one
provider event. Timestamps are millisecond epochs.
"""

import json
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
    timestamp_from_millis,
)
from omnihook.schemas.core.types import (
    EventKind,
    MessageContent,
    MessageType,
    PlatformType,
)

MEDIA_TYPES: dict[str, MessageType] = {
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "file": MessageType.FILE,
}


class LineWebhookProcessor(BaseWebhookProcessor):
    """
    Processor for LINE webhooks.

    LINE has no subscription handshake and no delivery receipts. Media
    content is not downloadable from the payload, so only the message id and
    provider metadata are kept.
    """

    def __init__(self, verifier: SignatureVerifier | None = None):
        super().__init__(verifier)

        self._capabilities = ProcessorCapabilities(
            platform=PlatformType.LINE,
            supported_message_types={
                MessageType.TEXT,
                MessageType.IMAGE,
                MessageType.VIDEO,
                MessageType.AUDIO,
                MessageType.FILE,
                MessageType.LOCATION,
                MessageType.STICKER,
            },
            supports_challenge=False,
            supports_status_updates=False,
        )

        self.register_event_handler("message", self._normalize_message)
        self.register_event_handler("postback", self._normalize_postback)
        self.register_event_handler("follow", self._normalize_follow)
        self.register_event_handler("unfollow", self._normalize_unfollow)

    @property
    def platform(self) -> PlatformType:
        return PlatformType.LINE

    @property
    def capabilities(self) -> ProcessorCapabilities:
        return self._capabilities

    def split_events(self, payload: Any) -> list[ProviderEvent]:
        """
        Split a LINE delivery into its events.

        Args:
            payload: Parsed webhook JSON

        Returns:
            One provider event per item of ``events``; an empty list for the
            console's verification ping

        Raises:
            MalformedPayloadError: If ``destination`` or ``events`` is missing
        """
        payload = self._require_mapping(payload, "payload")
        destination = self._require_id(payload, "destination", "destination")
        items = self._require_list(payload.get("events"), "events")

        events = []
        for index, item in enumerate(items):
            if isinstance(item, dict):
                kind, data = str(item.get("type") or "unknown"), item
            else:
                kind, data = "invalid", {"item": item}
            events.append(
                ProviderEvent(
                    platform=self.platform,
                    index=index,
                    kind=kind,
                    account_external_id=destination,
                    data=data,
                )
            )
        return events

    def normalize_event(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent | None:
        """Normalize one LINE event, skipping standby-mode events and bad items."""
        if provider_event.kind == "invalid":
            raise self._malformed(f"event is not an object: {provider_event.data!r}")
        if provider_event.data.get("mode") == "standby":
            self.logger.debug("Skipping LINE event received in standby mode")
            return None
        return super().normalize_event(provider_event)

    def _base_fields(self, provider_event: ProviderEvent) -> dict[str, Any]:
        event = provider_event.data
        source = self._require_mapping(event.get("source"), "source")
        customer_id = source.get("userId") or source.get("groupId") or source.get("roomId")
        if not customer_id:
            raise self._malformed("source without userId, groupId or roomId")

        return {
            "platform": self.platform,
            "account_external_id": provider_event.account_external_id,
            "external_customer_id": str(customer_id),
            "timestamp": self._timestamp(event.get("timestamp"), timestamp_from_millis),
            "raw": event,
        }

    def _normalize_message(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        fields = self._base_fields(provider_event)
        message = self._require_mapping(provider_event.data.get("message"), "message")
        message_id = self._require_id(message, "id", "message id")
        message_type, content = self.classify_message(message)

        return ProcessedWebhookEvent(
            **fields,
            event_kind=EventKind.MESSAGE_RECEIVED,
            external_message_id=message_id,
            message_type=message_type,
            content=content,
        )

    def classify_message(self, message: dict[str, Any]) -> tuple[MessageType, MessageContent]:
        """
        Map a LINE message object to a canonical type and content.

        Sticker ids are kept verbatim; no sticker image URL is synthesized.
        """
        line_type = message.get("type")

        if line_type == "text":
            content: MessageContent = {"text": message.get("text") or ""}
            if message.get("emojis"):
                content["emojis"] = message["emojis"]
            return MessageType.TEXT, content

        if line_type == "sticker":
            return MessageType.STICKER, {
                "package_id": str(message.get("packageId", "")),
                "sticker_id": str(message.get("stickerId", "")),
                "sticker_resource_type": message.get("stickerResourceType"),
                "keywords": message.get("keywords") or [],
            }

        if line_type == "location":
            return MessageType.LOCATION, {
                "location": {
                    "title": message.get("title"),
                    "address": message.get("address"),
                    "latitude": message.get("latitude"),
                    "longitude": message.get("longitude"),
                }
            }

        if line_type in MEDIA_TYPES:
            content = {
                "media_id": message.get("id"),
                "content_provider": message.get("contentProvider"),
            }
            if line_type == "file":
                content["file_name"] = message.get("fileName")
                content["file_size"] = message.get("fileSize")
            if message.get("duration") is not None:
                content["duration"] = message["duration"]
            return MEDIA_TYPES[line_type], content

        return MessageType.TEXT, {"text": UNSUPPORTED_MESSAGE_TEXT, "raw": message}

    def _normalize_postback(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        fields = self._base_fields(provider_event)
        event = provider_event.data
        postback = self._require_mapping(event.get("postback"), "postback")
        data = postback.get("data")

        try:
            parsed = json.loads(data) if isinstance(data, str) else data
        except json.JSONDecodeError:
            parsed = data

        reply: dict[str, Any] = {"kind": "postback", "data": parsed}
        if postback.get("params"):
            reply["params"] = postback["params"]

        label = parsed.get("label") if isinstance(parsed, dict) else None
        message_id = event.get("webhookEventId")
        if not message_id:
            if event.get("timestamp") in (None, ""):
                raise self._malformed("postback without webhookEventId or timestamp")
            message_id = f"postback_{event['timestamp']}"

        return ProcessedWebhookEvent(
            **fields,
            event_kind=EventKind.POSTBACK,
            external_message_id=str(message_id),
            message_type=MessageType.TEXT,
            content={"text": label or (data if isinstance(data, str) else ""), "reply": reply},
        )

    def _normalize_follow(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        return ProcessedWebhookEvent(
            **self._base_fields(provider_event),
            event_kind=EventKind.USER_SUBSCRIBED,
        )

    def _normalize_unfollow(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent:
        return ProcessedWebhookEvent(
            **self._base_fields(provider_event),
            event_kind=EventKind.USER_UNSUBSCRIBED,
        )
