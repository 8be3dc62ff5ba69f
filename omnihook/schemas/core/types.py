"""
Unified data types and enums for cross-platform ingestion.

This module defines the common types used across all processors, resolvers
and storage models so every platform lands in the same canonical shape.
"""

from enum import Enum
from typing import Any


class PlatformType(str, Enum):
    """Platforms that deliver webhooks to this service."""

    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINE = "line"
    WHATSAPP = "whatsapp"


class MessageType(str, Enum):
    """Canonical message types across all platforms."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"
    LOCATION = "location"
    STICKER = "sticker"
    CONTACT = "contact"
    PRODUCT = "product"  # Orders and catalog items
    RICH_TEMPLATE = "rich_template"  # Provider templates and carousels


class SenderType(str, Enum):
    """Who produced a message."""

    CUSTOMER = "customer"
    AGENT = "agent"
    BOT = "bot"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Delivery status of a message. Moves forward only."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class ConversationStatus(str, Enum):
    """Lifecycle status of a conversation."""

    NEW = "new"
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    SPAM = "spam"


class EventKind(str, Enum):
    """Kinds of canonical events produced by processors."""

    MESSAGE_RECEIVED = "message.received"
    MESSAGE_SENT = "message.sent"
    MESSAGE_DELIVERED = "message.delivered"
    MESSAGE_READ = "message.read"
    MESSAGE_FAILED = "message.failed"
    POSTBACK = "postback"
    USER_SUBSCRIBED = "user.subscribed"
    USER_UNSUBSCRIBED = "user.unsubscribed"

    @property
    def is_receipt(self) -> bool:
        """Check if this kind updates existing messages instead of adding one."""
        return self in _RECEIPT_STATUS

    @property
    def receipt_status(self) -> "MessageStatus | None":
        """Message status a receipt of this kind moves messages to."""
        return _RECEIPT_STATUS.get(self)

    @property
    def creates_message(self) -> bool:
        """Check if this kind persists a new message row."""
        return self in (
            EventKind.MESSAGE_RECEIVED,
            EventKind.MESSAGE_SENT,
            EventKind.POSTBACK,
        )


_RECEIPT_STATUS: dict[EventKind, MessageStatus] = {
    EventKind.MESSAGE_DELIVERED: MessageStatus.DELIVERED,
    EventKind.MESSAGE_READ: MessageStatus.READ,
    EventKind.MESSAGE_FAILED: MessageStatus.FAILED,
}


class ErrorCode(str, Enum):
    """Error codes attached to ingestion errors and dead-letter entries."""

    SIGNATURE_VALIDATION_FAILED = "signature_validation_failed"
    CHALLENGE_FAILED = "challenge_failed"
    CHALLENGE_NOT_SUPPORTED = "challenge_not_supported"
    MISSING_SECRET = "missing_secret"
    UNKNOWN_PLATFORM = "unknown_platform"
    TENANT_NOT_FOUND = "tenant_not_found"
    TENANT_AMBIGUOUS = "tenant_ambiguous"
    MALFORMED_PAYLOAD = "malformed_payload"
    TRANSIENT_STORAGE = "transient_storage"
    ENRICHMENT_FAILED = "enrichment_failed"
    PROCESSING_ERROR = "processing_error"


# Type aliases for loosely structured payloads
RawPayload = dict[str, Any]
MessageContent = dict[str, Any]
