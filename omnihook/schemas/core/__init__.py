"""
Core canonical schemas shared by every platform.
"""

from .events import (
    UNSUPPORTED_ATTACHMENT_TEXT,
    UNSUPPORTED_MESSAGE_TEXT,
    ProcessedWebhookEvent,
    ProviderEvent,
    RealtimeNotification,
    canonical_conversation_id,
    timestamp_from_epoch,
    timestamp_from_millis,
    timestamp_from_seconds,
)
from .types import (
    ConversationStatus,
    ErrorCode,
    EventKind,
    MessageStatus,
    MessageType,
    PlatformType,
    SenderType,
)

__all__ = [
    "UNSUPPORTED_ATTACHMENT_TEXT",
    "UNSUPPORTED_MESSAGE_TEXT",
    "ConversationStatus",
    "ErrorCode",
    "EventKind",
    "MessageStatus",
    "MessageType",
    "PlatformType",
    "ProcessedWebhookEvent",
    "ProviderEvent",
    "RealtimeNotification",
    "SenderType",
    "canonical_conversation_id",
    "timestamp_from_epoch",
    "timestamp_from_millis",
    "timestamp_from_seconds",
]
