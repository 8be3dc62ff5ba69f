"""
Canonical event models shared by processors, resolvers and the gateway.

Processors turn provider payloads into ProcessedWebhookEvent instances; the
gateway persists them and emits RealtimeNotification payloads after commits.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .types import EventKind, MessageStatus, MessageType, PlatformType, SenderType

UNSUPPORTED_ATTACHMENT_TEXT = "[Unsupported attachment]"
UNSUPPORTED_MESSAGE_TEXT = "[Unsupported message]"


def canonical_conversation_id(account_external_id: str, customer_external_id: str) -> str:
    """
    Build the deterministic conversation key for an account/customer pair.

    Every processor and the conversation resolver must go through this helper
    so that lookups never diverge.

    Args:
        account_external_id: Page, channel or phone number id of the account
        customer_external_id: Platform user id of the customer

    Returns:
        ``"{account_external_id}_{customer_external_id}"``
    """
    return f"{account_external_id}_{customer_external_id}"


def timestamp_from_millis(value: Any) -> datetime:
    """Convert a millisecond epoch (int or numeric string) to an aware datetime."""
    if value is None or value == "":
        return datetime.now(UTC)
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


def timestamp_from_seconds(value: Any) -> datetime:
    """Convert a second epoch (int or numeric string) to an aware datetime."""
    if value is None or value == "":
        return datetime.now(UTC)
    return datetime.fromtimestamp(int(value), tz=UTC)


def timestamp_from_epoch(value: Any) -> datetime:
    """
    Convert an epoch of unknown unit to an aware datetime.

    Meta sends milliseconds on messaging events and seconds on some change
    events; anything above 10^11 is treated as milliseconds.
    """
    if value is None or value == "":
        return datetime.now(UTC)
    number = int(value)
    if number > 10**11:
        return timestamp_from_millis(number)
    return timestamp_from_seconds(number)


class ProviderEvent(BaseModel):
    """
    One provider-level event split out of a webhook delivery.

    Keeps just enough envelope context to normalize the event on its own,
    so a malformed sibling never blocks it.
    """

    model_config = ConfigDict(frozen=True)

    platform: PlatformType
    index: int = Field(..., ge=0, description="Position inside the delivery")
    kind: str = Field(..., description="Provider event family (messaging, change, ...)")
    account_external_id: str | None = Field(
        None, description="Account id taken from the envelope"
    )
    data: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(
        default_factory=dict, description="Envelope data shared by sibling events"
    )


class ProcessedWebhookEvent(BaseModel):
    """
    Normalized, platform-agnostic representation of one inbound occurrence.

    Message events carry ``external_message_id``, ``message_type`` and
    ``content``; receipt events carry ``receipt_message_ids`` and/or a
    ``watermark`` instead.
    """

    model_config = ConfigDict(use_enum_values=False)

    platform: PlatformType
    event_kind: EventKind
    account_external_id: str = Field(..., min_length=1)
    external_customer_id: str = Field(..., min_length=1)
    external_message_id: str | None = None
    message_type: MessageType | None = None
    content: dict[str, Any] = Field(default_factory=dict)
    sender_type: SenderType = SenderType.CUSTOMER
    sender_external_id: str | None = None
    customer_name: str | None = None
    receipt_message_ids: list[str] = Field(default_factory=list)
    watermark: datetime | None = None
    error_message: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    raw: dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def external_conversation_id(self) -> str:
        """Canonical conversation key of this event."""
        return canonical_conversation_id(
            self.account_external_id, self.external_customer_id
        )

    @property
    def is_receipt(self) -> bool:
        """Check if this event updates existing messages."""
        return self.event_kind.is_receipt or self.is_send_confirmation

    @property
    def is_send_confirmation(self) -> bool:
        """Check if this is a provider's confirmation of an outbound message it sent."""
        return (
            self.event_kind == EventKind.MESSAGE_SENT
            and self.external_message_id is None
            and bool(self.receipt_message_ids)
        )

    @property
    def receipt_status(self) -> MessageStatus | None:
        """Status a receipt moves its messages to."""
        if self.is_send_confirmation:
            return MessageStatus.SENT
        return self.event_kind.receipt_status

    def summary(self) -> str:
        """Short description for log lines."""
        detail = self.external_message_id or ",".join(self.receipt_message_ids)
        if not detail and self.watermark:
            detail = f"watermark={self.watermark.isoformat()}"
        return f"{self.event_kind.value} {self.external_conversation_id} {detail}".strip()


class RealtimeNotification(BaseModel):
    """Change notification published after each committed write."""

    organization_id: str
    conversation_id: str
    message_id: str | None = None
    message_ids: list[str] = Field(default_factory=list)
    platform: PlatformType
    event_kind: EventKind
    timestamp: datetime
