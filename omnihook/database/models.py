"""
Database models for ingested conversations.

SQLModel tables with explicit SQLAlchemy columns. Uniqueness guarantees live
in the schema: the resolvers and the message writer rely on these constraints
instead of in-process locks.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from omnihook.schemas.core.types import (
    ConversationStatus,
    MessageStatus,
    MessageType,
    PlatformType,
    SenderType,
)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# SQL Utilities for Enum Handling
# =============================================================================


def enum_values(enum_cls: type[Enum]) -> list:
    """
    Extract enum values for SQLAlchemy enum configuration.

    This is a top-level function (not lambda) so it can be pickled.

    Args:
        enum_cls: The enum class to extract values from

    Returns:
        List of enum values (not keys)
    """
    return [member.value for member in enum_cls]


def get_enum_column(
    enum_cls: type[Enum],
    column_name: str,
    nullable: bool = False,
    native_enum: bool = False,
    **column_kwargs: Any,
) -> Column:
    """
    Create a SQLAlchemy Column for enum fields with proper configuration.

    Values are stored as their string values so partial-index predicates
    such as ``status = 'open'`` work on every backend.

    Args:
        enum_cls: The enum class
        column_name: Name for the database enum type (e.g., "platform_t")
        nullable: Whether the column allows NULL values
        native_enum: Whether to use native database enum support
        **column_kwargs: Extra Column arguments (index, default, ...)

    Returns:
        SQLAlchemy Column configured for the enum
    """
    return Column(
        SAEnum(
            enum_cls,
            name=column_name,
            values_callable=enum_values,
            native_enum=native_enum,
            validate_strings=True,
        ),
        nullable=nullable,
        **column_kwargs,
    )


def _created_at_column() -> Column:
    return Column(DateTime(timezone=True), nullable=False)


# =============================================================================
# Platform Account Model
# =============================================================================


class PlatformAccount(SQLModel, table=True):
    """
    A connected page, channel or phone number owned by one organization.

    Written by the external OAuth flow; read-only to ingestion.
    """

    __tablename__ = "platform_accounts"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "platform", "account_id", name="uq_platform_accounts_key"
        ),
        Index("ix_platform_accounts_lookup", "platform", "account_id", "is_active"),
    )

    id: UUID = Field(default_factory=uuid4, sa_column=Column(Uuid, primary_key=True))
    organization_id: str = Field(sa_column=Column(Text, nullable=False, index=True))
    platform: PlatformType = Field(
        sa_column=get_enum_column(PlatformType, column_name="platform_t")
    )
    account_id: str = Field(
        sa_column=Column(Text, nullable=False),
        description="External page / channel / phone number id",
    )
    account_name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    access_token: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default=text("true")),
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())


# =============================================================================
# Customer Models
# =============================================================================


class Customer(SQLModel, table=True):
    """
    A person writing to an organization, possibly on several platforms.

    ``platform_identities`` maps platform → {id, account_id, display_name,
    avatar_url, locale, timezone, last_synced_at}.
    """

    __tablename__ = "customers"

    id: UUID = Field(default_factory=uuid4, sa_column=Column(Uuid, primary_key=True))
    organization_id: str = Field(sa_column=Column(Text, nullable=False, index=True))
    display_name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    avatar_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    locale: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    timezone: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    platform_identities: dict = Field(
        default_factory=dict, sa_column=Column(JSONType, nullable=False)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())

    def identity(self, platform: PlatformType | str) -> dict[str, Any]:
        """Get the stored identity for a platform (empty dict if unknown)."""
        key = platform.value if isinstance(platform, PlatformType) else platform
        return dict(self.platform_identities.get(key) or {})

    def needs_enrichment(self, platform: PlatformType | str) -> bool:
        """Check if the platform identity lacks profile fields and was never synced."""
        identity = self.identity(platform)
        if identity.get("last_synced_at"):
            return False
        return not identity.get("display_name") or not identity.get("avatar_url")


class CustomerIdentity(SQLModel, table=True):
    """
    Lookup row (organization, platform, external id) → customer.

    The unique constraint is the dedupe key for lazy customer creation.
    """

    __tablename__ = "customer_identities"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "platform", "external_id", name="uq_customer_identities_key"
        ),
    )

    id: UUID = Field(default_factory=uuid4, sa_column=Column(Uuid, primary_key=True))
    organization_id: str = Field(sa_column=Column(Text, nullable=False))
    platform: PlatformType = Field(
        sa_column=get_enum_column(PlatformType, column_name="platform_t")
    )
    external_id: str = Field(sa_column=Column(Text, nullable=False))
    customer_id: UUID = Field(
        sa_column=Column(
            Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
        )
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())


# =============================================================================
# Conversation Model
# =============================================================================


class Conversation(SQLModel, table=True):
    """
    A thread between an organization's account and one customer.

    At most one ``open`` conversation exists per (organization, platform,
    platform_conversation_id), enforced by a partial unique index.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index(
            "uq_conversations_open_key",
            "organization_id",
            "platform",
            "platform_conversation_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index(
            "ix_conversations_key",
            "organization_id",
            "platform",
            "platform_conversation_id",
        ),
    )

    id: UUID = Field(default_factory=uuid4, sa_column=Column(Uuid, primary_key=True))
    organization_id: str = Field(sa_column=Column(Text, nullable=False))
    platform: PlatformType = Field(
        sa_column=get_enum_column(PlatformType, column_name="platform_t")
    )
    platform_conversation_id: str = Field(sa_column=Column(Text, nullable=False))
    customer_id: UUID | None = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("customers.id"), nullable=True),
    )
    platform_account_id: UUID | None = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("platform_accounts.id"), nullable=True),
    )
    status: ConversationStatus = Field(
        default=ConversationStatus.OPEN,
        sa_column=get_enum_column(ConversationStatus, column_name="conversation_status_t"),
    )
    message_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default=text("0"))
    )
    unread_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default=text("0"))
    )
    last_message_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())


# =============================================================================
# Message Model
# =============================================================================


class Message(SQLModel, table=True):
    """
    One message inside a conversation.

    ``platform_message_id`` is unique within its conversation; it is the key
    that turns provider redeliveries into no-ops.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "platform_message_id", name="uq_messages_platform_id"
        ),
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: UUID = Field(default_factory=uuid4, sa_column=Column(Uuid, primary_key=True))
    conversation_id: UUID = Field(
        sa_column=Column(
            Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
        )
    )
    platform_message_id: str = Field(sa_column=Column(Text, nullable=False))
    sender_type: SenderType = Field(
        sa_column=get_enum_column(SenderType, column_name="sender_type_t")
    )
    sender_id: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    message_type: MessageType = Field(
        sa_column=get_enum_column(MessageType, column_name="message_type_t")
    )
    content: dict = Field(default_factory=dict, sa_column=Column(JSONType, nullable=False))
    status: MessageStatus = Field(
        default=MessageStatus.SENT,
        sa_column=get_enum_column(MessageStatus, column_name="message_status_t"),
    )
    delivered_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    read_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=_created_at_column(),
        description="Provider event timestamp",
    )


# =============================================================================
# Dead Letter Model
# =============================================================================


class DeadLetterEvent(SQLModel, table=True):
    """A webhook event that could not be ingested, kept for reconciliation."""

    __tablename__ = "dead_letter_events"

    id: UUID = Field(default_factory=uuid4, sa_column=Column(Uuid, primary_key=True))
    platform: str = Field(sa_column=Column(Text, nullable=False, index=True))
    organization_id: str | None = Field(
        default=None, sa_column=Column(Text, nullable=True)
    )
    error_code: str = Field(sa_column=Column(Text, nullable=False))
    error_message: str = Field(sa_column=Column(Text, nullable=False))
    retryable: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("false")),
    )
    raw_payload: dict | None = Field(
        default=None, sa_column=Column(JSONType, nullable=True)
    )
    provider_event: dict | None = Field(
        default=None, sa_column=Column(JSONType, nullable=True)
    )
    event_snapshot: dict | None = Field(
        default=None, sa_column=Column(JSONType, nullable=True)
    )
    replay_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default=text("0"))
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_created_at_column())
    replayed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    resolved_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


ALL_MODELS: list[type[SQLModel]] = [
    PlatformAccount,
    Customer,
    CustomerIdentity,
    Conversation,
    Message,
    DeadLetterEvent,
]

__all__ = [
    "ALL_MODELS",
    "Conversation",
    "Customer",
    "CustomerIdentity",
    "DeadLetterEvent",
    "Message",
    "PlatformAccount",
    "enum_values",
    "get_enum_column",
    "utcnow",
]
