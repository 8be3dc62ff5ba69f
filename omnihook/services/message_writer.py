"""
Idempotent message persistence.

A message is keyed by (conversation_id, platform_message_id). Redeliveries
return the stored row untouched; a new row and the conversation counters
commit together.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from omnihook.core.logging.logger import get_logger
from omnihook.database.models import Conversation, Message
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.types import MessageStatus, MessageType, SenderType


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a message write."""

    created: bool
    message: Message


class MessageWriter:
    """Writes messages and keeps conversation counters in step."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.logger = get_logger(__name__)

    async def write(
        self,
        conversation_id: UUID,
        platform_message_id: str,
        sender_type: SenderType,
        sender_id: str | None,
        message_type: MessageType,
        content: dict[str, Any],
        status: MessageStatus,
        timestamp: datetime,
    ) -> WriteResult:
        """
        Insert a message unless it already exists in the conversation.

        On insert, ``message_count`` is incremented, ``unread_count`` too for
        customer messages, and ``last_message_at`` moves to the event
        timestamp unless a later one is already stored. All of it is SQL-side
        in the same transaction as the insert.

        Args:
            conversation_id: Conversation the message belongs to
            platform_message_id: Provider message id (dedupe key)
            sender_type: Who sent the message
            sender_id: Provider id of the sender, if known
            message_type: Canonical message type
            content: Normalized content payload
            status: Initial delivery status
            timestamp: Provider event time, stored as created_at

        Returns:
            WriteResult with ``created=False`` and the stored row on a duplicate
        """

        async def insert(session: AsyncSession) -> WriteResult:
            existing = await self._find(session, conversation_id, platform_message_id)
            if existing is not None:
                return WriteResult(created=False, message=existing)

            message = Message(
                conversation_id=conversation_id,
                platform_message_id=platform_message_id,
                sender_type=sender_type,
                sender_id=sender_id,
                message_type=message_type,
                content=content,
                status=status,
                created_at=timestamp,
            )
            session.add(message)
            await session.flush()

            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(
                    message_count=Conversation.message_count + 1,
                    unread_count=Conversation.unread_count
                    + (1 if sender_type == SenderType.CUSTOMER else 0),
                    last_message_at=case(
                        (
                            or_(
                                Conversation.last_message_at.is_(None),
                                Conversation.last_message_at < timestamp,
                            ),
                            timestamp,
                        ),
                        else_=Conversation.last_message_at,
                    ),
                    updated_at=datetime.now(UTC),
                )
            )
            return WriteResult(created=True, message=message)

        try:
            result = await self.session_manager.run(insert, "Message write")
        except IntegrityError:
            # A concurrent redelivery inserted it first
            existing = await self.session_manager.run(
                lambda session: self._find(session, conversation_id, platform_message_id),
                "Message lookup",
            )
            if existing is None:
                raise
            return WriteResult(created=False, message=existing)

        if result.created:
            self.logger.debug(
                f"Stored message {platform_message_id} in conversation {conversation_id}"
            )
        else:
            self.logger.info(f"Duplicate message {platform_message_id} ignored")
        return result

    @staticmethod
    async def _find(
        session: AsyncSession, conversation_id: UUID, platform_message_id: str
    ) -> Message | None:
        statement = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.platform_message_id == platform_message_id,
        )
        result = await session.execute(statement)
        return result.scalars().first()
