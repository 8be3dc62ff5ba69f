"""
Delivery and read receipt propagation.

Status only moves forward along sending → sent → delivered → read, with
failed reachable from sending/sent. Every UPDATE carries the allowed
predecessor statuses in its WHERE clause, so out-of-order or repeated
receipts are no-ops at the storage level.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from omnihook.core.logging.logger import get_logger
from omnihook.database.models import Conversation, Message
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.types import MessageStatus, PlatformType, SenderType

# Target status -> statuses a message may currently hold to move there
STATUS_PREDECESSORS: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.SENDING: frozenset(),
    MessageStatus.SENT: frozenset({MessageStatus.SENDING}),
    MessageStatus.DELIVERED: frozenset({MessageStatus.SENDING, MessageStatus.SENT}),
    MessageStatus.READ: frozenset(
        {MessageStatus.SENDING, MessageStatus.SENT, MessageStatus.DELIVERED}
    ),
    MessageStatus.FAILED: frozenset({MessageStatus.SENDING, MessageStatus.SENT}),
}


def can_transition(current: MessageStatus, target: MessageStatus) -> bool:
    """Check if a message in ``current`` may move to ``target``."""
    return current in STATUS_PREDECESSORS[target]


@dataclass
class StatusUpdateResult:
    """Messages a receipt actually moved, grouped by conversation."""

    status: MessageStatus
    updated: dict[UUID, list[str]] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return sum(len(ids) for ids in self.updated.values())


class StatusPropagator:
    """Applies receipts to messages of one organization's conversation key."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.logger = get_logger(__name__)

    async def update_by_ids(
        self,
        organization_id: str,
        platform: PlatformType,
        conversation_key: str,
        message_ids: list[str],
        status: MessageStatus,
        at: datetime,
        error: str | None = None,
    ) -> StatusUpdateResult:
        """
        Move the listed messages to ``status`` where the transition is forward.

        Args:
            organization_id: Tenant owning the conversation
            platform: Platform of the receipt
            conversation_key: Canonical conversation id
            message_ids: Provider message ids named by the receipt
            status: Target status
            at: Receipt time, stamped into delivered_at / read_at
            error: Failure reason for ``failed`` receipts

        Returns:
            The messages that changed
        """
        if not message_ids:
            return StatusUpdateResult(status=status)

        def scope(statement):
            return statement.where(Message.platform_message_id.in_(message_ids))

        return await self._apply(
            organization_id, platform, conversation_key, status, at, error, scope
        )

    async def update_by_watermark(
        self,
        organization_id: str,
        platform: PlatformType,
        conversation_key: str,
        before: datetime,
        status: MessageStatus,
        agent_id: str | None = None,
    ) -> StatusUpdateResult:
        """
        Move every outbound message created at or before ``before`` to ``status``.

        Customer messages are never touched. When ``agent_id`` is given only
        that sender's messages are considered.

        Returns:
            The messages that changed
        """

        def scope(statement):
            statement = statement.where(
                Message.sender_type != SenderType.CUSTOMER,
                Message.created_at <= before,
            )
            if agent_id is not None:
                statement = statement.where(Message.sender_id == agent_id)
            return statement

        return await self._apply(
            organization_id, platform, conversation_key, status, before, None, scope
        )

    async def _apply(
        self,
        organization_id: str,
        platform: PlatformType,
        conversation_key: str,
        status: MessageStatus,
        at: datetime,
        error: str | None,
        scope,
    ) -> StatusUpdateResult:
        predecessors = STATUS_PREDECESSORS[status]
        if not predecessors:
            return StatusUpdateResult(status=status)

        conversation_ids = (
            select(Conversation.id)
            .where(
                Conversation.organization_id == organization_id,
                Conversation.platform == platform,
                Conversation.platform_conversation_id == conversation_key,
            )
            .scalar_subquery()
        )

        async def apply(session: AsyncSession) -> StatusUpdateResult:
            candidates = scope(
                select(Message.id, Message.conversation_id, Message.platform_message_id).where(
                    Message.conversation_id.in_(conversation_ids),
                    Message.status.in_(predecessors),
                )
            )
            rows = (await session.execute(candidates)).all()
            if not rows:
                return StatusUpdateResult(status=status)

            values: dict[str, Any] = {"status": status}
            if status == MessageStatus.DELIVERED:
                values["delivered_at"] = func.coalesce(Message.delivered_at, at)
            elif status == MessageStatus.READ:
                values["delivered_at"] = func.coalesce(Message.delivered_at, at)
                values["read_at"] = func.coalesce(Message.read_at, at)
            elif status == MessageStatus.FAILED and error:
                values["error_message"] = error

            # Predecessor check repeated so a concurrent receipt cannot be undone
            await session.execute(
                update(Message)
                .where(
                    Message.id.in_([row.id for row in rows]),
                    Message.status.in_(predecessors),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            updated: dict[UUID, list[str]] = defaultdict(list)
            for row in rows:
                updated[row.conversation_id].append(row.platform_message_id)
            return StatusUpdateResult(status=status, updated=dict(updated))

        result = await self.session_manager.run(apply, f"Status update ({status.value})")
        if result.count:
            self.logger.debug(
                f"Marked {result.count} message(s) {status.value} in {conversation_key}"
            )
        return result
