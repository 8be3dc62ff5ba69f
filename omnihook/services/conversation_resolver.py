"""
Conversation resolution keyed by the canonical conversation id.

The partial unique index on open conversations is the only guard against
duplicates: concurrent first messages both try to insert, one wins, the
other catches the IntegrityError and re-reads.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from omnihook.core.logging.logger import get_logger
from omnihook.database.models import Conversation
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.types import ConversationStatus, PlatformType


class ConversationResolver:
    """Finds or opens the conversation for an account/customer pair."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.logger = get_logger(__name__)

    async def resolve(
        self,
        organization_id: str,
        platform: PlatformType,
        canonical_conversation_id: str,
        customer_id: UUID | None = None,
        platform_account_id: UUID | None = None,
    ) -> Conversation:
        """
        Return the open conversation for a key, creating it if none is open.

        Args:
            organization_id: Tenant owning the conversation
            platform: Platform of the conversation
            canonical_conversation_id: ``{account}_{customer}`` key
            customer_id: Customer to attach on creation
            platform_account_id: Account to attach on creation

        Returns:
            The open Conversation (existing, new, or a concurrent winner)
        """
        conversation = await self._find_open(organization_id, platform, canonical_conversation_id)
        if conversation is not None:
            return conversation

        async def create(session: AsyncSession) -> Conversation:
            conversation = Conversation(
                organization_id=organization_id,
                platform=platform,
                platform_conversation_id=canonical_conversation_id,
                customer_id=customer_id,
                platform_account_id=platform_account_id,
                status=ConversationStatus.OPEN,
                message_count=0,
                unread_count=0,
            )
            session.add(conversation)
            await session.flush()
            return conversation

        try:
            conversation = await self.session_manager.run(create, "Conversation create")
        except IntegrityError:
            conversation = await self._find_open(
                organization_id, platform, canonical_conversation_id
            )
            if conversation is None:
                raise
            self.logger.debug(
                f"Conversation {canonical_conversation_id} was opened concurrently"
            )
            return conversation

        self.logger.info(
            f"Opened conversation {conversation.id} for {platform.value} "
            f"key {canonical_conversation_id}"
        )
        return conversation

    async def _find_open(
        self, organization_id: str, platform: PlatformType, key: str
    ) -> Conversation | None:
        return await self._find(organization_id, platform, key, open_only=True)

    async def find_latest(
        self, organization_id: str, platform: PlatformType, canonical_conversation_id: str
    ) -> Conversation | None:
        """Return the newest conversation for a key, whatever its status."""
        return await self._find(
            organization_id, platform, canonical_conversation_id, open_only=False
        )

    async def _find(
        self, organization_id: str, platform: PlatformType, key: str, open_only: bool
    ) -> Conversation | None:
        async def lookup(session: AsyncSession) -> Conversation | None:
            statement = select(Conversation).where(
                Conversation.organization_id == organization_id,
                Conversation.platform == platform,
                Conversation.platform_conversation_id == key,
            )
            if open_only:
                statement = statement.where(Conversation.status == ConversationStatus.OPEN)
            statement = statement.order_by(Conversation.created_at.desc()).limit(1)
            result = await session.execute(statement)
            return result.scalars().first()

        return await self.session_manager.run(lookup, "Conversation lookup")
