"""
Dead-letter store for events that could not be ingested.

Entries keep the raw provider payload, the provider event and (when
normalization succeeded) the canonical event, so an operator can inspect and
replay them.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from omnihook.core.errors import IngestionError
from omnihook.core.logging.logger import get_logger
from omnihook.database.models import DeadLetterEvent
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.events import ProcessedWebhookEvent, ProviderEvent
from omnihook.schemas.core.types import ErrorCode, PlatformType


class DeadLetterStore:
    """Persists and reads dead-lettered events."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.logger = get_logger(__name__)

    async def record(
        self,
        platform: PlatformType | str,
        error: Exception,
        raw_payload: dict[str, Any] | None = None,
        provider_event: ProviderEvent | None = None,
        event_snapshot: ProcessedWebhookEvent | None = None,
        organization_id: str | None = None,
    ) -> DeadLetterEvent:
        """
        Store a failed event.

        Args:
            platform: Platform (or raw route name) the event came from
            error: Failure that stopped ingestion; non-IngestionError
                exceptions are stored as ``processing_error``
            raw_payload: Whole delivery body
            provider_event: Provider event that failed, if splitting worked
            event_snapshot: Canonical event, if normalization worked
            organization_id: Tenant, if resolution worked

        Returns:
            The stored DeadLetterEvent
        """
        if isinstance(error, IngestionError):
            error_code, retryable = error.error_code, error.retryable
        else:
            error_code, retryable = ErrorCode.PROCESSING_ERROR, False

        entry = DeadLetterEvent(
            platform=platform.value if isinstance(platform, PlatformType) else str(platform),
            organization_id=organization_id,
            error_code=error_code.value,
            error_message=str(error) or error.__class__.__name__,
            retryable=retryable,
            raw_payload=raw_payload,
            provider_event=provider_event.model_dump(mode="json") if provider_event else None,
            event_snapshot=event_snapshot.model_dump(mode="json") if event_snapshot else None,
        )

        async def insert(session: AsyncSession) -> DeadLetterEvent:
            session.add(entry)
            await session.flush()
            return entry

        stored = await self.session_manager.run(insert, "Dead letter write")
        self.logger.warning(
            f"Dead-lettered {entry.platform} event {stored.id}: "
            f"{entry.error_code} - {entry.error_message}"
        )
        return stored

    async def get(self, dead_letter_id: UUID) -> DeadLetterEvent | None:
        """Get one entry by id."""

        async def lookup(session: AsyncSession) -> DeadLetterEvent | None:
            return await session.get(DeadLetterEvent, dead_letter_id)

        return await self.session_manager.run(lookup, "Dead letter lookup")

    async def list(
        self,
        limit: int = 50,
        platform: str | None = None,
        include_resolved: bool = False,
    ) -> list[DeadLetterEvent]:
        """
        List entries, newest first.

        Args:
            limit: Maximum number of entries
            platform: Only entries of this platform
            include_resolved: Also return entries already replayed successfully
        """

        async def lookup(session: AsyncSession) -> list[DeadLetterEvent]:
            statement = select(DeadLetterEvent)
            if platform:
                statement = statement.where(DeadLetterEvent.platform == platform)
            if not include_resolved:
                statement = statement.where(DeadLetterEvent.resolved_at.is_(None))
            statement = statement.order_by(DeadLetterEvent.created_at.desc()).limit(limit)
            result = await session.execute(statement)
            return list(result.scalars().all())

        return await self.session_manager.run(lookup, "Dead letter list")

    async def mark_replayed(self, dead_letter_id: UUID, resolved: bool) -> DeadLetterEvent | None:
        """
        Record a replay attempt.

        Args:
            dead_letter_id: Entry that was replayed
            resolved: Whether the replay ingested the event
        """

        async def apply(session: AsyncSession) -> DeadLetterEvent | None:
            entry = await session.get(DeadLetterEvent, dead_letter_id)
            if entry is None:
                return None
            now = datetime.now(UTC)
            entry.replay_count += 1
            entry.replayed_at = now
            if resolved:
                entry.resolved_at = now
            session.add(entry)
            return entry

        return await self.session_manager.run(apply, "Dead letter replay update")
