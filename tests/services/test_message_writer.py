"""
Tests for idempotent message persistence and conversation counters.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from omnihook.database.models import Conversation, Message
from omnihook.schemas.core.types import (
    MessageStatus,
    MessageType,
    PlatformType,
    SenderType,
)
from omnihook.services.conversation_resolver import ConversationResolver
from omnihook.services.message_writer import MessageWriter

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def as_naive_utc(value: datetime) -> datetime:
    """SQLite hands timestamps back without tzinfo."""
    return value.replace(tzinfo=None) if value.tzinfo else value


@pytest_asyncio.fixture
async def conversation(session_manager, accounts) -> Conversation:
    resolver = ConversationResolver(session_manager)
    return await resolver.resolve("org-a", PlatformType.LINE, "U_BOT_A_U_1")


async def reload(session_manager, conversation_id) -> Conversation:
    async with session_manager.get_session() as session:
        return await session.get(Conversation, conversation_id)


def write_text(writer, conversation, message_id, timestamp=T0, sender_type=SenderType.CUSTOMER):
    return writer.write(
        conversation_id=conversation.id,
        platform_message_id=message_id,
        sender_type=sender_type,
        sender_id="U_1" if sender_type == SenderType.CUSTOMER else "agent-7",
        message_type=MessageType.TEXT,
        content={"text": message_id},
        status=MessageStatus.DELIVERED
        if sender_type == SenderType.CUSTOMER
        else MessageStatus.SENT,
        timestamp=timestamp,
    )


class TestMessageWriter:
    @pytest.mark.asyncio
    async def test_insert_updates_counters(self, session_manager, conversation):
        writer = MessageWriter(session_manager)

        result = await write_text(writer, conversation, "m1")

        assert result.created is True
        assert result.message.status == MessageStatus.DELIVERED
        stored = await reload(session_manager, conversation.id)
        assert stored.message_count == 1
        assert stored.unread_count == 1
        assert as_naive_utc(stored.last_message_at) == as_naive_utc(T0)

    @pytest.mark.asyncio
    async def test_redelivery_is_a_no_op(self, session_manager, conversation):
        writer = MessageWriter(session_manager)
        first = await write_text(writer, conversation, "m1")

        second = await write_text(writer, conversation, "m1", timestamp=T0 + timedelta(hours=1))

        assert second.created is False
        assert second.message.id == first.message.id
        stored = await reload(session_manager, conversation.id)
        assert stored.message_count == 1
        assert stored.unread_count == 1
        assert as_naive_utc(stored.last_message_at) == as_naive_utc(T0)

    @pytest.mark.asyncio
    async def test_concurrent_redeliveries_store_one_row(self, session_manager, conversation):
        writer = MessageWriter(session_manager)

        results = await asyncio.gather(
            *(write_text(writer, conversation, "m1") for _ in range(4))
        )

        assert sum(result.created for result in results) == 1
        async with session_manager.get_session() as session:
            count = (
                await session.execute(select(func.count()).select_from(Message))
            ).scalar_one()
        assert count == 1
        assert (await reload(session_manager, conversation.id)).message_count == 1

    @pytest.mark.asyncio
    async def test_agent_messages_do_not_count_as_unread(self, session_manager, conversation):
        writer = MessageWriter(session_manager)

        await write_text(writer, conversation, "m1")
        await write_text(writer, conversation, "echo-1", sender_type=SenderType.AGENT)

        stored = await reload(session_manager, conversation.id)
        assert stored.message_count == 2
        assert stored.unread_count == 1

    @pytest.mark.asyncio
    async def test_last_message_at_never_moves_backwards(self, session_manager, conversation):
        writer = MessageWriter(session_manager)

        await write_text(writer, conversation, "late", timestamp=T0 + timedelta(minutes=5))
        await write_text(writer, conversation, "early", timestamp=T0)

        stored = await reload(session_manager, conversation.id)
        assert stored.message_count == 2
        assert as_naive_utc(stored.last_message_at) == as_naive_utc(T0 + timedelta(minutes=5))

    @pytest.mark.asyncio
    async def test_same_platform_id_in_other_conversation(self, session_manager, conversation):
        other = await ConversationResolver(session_manager).resolve(
            "org-a", PlatformType.LINE, "U_BOT_A_U_2"
        )
        writer = MessageWriter(session_manager)

        first = await write_text(writer, conversation, "m1")
        second = await write_text(writer, other, "m1")

        assert first.created and second.created
        assert first.message.id != second.message.id
