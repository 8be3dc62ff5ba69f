"""
Tests for the dead-letter store.
"""

from uuid import uuid4

import pytest

from omnihook.core.errors import MalformedPayloadError, TransientStorageError
from omnihook.schemas.core.events import ProviderEvent
from omnihook.schemas.core.types import ErrorCode, PlatformType
from omnihook.services.dead_letter import DeadLetterStore


class TestDeadLetterStore:
    @pytest.mark.asyncio
    async def test_record_keeps_payload_and_error(self, session_manager):
        store = DeadLetterStore(session_manager)
        provider_event = ProviderEvent(
            platform=PlatformType.LINE,
            index=0,
            kind="message",
            account_external_id="U_BOT_A",
            data={"type": "message"},
        )

        entry = await store.record(
            PlatformType.LINE,
            MalformedPayloadError("line: missing message id", PlatformType.LINE),
            raw_payload={"destination": "U_BOT_A", "events": []},
            provider_event=provider_event,
        )

        stored = await store.get(entry.id)
        assert stored.platform == "line"
        assert stored.error_code == ErrorCode.MALFORMED_PAYLOAD.value
        assert stored.error_message == "line: missing message id"
        assert stored.retryable is False
        assert stored.raw_payload == {"destination": "U_BOT_A", "events": []}
        assert stored.provider_event["kind"] == "message"
        assert stored.event_snapshot is None

    @pytest.mark.asyncio
    async def test_transient_errors_are_retryable(self, session_manager):
        store = DeadLetterStore(session_manager)

        entry = await store.record("whatsapp", TransientStorageError("pool exhausted"))

        assert entry.retryable is True
        assert entry.error_code == ErrorCode.TRANSIENT_STORAGE.value

    @pytest.mark.asyncio
    async def test_unexpected_errors_recorded_as_processing_error(self, session_manager):
        store = DeadLetterStore(session_manager)

        entry = await store.record(PlatformType.FACEBOOK, KeyError("x"))

        assert entry.error_code == ErrorCode.PROCESSING_ERROR.value

    @pytest.mark.asyncio
    async def test_list_filters_and_hides_resolved(self, session_manager):
        store = DeadLetterStore(session_manager)
        line = await store.record(PlatformType.LINE, MalformedPayloadError("a"))
        await store.record(PlatformType.FACEBOOK, MalformedPayloadError("b"))

        assert [entry.id for entry in await store.list(platform="line")] == [line.id]
        assert len(await store.list()) == 2

        await store.mark_replayed(line.id, resolved=True)

        assert len(await store.list()) == 1
        assert len(await store.list(include_resolved=True)) == 2

    @pytest.mark.asyncio
    async def test_mark_replayed_counts_attempts(self, session_manager):
        store = DeadLetterStore(session_manager)
        entry = await store.record(PlatformType.LINE, MalformedPayloadError("a"))

        await store.mark_replayed(entry.id, resolved=False)
        updated = await store.mark_replayed(entry.id, resolved=False)

        assert updated.replay_count == 2
        assert updated.replayed_at is not None
        assert updated.resolved_at is None

    @pytest.mark.asyncio
    async def test_unknown_id(self, session_manager):
        store = DeadLetterStore(session_manager)

        assert await store.get(uuid4()) is None
        assert await store.mark_replayed(uuid4(), resolved=True) is None
