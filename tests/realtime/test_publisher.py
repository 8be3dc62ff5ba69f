"""
Tests for realtime notification publishers.
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from omnihook.realtime.publisher import (
    LoggingRealtimePublisher,
    RedisRealtimePublisher,
    channel_for,
    create_publisher,
)
from omnihook.schemas.core.events import RealtimeNotification
from omnihook.schemas.core.types import EventKind, PlatformType


def notification(**overrides) -> RealtimeNotification:
    fields = {
        "organization_id": "org-a",
        "conversation_id": "c0ffee00-0000-0000-0000-000000000001",
        "message_id": "c0ffee00-0000-0000-0000-000000000002",
        "message_ids": ["m1"],
        "platform": PlatformType.LINE,
        "event_kind": EventKind.MESSAGE_RECEIVED,
        "timestamp": datetime(2024, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return RealtimeNotification(**fields)


def redis_client(**methods) -> MagicMock:
    client = MagicMock()
    client.publish = methods.get("publish", AsyncMock(return_value=2))
    client.ping = methods.get("ping", AsyncMock(return_value=True))
    client.aclose = AsyncMock()
    return client


class TestChannels:
    def test_channel_pattern(self):
        assert channel_for("org-a", "omnihook") == "omnihook:org:org-a:conversations"

    def test_publisher_uses_configured_prefix(self, test_settings):
        publisher = LoggingRealtimePublisher(test_settings)

        assert publisher.topic_for(notification()) == (
            "omnihook-test:org:org-a:conversations"
        )

    def test_create_publisher_without_redis(self, test_settings):
        assert isinstance(create_publisher(test_settings), LoggingRealtimePublisher)

    def test_create_publisher_with_redis(self, test_settings):
        test_settings.redis_url = "redis://localhost:6379/0"

        publisher = create_publisher(test_settings)

        assert isinstance(publisher, RedisRealtimePublisher)
        assert publisher.redis_url == "redis://localhost:6379/0"


class TestRedisRealtimePublisher:
    @pytest.mark.asyncio
    async def test_notify_publishes_versioned_json(self, test_settings):
        client = redis_client()
        publisher = RedisRealtimePublisher(client=client, config=test_settings)

        delivered = await publisher.notify(notification())

        assert delivered == 2
        topic, body = client.publish.call_args.args
        assert topic == "omnihook-test:org:org-a:conversations"
        data = json.loads(body)
        assert data["v"] == "1"
        assert data["event_kind"] == "message.received"
        assert data["platform"] == "line"
        assert data["message_ids"] == ["m1"]

    @pytest.mark.asyncio
    async def test_publish_failure_returns_zero(self, test_settings):
        client = redis_client(publish=AsyncMock(side_effect=ConnectionError("down")))
        publisher = RedisRealtimePublisher(client=client, config=test_settings)

        assert await publisher.notify(notification()) == 0

    @pytest.mark.asyncio
    async def test_ping(self, test_settings):
        healthy = RedisRealtimePublisher(client=redis_client(), config=test_settings)
        broken = RedisRealtimePublisher(
            client=redis_client(ping=AsyncMock(side_effect=ConnectionError("down"))),
            config=test_settings,
        )

        assert await healthy.ping() is True
        assert await broken.ping() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self, test_settings):
        client = redis_client()
        publisher = RedisRealtimePublisher(client=client, config=test_settings)

        await publisher.close()
        await publisher.close()

        client.aclose.assert_awaited_once()

    def test_client_requires_url(self, test_settings):
        publisher = RedisRealtimePublisher(config=test_settings)

        with pytest.raises(RuntimeError):
            publisher.client


class TestLoggingRealtimePublisher:
    @pytest.mark.asyncio
    async def test_never_raises(self, test_settings):
        publisher = LoggingRealtimePublisher(test_settings)

        assert await publisher.notify(notification(message_id=None)) == 0
