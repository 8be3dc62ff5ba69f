"""
Realtime change notifications.

Notifications are lightweight "something changed" signals: subscribers
re-read the conversation from storage. Channel pattern:
``{prefix}:org:{organization_id}:conversations``.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis

from omnihook.core.config.settings import Settings, settings
from omnihook.core.logging.logger import get_logger
from omnihook.schemas.core.events import RealtimeNotification

logger = get_logger(__name__)


def channel_for(organization_id: str, prefix: str | None = None) -> str:
    """Build the conversations channel of an organization."""
    return f"{prefix or settings.realtime_channel_prefix}:org:{organization_id}:conversations"


class RealtimePublisher(ABC):
    """Publishes notifications to a topic. Must never raise."""

    def __init__(self, config: Settings | None = None):
        self.settings = config or settings

    def topic_for(self, notification: RealtimeNotification) -> str:
        return channel_for(notification.organization_id, self.settings.realtime_channel_prefix)

    async def notify(self, notification: RealtimeNotification) -> int:
        """Publish a notification on its organization's channel."""
        return await self.publish(self.topic_for(notification), notification)

    @abstractmethod
    async def publish(self, topic: str, payload: RealtimeNotification) -> int:
        """
        Publish a notification.

        Args:
            topic: Channel name
            payload: Notification to send

        Returns:
            Number of subscribers that received it (0 on failure)
        """
        pass

    async def close(self) -> None:
        """Release connections, if any."""
        return None

    @staticmethod
    def _encode(payload: RealtimeNotification) -> str:
        data: dict[str, Any] = payload.model_dump(mode="json")
        data["v"] = "1"
        return json.dumps(data)


class RedisRealtimePublisher(RealtimePublisher):
    """Redis pub/sub publisher."""

    def __init__(
        self,
        redis_url: str | None = None,
        client: aioredis.Redis | None = None,
        config: Settings | None = None,
    ):
        super().__init__(config)
        self.redis_url = redis_url or self.settings.redis_url
        self._client = client

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            if not self.redis_url:
                raise RuntimeError("RedisRealtimePublisher requires REDIS_URL")
            self._client = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._client

    async def publish(self, topic: str, payload: RealtimeNotification) -> int:
        try:
            subscribers = await self.client.publish(topic, self._encode(payload))
            logger.debug(
                f"Published {payload.event_kind.value} to {topic}: {subscribers} subscriber(s)"
            )
            return subscribers
        except Exception as e:
            logger.error(f"Failed to publish to {topic}: {e}", exc_info=True)
            return 0

    async def ping(self) -> bool:
        """Check the Redis connection."""
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LoggingRealtimePublisher(RealtimePublisher):
    """Fallback used when no Redis is configured: notifications go to the log."""

    async def publish(self, topic: str, payload: RealtimeNotification) -> int:
        logger.info(f"Realtime {topic}: {self._encode(payload)}")
        return 0


def create_publisher(config: Settings | None = None) -> RealtimePublisher:
    """Pick the Redis publisher when REDIS_URL is set, the logging one otherwise."""
    config = config or settings
    if config.redis_url:
        return RedisRealtimePublisher(config=config)
    return LoggingRealtimePublisher(config=config)
