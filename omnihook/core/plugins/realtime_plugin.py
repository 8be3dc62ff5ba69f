"""
RealtimePlugin - conversation change notifications.

Channel pattern: {REALTIME_CHANNEL_PREFIX}:{organization_id}

Uses Redis PubSub when REDIS_URL is set and falls back to logging the
notifications otherwise, so ingestion never depends on a live subscriber.
"""

from typing import TYPE_CHECKING

from omnihook.core.config.settings import Settings, settings
from omnihook.core.logging.logger import get_app_logger
from omnihook.realtime.publisher import (
    RealtimePublisher,
    RedisRealtimePublisher,
    create_publisher,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

    from omnihook.core.factory.builder import OmnihookBuilder


class RealtimePlugin:
    """
    Puts a RealtimePublisher on ``app.state.publisher``.

    Usage:
        builder.add_plugin(RealtimePlugin())  # from REDIS_URL
        builder.add_plugin(RealtimePlugin(publisher=my_publisher))

    Subscription example:
        SUBSCRIBE omnihook:<organization_id>
    """

    def __init__(
        self, publisher: RealtimePublisher | None = None, config: Settings | None = None
    ):
        self.config = config or settings
        self._publisher = publisher

    def configure(self, builder: "OmnihookBuilder") -> None:
        builder.add_startup_hook(self._startup_hook, priority=25)
        builder.add_shutdown_hook(self._shutdown_hook, priority=25)
        get_app_logger().debug("RealtimePlugin configured")

    async def startup(self, app: "FastAPI") -> None:
        await self._startup_hook(app)

    async def shutdown(self, app: "FastAPI") -> None:
        await self._shutdown_hook(app)

    async def _startup_hook(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        if self._publisher is None:
            self._publisher = create_publisher(self.config)

        if isinstance(self._publisher, RedisRealtimePublisher):
            if await self._publisher.ping():
                logger.info("Realtime notifications via Redis PubSub")
            else:
                # Publishing failures are logged per message; startup continues
                logger.warning("Redis not reachable - realtime notifications will be dropped")
        else:
            logger.info(f"Realtime notifications via {type(self._publisher).__name__}")

        app.state.publisher = self._publisher

    async def _shutdown_hook(self, app: "FastAPI") -> None:
        if self._publisher is not None:
            await self._publisher.close()
            get_app_logger().info("Realtime publisher closed")

        if hasattr(app.state, "publisher"):
            del app.state.publisher
