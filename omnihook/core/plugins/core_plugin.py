"""
Omnihook Core Plugin

Logging, the shared HTTP session, the middleware stack, the webhook and
health routes, and the WebhookGateway wiring that ties the database and
realtime plugins together.
"""

from typing import TYPE_CHECKING

import aiohttp
from fastapi import FastAPI

from omnihook.api.middleware.error_handler import ErrorHandlerMiddleware
from omnihook.api.middleware.request_logging import RequestLoggingMiddleware
from omnihook.api.routes.health import router as health_router
from omnihook.api.routes.webhooks import create_webhook_router
from omnihook.core.background import TaskTracker
from omnihook.core.config.settings import Settings, settings
from omnihook.core.gateway import WebhookGateway
from omnihook.core.logging.logger import get_app_logger, setup_app_logging
from omnihook.realtime.publisher import LoggingRealtimePublisher
from omnihook.services.profile_enrichment import CompositeProfileFetcher, ProfileFetcher

if TYPE_CHECKING:
    from omnihook.core.factory.builder import OmnihookBuilder


class OmnihookCorePlugin:
    """
    Core omnihook functionality as a plugin.

    Startup runs in two steps: the foundation (logging, HTTP session) at
    priority 10, and the gateway at priority 30 once DatabasePlugin (20) and
    RealtimePlugin (25) have published their resources on ``app.state``.
    At shutdown the gateway drains its background tasks before those
    resources close.
    """

    def __init__(
        self,
        profile_fetcher: ProfileFetcher | None = None,
        *,
        drain_timeout: float = 10.0,
        config: Settings | None = None,
    ):
        """
        Initialize the core plugin.

        Args:
            profile_fetcher: Profile source for customer enrichment; defaults
                to the Graph and LINE APIs when ENRICHMENT_ENABLED is on
            drain_timeout: Seconds to wait for background tasks at shutdown
            config: Settings override
        """
        self.profile_fetcher = profile_fetcher
        self.drain_timeout = drain_timeout
        self.config = config or settings

    def configure(self, builder: "OmnihookBuilder") -> None:
        """
        Register the middleware stack, routes and lifespan hooks.

        Args:
            builder: OmnihookBuilder instance to configure
        """
        # Lower priority wraps outermost
        builder.add_middleware(ErrorHandlerMiddleware, priority=10)
        builder.add_middleware(RequestLoggingMiddleware, priority=20)

        builder.add_router(health_router)
        builder.add_router(create_webhook_router())

        builder.add_startup_hook(self._core_startup, priority=10)
        builder.add_startup_hook(self._gateway_startup, priority=30)
        builder.add_shutdown_hook(self._gateway_shutdown, priority=30)
        builder.add_shutdown_hook(self._core_shutdown, priority=10)

        get_app_logger().debug("OmnihookCorePlugin configured - middleware: 2, routes: 2")

    async def startup(self, app: FastAPI) -> None:
        await self._core_startup(app)
        await self._gateway_startup(app)

    async def shutdown(self, app: FastAPI) -> None:
        await self._gateway_shutdown(app)
        await self._core_shutdown(app)

    async def _core_startup(self, app: FastAPI) -> None:
        setup_app_logging()
        logger = get_app_logger()

        logger.info(f"Starting omnihook v{self.config.version}")
        logger.info(f"Environment: {self.config.environment}")
        logger.info(f"Log level: {self.config.log_level}")
        if self.config.allow_unsigned_webhooks:
            logger.warning("ALLOW_UNSIGNED_WEBHOOKS is on - signatures are not enforced")

        connector = aiohttp.TCPConnector(
            limit=100, keepalive_timeout=30, enable_cleanup_closed=True
        )
        app.state.http_session = aiohttp.ClientSession(
            connector=connector, timeout=aiohttp.ClientTimeout(total=30)
        )
        logger.info("Persistent HTTP session created - connections: 100, keepalive: 30s")

    async def _gateway_startup(self, app: FastAPI) -> None:
        logger = get_app_logger()

        session_manager = getattr(app.state, "session_manager", None)
        if session_manager is None:
            raise RuntimeError("OmnihookCorePlugin requires DatabasePlugin")

        publisher = getattr(app.state, "publisher", None)
        if publisher is None:
            publisher = LoggingRealtimePublisher(self.config)
            app.state.publisher = publisher

        profile_fetcher = self.profile_fetcher
        if profile_fetcher is None and self.config.enrichment_enabled:
            profile_fetcher = CompositeProfileFetcher.for_session(
                app.state.http_session, self.config
            )

        tracker = TaskTracker()
        app.state.task_tracker = tracker
        app.state.gateway = WebhookGateway(
            session_manager,
            publisher=publisher,
            profile_fetcher=profile_fetcher,
            tracker=tracker,
            config=self.config,
        )

        platforms = app.state.gateway.processors.get_supported_platforms()
        logger.info("=== WEBHOOK ENDPOINTS ===")
        for platform in sorted(platforms, key=lambda p: p.value):
            logger.info(f"POST /webhooks/{platform.value}")
        logger.info("=========================")

    async def _gateway_shutdown(self, app: FastAPI) -> None:
        logger = get_app_logger()

        tracker = getattr(app.state, "task_tracker", None)
        if tracker is not None and tracker.pending:
            logger.info(f"Waiting for {tracker.pending} background task(s)")
            await tracker.drain(timeout=self.drain_timeout)

        for name in ("gateway", "task_tracker"):
            if hasattr(app.state, name):
                delattr(app.state, name)

    async def _core_shutdown(self, app: FastAPI) -> None:
        logger = get_app_logger()

        if hasattr(app.state, "http_session"):
            await app.state.http_session.close()
            del app.state.http_session
            logger.info("Persistent HTTP session closed")

        logger.info("omnihook shutdown completed")
