"""
Database Plugin

Owns the SessionManager for the record store: connects at startup, creates
the tables when AUTO_CREATE_TABLES is on and disposes the engine at shutdown.
"""

from typing import TYPE_CHECKING

from omnihook.core.config.settings import Settings, settings
from omnihook.core.logging.logger import get_app_logger
from omnihook.database.session_manager import SessionManager

if TYPE_CHECKING:
    from fastapi import FastAPI

    from omnihook.core.factory.builder import OmnihookBuilder


class DatabasePlugin:
    """
    Record store plugin.

    Simple Usage:
        DatabasePlugin()  # DATABASE_URL from the environment

    With an existing manager (tests, CLI):
        DatabasePlugin(session_manager=manager)

    A manager passed in is initialized if needed but never disposed here;
    its owner closes it.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        session_manager: SessionManager | None = None,
        auto_create_tables: bool | None = None,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.url = url or self.config.database_url
        self.auto_create_tables = (
            self.config.auto_create_tables if auto_create_tables is None else auto_create_tables
        )
        self._session_manager = session_manager
        self._owns_manager = session_manager is None

    def configure(self, builder: "OmnihookBuilder") -> None:
        """Register database lifecycle hooks (after core logging, before the gateway)."""
        builder.add_startup_hook(self._db_startup, priority=20)
        builder.add_shutdown_hook(self._db_shutdown, priority=20)
        get_app_logger().debug("DatabasePlugin configured")

    async def startup(self, app: "FastAPI") -> None:
        await self._db_startup(app)

    async def shutdown(self, app: "FastAPI") -> None:
        await self._db_shutdown(app)

    async def _db_startup(self, app: "FastAPI") -> None:
        logger = get_app_logger()
        logger.info("=== DATABASE INITIALIZATION ===")

        if self._session_manager is None:
            self._session_manager = SessionManager(
                self.url,
                pool_size=self.config.db_pool_size,
                max_overflow=self.config.db_max_overflow,
                max_retries=self.config.storage_max_retries,
                base_delay=self.config.storage_base_delay,
                max_delay=self.config.storage_max_delay,
                echo=self.config.db_echo,
            )

        if not self._session_manager.is_initialized():
            await self._session_manager.initialize()

        if not await self._session_manager.health_check():
            logger.warning("Database health check returned unhealthy status")

        if self.auto_create_tables:
            await self._session_manager.create_tables()
            logger.info("Database tables ensured")

        app.state.session_manager = self._session_manager

        health = self._session_manager.get_health_status()
        logger.info(f"Database ready - backend: {health.get('backend', 'unknown')}")
        logger.info("===============================")

    async def _db_shutdown(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        if self._session_manager and self._owns_manager:
            await self._session_manager.cleanup()
            logger.info("Database connections closed")

        if hasattr(app.state, "session_manager"):
            del app.state.session_manager
