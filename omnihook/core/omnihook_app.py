"""
Application factory.

Assembles the standard omnihook app from its plugins. Every collaborator can
be injected, which is how the tests and the CLI reuse the same wiring.
"""

from fastapi import FastAPI

from omnihook.core.config.settings import Settings, settings
from omnihook.core.factory.builder import OmnihookBuilder
from omnihook.core.logging.logger import get_app_logger
from omnihook.core.plugins import DatabasePlugin, OmnihookCorePlugin, RealtimePlugin
from omnihook.database.session_manager import SessionManager
from omnihook.realtime.publisher import RealtimePublisher
from omnihook.services.profile_enrichment import ProfileFetcher


def create_builder(
    config: Settings | None = None,
    session_manager: SessionManager | None = None,
    publisher: RealtimePublisher | None = None,
    profile_fetcher: ProfileFetcher | None = None,
) -> OmnihookBuilder:
    """
    Create a builder preloaded with the core, database and realtime plugins.

    Callers may add their own plugins, middleware or hooks before build().
    """
    config = config or settings
    return (
        OmnihookBuilder()
        .add_plugin(OmnihookCorePlugin(profile_fetcher, config=config))
        .add_plugin(DatabasePlugin(session_manager=session_manager, config=config))
        .add_plugin(RealtimePlugin(publisher, config=config))
        .configure(
            version=config.version,
            docs_url="/docs" if config.is_development else None,
            redoc_url="/redoc" if config.is_development else None,
        )
    )


def create_app(
    config: Settings | None = None,
    session_manager: SessionManager | None = None,
    publisher: RealtimePublisher | None = None,
    profile_fetcher: ProfileFetcher | None = None,
) -> FastAPI:
    """
    Build the omnihook FastAPI application.

    Args:
        config: Settings override (defaults to the environment)
        session_manager: Existing session manager; otherwise one is created
            from DATABASE_URL at startup
        publisher: Realtime publisher; otherwise chosen from REDIS_URL
        profile_fetcher: Profile source for customer enrichment

    Returns:
        FastAPI application; resources open in its lifespan
    """
    app = create_builder(config, session_manager, publisher, profile_fetcher).build()
    get_app_logger().debug("omnihook application built")
    return app
