"""
OmnihookBuilder - plugin-based FastAPI application factory.

Plugins register middleware, routers and prioritized lifespan hooks; the
builder assembles them into one FastAPI app with a single lifespan.
"""

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from .plugin import OmnihookPlugin

LifespanHook = Callable[[FastAPI], Awaitable[None]]


class OmnihookBuilder:
    """
    Fluent builder for omnihook applications.

    Example:
        app = (OmnihookBuilder()
               .add_plugin(DatabasePlugin())
               .add_plugin(RealtimePlugin())
               .add_plugin(OmnihookCorePlugin())
               .configure(title="omnihook")
               .build())
    """

    def __init__(self):
        self.plugins: list[OmnihookPlugin] = []
        self.middlewares: list[tuple[type, dict, int]] = []  # (class, kwargs, priority)
        self.routers: list[tuple[Any, dict]] = []  # (router, include_kwargs)
        self.startup_hooks: list[tuple[LifespanHook, int]] = []
        self.shutdown_hooks: list[tuple[LifespanHook, int]] = []
        self.config_overrides: dict[str, Any] = {}

    def add_plugin(self, plugin: "OmnihookPlugin") -> "OmnihookBuilder":
        """Add a plugin; it is configured when build() runs."""
        self.plugins.append(plugin)
        return self

    def add_middleware(
        self, middleware_class: type, priority: int = 50, **kwargs: Any
    ) -> "OmnihookBuilder":
        """
        Add middleware with priority ordering.

        Args:
            middleware_class: Middleware class to add
            priority: Lower numbers wrap outermost
            **kwargs: Middleware configuration parameters
        """
        self.middlewares.append((middleware_class, kwargs, priority))
        return self

    def add_router(self, router: Any, **kwargs: Any) -> "OmnihookBuilder":
        """Add a router; kwargs go to app.include_router()."""
        self.routers.append((router, kwargs))
        return self

    def add_startup_hook(self, hook: LifespanHook, priority: int = 50) -> "OmnihookBuilder":
        """
        Add a startup hook. Lower priorities run first.

        Priority guidelines:
        - 10: Logging, HTTP session
        - 20: Database
        - 25: Realtime publisher
        - 30: Gateway wiring
        - 50: User hooks (default)
        """
        self.startup_hooks.append((hook, priority))
        return self

    def add_shutdown_hook(self, hook: LifespanHook, priority: int = 50) -> "OmnihookBuilder":
        """
        Add a shutdown hook. Higher priorities run first, so the gateway
        drains its background tasks before the database closes.
        """
        self.shutdown_hooks.append((hook, priority))
        return self

    def configure(self, **overrides: Any) -> "OmnihookBuilder":
        """Override FastAPI constructor arguments."""
        self.config_overrides.update(overrides)
        return self

    def build(self) -> FastAPI:
        """
        Build the FastAPI application.

        Plugins are configured first (sync registration only), then the app
        is created with the unified lifespan, middleware is added by priority
        and routers are included.

        Returns:
            Configured FastAPI application
        """
        logger = get_app_logger()

        for plugin in self.plugins:
            plugin.configure(self)
        logger.debug(
            f"Configured {len(self.plugins)} plugin(s): {len(self.middlewares)} middleware, "
            f"{len(self.routers)} router(s), {len(self.startup_hooks)} startup hook(s), "
            f"{len(self.shutdown_hooks)} shutdown hook(s)"
        )

        @asynccontextmanager
        async def unified_lifespan(app: FastAPI):
            try:
                await self._execute_all_startup_hooks(app)
                logger.info("All startup hooks completed")
                yield
            finally:
                await self._execute_all_shutdown_hooks(app)
                logger.info("All shutdown hooks completed")

        config = {
            "title": "omnihook",
            "description": "Multi-platform chat webhook ingestion",
            "version": "0.1.0",
            "lifespan": unified_lifespan,
        }
        config.update(self.config_overrides)
        app = FastAPI(**config)

        # add_middleware prepends, so the outermost middleware is added last
        for middleware_class, kwargs, priority in sorted(
            self.middlewares, key=lambda item: item[2], reverse=True
        ):
            app.add_middleware(middleware_class, **kwargs)
            logger.debug(f"Added middleware {middleware_class.__name__} (priority: {priority})")

        for router, kwargs in self.routers:
            app.include_router(router, **kwargs)

        return app

    async def _execute_all_startup_hooks(self, app: FastAPI) -> None:
        """Run startup hooks in priority order, failing fast."""
        logger = get_app_logger()

        for hook, priority in sorted(self.startup_hooks, key=lambda item: item[1]):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"Executing startup hook: {hook_name} (priority: {priority})")
            try:
                await hook(app)
            except Exception as e:
                logger.error(f"Startup hook {hook_name} failed: {e}", exc_info=True)
                raise

    async def _execute_all_shutdown_hooks(self, app: FastAPI) -> None:
        """Run shutdown hooks in reverse priority order; errors are logged per hook."""
        logger = get_app_logger()

        for hook, priority in sorted(self.shutdown_hooks, key=lambda item: item[1], reverse=True):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"Executing shutdown hook: {hook_name} (priority: {priority})")
            try:
                await hook(app)
            except Exception as e:
                logger.error(f"Error in shutdown hook {hook_name}: {e}", exc_info=True)
