"""
Plugin protocol for OmnihookBuilder.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .builder import OmnihookBuilder


class OmnihookPlugin(Protocol):
    """
    Interface every omnihook plugin implements.

    ``configure`` runs synchronously while the app is being built and only
    registers middleware, routers and lifespan hooks. ``startup`` and
    ``shutdown`` hold the async work (connections, pools, task draining).
    """

    def configure(self, builder: "OmnihookBuilder") -> None:
        """
        Register middleware, routers and hooks with the builder.

        Args:
            builder: OmnihookBuilder instance to configure
        """
        ...

    async def startup(self, app: "FastAPI") -> None:
        """
        Open the resources this plugin owns and publish them on ``app.state``.

        Args:
            app: FastAPI application instance
        """
        ...

    async def shutdown(self, app: "FastAPI") -> None:
        """
        Release what startup opened, in reverse order.

        Args:
            app: FastAPI application instance
        """
        ...
