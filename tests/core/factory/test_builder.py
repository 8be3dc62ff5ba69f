"""
Test suite for OmnihookBuilder.

Covers plugin configuration, middleware ordering, router inclusion and the
prioritized lifespan hooks.
"""

import pytest
from fastapi import APIRouter, FastAPI, Request
from fastapi.testclient import TestClient
from starlette.middleware.base import BaseHTTPMiddleware

from omnihook.core.factory import OmnihookBuilder


class RecordingPlugin:
    """Plugin that registers hooks appending to a shared call log."""

    def __init__(self, name: str, calls: list[str], priority: int = 50):
        self.name = name
        self.calls = calls
        self.priority = priority

    def configure(self, builder: OmnihookBuilder) -> None:
        self.calls.append(f"{self.name}:configure")
        builder.add_startup_hook(self.startup, priority=self.priority)
        builder.add_shutdown_hook(self.shutdown, priority=self.priority)

    async def startup(self, app: FastAPI) -> None:
        self.calls.append(f"{self.name}:startup")

    async def shutdown(self, app: FastAPI) -> None:
        self.calls.append(f"{self.name}:shutdown")


class OrderMiddleware(BaseHTTPMiddleware):
    """Middleware recording the order requests pass through it."""

    def __init__(self, app, name: str, calls: list[str]):
        super().__init__(app)
        self.name = name
        self.calls = calls

    async def dispatch(self, request: Request, call_next):
        self.calls.append(f"{self.name}_start")
        response = await call_next(request)
        self.calls.append(f"{self.name}_end")
        return response


def ping_router() -> APIRouter:
    router = APIRouter()

    @router.get("/ping")
    async def ping():
        return {"pong": True}

    return router


class TestOmnihookBuilderCore:
    """Test fluent registration."""

    def test_builder_initialization(self):
        builder = OmnihookBuilder()

        assert builder.plugins == []
        assert builder.middlewares == []
        assert builder.routers == []
        assert builder.startup_hooks == []
        assert builder.shutdown_hooks == []
        assert builder.config_overrides == {}

    def test_fluent_interface(self):
        builder = OmnihookBuilder()
        calls: list[str] = []

        result = (
            builder.add_plugin(RecordingPlugin("a", calls))
            .add_middleware(OrderMiddleware, priority=80, name="m", calls=calls)
            .add_router(ping_router(), prefix="/v1")
            .configure(title="custom")
        )

        assert result is builder
        middleware_class, kwargs, priority = builder.middlewares[0]
        assert middleware_class is OrderMiddleware
        assert kwargs == {"name": "m", "calls": calls}
        assert priority == 80
        assert builder.routers[0][1] == {"prefix": "/v1"}
        assert builder.config_overrides == {"title": "custom"}

    def test_build_configures_plugins_and_overrides(self):
        calls: list[str] = []
        builder = OmnihookBuilder().add_plugin(RecordingPlugin("a", calls))

        app = builder.configure(title="custom", version="9.9.9").build()

        assert calls == ["a:configure"]
        assert app.title == "custom"
        assert app.version == "9.9.9"
        assert len(builder.startup_hooks) == 1

    def test_default_metadata(self):
        app = OmnihookBuilder().build()

        assert app.title == "omnihook"


class TestOmnihookBuilderLifespan:
    """Test hook ordering through the unified lifespan."""

    def test_startup_ascending_shutdown_descending(self):
        calls: list[str] = []
        app = (
            OmnihookBuilder()
            .add_plugin(RecordingPlugin("gateway", calls, priority=30))
            .add_plugin(RecordingPlugin("core", calls, priority=10))
            .add_plugin(RecordingPlugin("database", calls, priority=20))
            .build()
        )

        with TestClient(app):
            pass

        lifecycle = [call for call in calls if not call.endswith(":configure")]
        assert lifecycle == [
            "core:startup",
            "database:startup",
            "gateway:startup",
            "gateway:shutdown",
            "database:shutdown",
            "core:shutdown",
        ]

    def test_failing_startup_hook_aborts_start(self):
        calls: list[str] = []

        async def broken(app: FastAPI) -> None:
            raise RuntimeError("database unreachable")

        app = (
            OmnihookBuilder()
            .add_plugin(RecordingPlugin("core", calls, priority=10))
            .add_startup_hook(broken, priority=20)
            .build()
        )

        with pytest.raises(RuntimeError, match="database unreachable"):
            with TestClient(app):
                pass

        # Hooks that already ran still get shut down
        assert "core:shutdown" in calls

    def test_failing_shutdown_hook_does_not_stop_others(self):
        calls: list[str] = []

        async def broken(app: FastAPI) -> None:
            raise RuntimeError("close failed")

        app = (
            OmnihookBuilder()
            .add_plugin(RecordingPlugin("core", calls, priority=10))
            .add_shutdown_hook(broken, priority=30)
            .build()
        )

        with TestClient(app):
            pass

        assert calls[-1] == "core:shutdown"


class TestOmnihookBuilderMiddleware:
    """Test middleware priority ordering."""

    def test_lower_priority_wraps_outermost(self):
        calls: list[str] = []
        app = (
            OmnihookBuilder()
            .add_middleware(OrderMiddleware, priority=20, name="logging", calls=calls)
            .add_middleware(OrderMiddleware, priority=10, name="errors", calls=calls)
            .add_router(ping_router())
            .build()
        )

        with TestClient(app) as client:
            response = client.get("/ping")

        assert response.json() == {"pong": True}
        assert calls == ["errors_start", "logging_start", "logging_end", "errors_end"]
