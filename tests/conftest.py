"""
Pytest configuration and common fixtures for omnihook tests.

Every storage test runs against a fresh SQLite file through aiosqlite, with
the platform accounts of two organizations seeded.
"""

import os
import tempfile
from collections.abc import Generator

import pytest
import pytest_asyncio

from omnihook.core.background import TaskTracker
from omnihook.core.config.settings import Settings
from omnihook.core.gateway import WebhookGateway
from omnihook.database.models import PlatformAccount
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.types import PlatformType

from tests.factories import (
    TEST_SECRETS,
    TEST_VERIFY_TOKENS,
    FakeProfileFetcher,
    RecordingPublisher,
    seed_accounts,
)


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "PROD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("FACEBOOK_APP_SECRET", TEST_SECRETS[PlatformType.FACEBOOK])
    monkeypatch.setenv("INSTAGRAM_APP_SECRET", TEST_SECRETS[PlatformType.INSTAGRAM])
    monkeypatch.setenv("WHATSAPP_APP_SECRET", TEST_SECRETS[PlatformType.WHATSAPP])
    monkeypatch.setenv("LINE_CHANNEL_SECRET", TEST_SECRETS[PlatformType.LINE])
    monkeypatch.setenv("FACEBOOK_VERIFY_TOKEN", TEST_VERIFY_TOKENS[PlatformType.FACEBOOK])
    monkeypatch.setenv("INSTAGRAM_VERIFY_TOKEN", TEST_VERIFY_TOKENS[PlatformType.INSTAGRAM])
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", TEST_VERIFY_TOKENS[PlatformType.WHATSAPP])
    monkeypatch.setenv("ALLOW_UNSIGNED_WEBHOOKS", "false")
    monkeypatch.setenv("ENRICHMENT_ENABLED", "true")
    monkeypatch.setenv("WEBHOOK_BACKGROUND_PROCESSING", "false")
    monkeypatch.setenv("REALTIME_CHANNEL_PREFIX", "omnihook-test")
    monkeypatch.delenv("REDIS_URL", raising=False)


@pytest.fixture
def test_settings(setup_test_env) -> Settings:
    """Settings read from the test environment."""
    return Settings()


@pytest.fixture
def temp_db() -> Generator[str, None, None]:
    """Create a temporary SQLite database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    yield f"sqlite+aiosqlite:///{db_path}"

    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest_asyncio.fixture
async def session_manager(temp_db):
    """Initialized session manager with all tables created."""
    manager = SessionManager(temp_db, max_retries=8, base_delay=0.01, max_delay=0.2)
    await manager.initialize()
    await manager.create_tables()
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture
async def accounts(session_manager) -> dict[tuple[str, PlatformType], PlatformAccount]:
    """Seeded platform accounts keyed by (organization, platform)."""
    rows = await seed_accounts(session_manager)
    return {(row.organization_id, row.platform): row for row in rows}


@pytest.fixture
def publisher(test_settings) -> RecordingPublisher:
    return RecordingPublisher(test_settings)


@pytest.fixture
def profile_fetcher() -> FakeProfileFetcher:
    return FakeProfileFetcher()


@pytest.fixture
def tracker() -> TaskTracker:
    return TaskTracker()


@pytest_asyncio.fixture
async def gateway(session_manager, accounts, publisher, profile_fetcher, tracker, test_settings):
    """Gateway over the seeded database with recording collaborators."""
    gateway = WebhookGateway(
        session_manager,
        publisher=publisher,
        profile_fetcher=profile_fetcher,
        tracker=tracker,
        config=test_settings,
    )
    yield gateway
    await tracker.drain(timeout=5)
