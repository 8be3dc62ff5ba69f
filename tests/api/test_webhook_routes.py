"""
HTTP tests for the webhook and health routes.

The app is built with the standard plugins against a temporary SQLite file;
accounts are seeded by a startup hook so everything runs on the app's loop.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from omnihook.core.omnihook_app import create_builder
from omnihook.schemas.core.types import EventKind, PlatformType

from tests.factories import (
    TEST_VERIFY_TOKENS,
    FakeProfileFetcher,
    RecordingPublisher,
    line_message,
    line_payload,
    meta_message,
    meta_payload,
    seed_accounts,
    signed,
    whatsapp_payload,
    whatsapp_text,
)


@pytest.fixture
def app_settings(test_settings, temp_db):
    test_settings.database_url = temp_db
    test_settings.storage_max_retries = 8
    test_settings.storage_base_delay = 0.01
    test_settings.storage_max_delay = 0.2
    return test_settings


@pytest.fixture
def publisher(app_settings) -> RecordingPublisher:
    return RecordingPublisher(app_settings)


@pytest.fixture
def app(app_settings, publisher) -> FastAPI:
    async def seed(app: FastAPI) -> None:
        await seed_accounts(app.state.session_manager)

    return (
        create_builder(app_settings, publisher=publisher, profile_fetcher=FakeProfileFetcher())
        .add_startup_hook(seed, priority=22)
        .build()
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def post_signed(client, platform: PlatformType, payload):
    body, headers = signed(platform, payload)
    return client.post(f"/webhooks/{platform.value}", content=body, headers=headers)


class TestVerification:
    def test_handshake_echoes_challenge(self, client):
        response = client.get(
            "/webhooks/whatsapp",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": TEST_VERIFY_TOKENS[PlatformType.WHATSAPP],
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 200
        assert response.text == "1158201444"
        assert response.headers["content-type"].startswith("text/plain")

    def test_wrong_token_is_forbidden(self, client):
        response = client.get(
            "/webhooks/facebook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    def test_line_has_no_handshake(self, client):
        response = client.get("/webhooks/line", params={"hub.mode": "subscribe"})

        assert response.status_code == 404

    def test_unknown_platform(self, client):
        assert client.get("/webhooks/telegram").status_code == 404


class TestDelivery:
    def test_signed_delivery_is_ingested(self, client):
        payload = line_payload(
            "U_BOT_A", [line_message("U_1", {"id": "100", "type": "text", "text": "hi"})]
        )

        response = post_signed(client, PlatformType.LINE, payload)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["processed"] == 1

    def test_invalid_signature_is_unauthorized(self, client):
        body, headers = signed(PlatformType.FACEBOOK, meta_payload("PAGE_A", messaging=[]))
        headers["x-hub-signature-256"] = "sha256=" + "0" * 64

        response = client.post("/webhooks/facebook", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_missing_signature_is_unauthorized(self, client):
        response = client.post("/webhooks/whatsapp", content=b"{}")

        assert response.status_code == 401

    def test_unknown_platform_delivery(self, client):
        response = client.post("/webhooks/telegram", content=b"{}")

        assert response.status_code == 404

    def test_malformed_envelope_is_acknowledged(self, client):
        response = post_signed(client, PlatformType.LINE, {"events": []})

        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_event_failure_still_returns_200(self, client):
        payload = meta_payload(
            "PAGE_UNKNOWN",
            messaging=[meta_message("PSID_1", "PAGE_UNKNOWN", "m1", text="hello")],
        )

        response = post_signed(client, PlatformType.FACEBOOK, payload)

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["failed"] == 1
        assert len(result["dead_letter_ids"]) == 1

    def test_notifications_published_to_tenant_channel(self, app, publisher):
        payload = whatsapp_payload("PHONE_A", messages=[whatsapp_text("6681", "wamid.1", "hi")])

        with TestClient(app) as client:
            post_signed(client, PlatformType.WHATSAPP, payload)

        # Shutdown drains pending publishes and closes the publisher
        assert [topic for topic, _ in publisher.published] == [
            "omnihook-test:org:org-a:conversations"
        ]
        assert publisher.notifications[0].event_kind == EventKind.MESSAGE_RECEIVED
        assert publisher.closed is True


class TestBackgroundProcessing:
    def test_acknowledges_before_processing(self, app_settings, app, publisher):
        app_settings.webhook_background_processing = True
        payload = line_payload(
            "U_BOT_B", [line_message("U_9", {"id": "900", "type": "text", "text": "later"})]
        )

        with TestClient(app) as client:
            response = post_signed(client, PlatformType.LINE, payload)

        assert response.json() == {"success": True}
        assert [n.organization_id for n in publisher.notifications] == ["org-b"]


class TestCapabilitiesAndHealth:
    def test_capabilities(self, client):
        response = client.get("/webhooks/line/capabilities")

        assert response.status_code == 200
        assert response.json()["supports_challenge"] is False
        assert client.get("/webhooks/telegram/capabilities").status_code == 404

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["database"] == "operational"
        assert data["services"]["realtime"] == "RecordingPublisher"

    def test_detailed_health_hides_secrets(self, client, app_settings, monkeypatch):
        monkeypatch.setattr("omnihook.api.routes.health.settings", app_settings)

        data = client.get("/health/detailed").json()

        assert data["platform_configs"]["line"] == {
            "secret_configured": True,
            "verify_token_configured": False,
        }
        assert "line-channel-secret" not in str(data)
