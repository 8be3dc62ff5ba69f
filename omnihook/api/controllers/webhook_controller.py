"""
Webhook controller.

Routes handle HTTP parsing; the controller maps gateway outcomes to the
status codes and bodies providers expect. The gateway lives on
``app.state.gateway`` (set by OmnihookCorePlugin).
"""

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from omnihook.core.errors import (
    AuthenticationError,
    ChallengeNotSupportedError,
    MalformedPayloadError,
    UnknownPlatformError,
)
from omnihook.core.gateway import WebhookGateway
from omnihook.core.logging.context import get_context_info
from omnihook.core.logging.logger import get_logger


class WebhookController:
    """Handles webhook verification and delivery for every platform."""

    def __init__(self):
        self.logger = get_logger(__name__)

    @staticmethod
    def _gateway(request: Request) -> WebhookGateway:
        gateway = getattr(request.app.state, "gateway", None)
        if gateway is None:
            raise RuntimeError("Webhook gateway not initialized - is OmnihookCorePlugin active?")
        return gateway

    async def verify_webhook(
        self,
        request: Request,
        platform: str,
        hub_mode: str | None = None,
        hub_verify_token: str | None = None,
        hub_challenge: str | None = None,
    ) -> PlainTextResponse:
        """
        Handle the subscription handshake.

        Args:
            request: FastAPI request object
            platform: Platform route segment
            hub_mode: ``hub.mode`` (must be "subscribe")
            hub_verify_token: ``hub.verify_token``
            hub_challenge: ``hub.challenge``

        Returns:
            PlainTextResponse echoing the challenge

        Raises:
            HTTPException: 404 for unknown platforms or platforms without a
                handshake, 403 for a failed verification
        """
        gateway = self._gateway(request)

        try:
            challenge = gateway.verify_challenge(
                platform, hub_mode, hub_verify_token, hub_challenge
            )
        except (UnknownPlatformError, ChallengeNotSupportedError) as e:
            raise HTTPException(status_code=404, detail=e.message) from e
        except AuthenticationError as e:
            raise HTTPException(status_code=403, detail=e.message) from e

        return PlainTextResponse(content=challenge)

    async def process_webhook(self, request: Request, platform: str) -> JSONResponse:
        """
        Handle a webhook delivery.

        The signature is checked against the raw body before anything is
        parsed. With background processing on, the provider is acknowledged
        as soon as the delivery is split into events.

        Args:
            request: FastAPI request object
            platform: Platform route segment

        Returns:
            ``{"success": true}`` or ``{"success": false, "message": ...}``
        """
        gateway = self._gateway(request)
        raw_body = await request.body()

        try:
            payload, events = await gateway.accept_delivery(platform, raw_body, request.headers)
        except UnknownPlatformError as e:
            return JSONResponse(status_code=404, content={"success": False, "message": e.message})
        except AuthenticationError as e:
            self.logger.warning(f"Rejected {platform} webhook: {e.message}")
            return JSONResponse(status_code=401, content={"success": False, "message": e.message})
        except MalformedPayloadError as e:
            # Already dead-lettered; a non-2xx would only trigger provider retries
            return JSONResponse(status_code=200, content={"success": False, "message": e.message})

        self.logger.debug(f"Context after accept: {get_context_info()}")
        raw_payload = payload if isinstance(payload, dict) else None

        if gateway.settings.webhook_background_processing:
            gateway.tracker.spawn(
                gateway.process(platform, events, raw_payload=raw_payload),
                name=f"webhook-{platform}",
            )
            return JSONResponse(status_code=200, content={"success": True})

        result = await gateway.process(platform, events, raw_payload=raw_payload)
        return JSONResponse(
            status_code=200, content={"success": True, "result": result.to_dict()}
        )
