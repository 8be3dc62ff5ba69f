"""
Webhook routes.

One GET (handshake) and one POST (delivery) endpoint per platform, both
delegating to WebhookController.
"""

from fastapi import APIRouter, HTTPException, Query, Request

from omnihook.api.controllers import WebhookController
from omnihook.core.errors import UnknownPlatformError


def create_webhook_router() -> APIRouter:
    """
    Create the webhook router with controller delegation.

    Returns:
        APIRouter serving ``/webhooks/{platform}``
    """
    webhook_controller = WebhookController()

    router = APIRouter(
        prefix="/webhooks",
        tags=["Webhooks"],
        responses={
            401: {"description": "Unauthorized - Invalid webhook signature"},
            403: {"description": "Forbidden - Webhook verification failed"},
            404: {"description": "Not Found - Unknown platform"},
            500: {"description": "Internal Server Error"},
        },
    )

    @router.get("/{platform}")
    async def verify_webhook(
        request: Request,
        platform: str,
        hub_mode: str | None = Query(None, alias="hub.mode"),
        hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
        hub_challenge: str | None = Query(None, alias="hub.challenge"),
    ):
        """Answer the subscription handshake of Meta-family and WhatsApp providers."""
        return await webhook_controller.verify_webhook(
            request=request,
            platform=platform,
            hub_mode=hub_mode,
            hub_verify_token=hub_verify_token,
            hub_challenge=hub_challenge,
        )

    @router.post("/{platform}")
    async def process_webhook(request: Request, platform: str):
        """
        Receive a webhook delivery.

        The body is read raw (not parsed by FastAPI) so the signature is
        checked against the exact bytes the provider signed.
        """
        return await webhook_controller.process_webhook(request=request, platform=platform)

    @router.get("/{platform}/capabilities")
    async def platform_capabilities(request: Request, platform: str):
        """Describe what a platform's processor supports."""
        gateway = request.app.state.gateway
        try:
            processor = gateway.processors.get_processor(platform)
        except UnknownPlatformError as e:
            raise HTTPException(status_code=404, detail=e.message) from e
        return processor.capabilities.to_dict()

    return router
