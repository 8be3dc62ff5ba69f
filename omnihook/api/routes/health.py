"""
Health check endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter, Request

from omnihook.core.config.settings import settings
from omnihook.core.logging.logger import get_api_logger

logger = get_api_logger()
router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """
    Basic health check endpoint.

    Reports database reachability; the service is unhealthy without it.
    """
    start_time = time.time()

    session_manager = getattr(request.app.state, "session_manager", None)
    database_healthy = bool(session_manager) and await session_manager.health_check()

    response_time = time.time() - start_time
    health_data = {
        "status": "healthy" if database_healthy else "unhealthy",
        "timestamp": time.time(),
        "response_time_ms": round(response_time * 1000, 2),
        "environment": {
            "environment": settings.environment,
            "version": settings.version,
            "log_level": settings.log_level,
        },
        "services": {
            "database": "operational" if database_healthy else "unavailable",
            "realtime": type(getattr(request.app.state, "publisher", None)).__name__,
        },
    }

    logger.info(
        f"Health check completed - Status: {health_data['status']}, "
        f"Response Time: {health_data['response_time_ms']}ms"
    )
    return health_data


@router.get("/health/detailed")
async def detailed_health_check(request: Request) -> dict[str, Any]:
    """
    Detailed health check with configuration information.

    Secrets are reported as configured / not configured only.
    """
    session_manager = getattr(request.app.state, "session_manager", None)
    tracker = getattr(request.app.state, "task_tracker", None)

    return {
        "status": "healthy",
        "timestamp": time.time(),
        "application": {
            "name": "omnihook",
            "version": settings.version,
            "environment": settings.environment,
            "is_development": settings.is_development,
        },
        "database": session_manager.get_health_status() if session_manager else None,
        "background_tasks": tracker.pending if tracker else 0,
        "platform_configs": {
            platform: {
                "secret_configured": bool(settings.app_secret_for(platform)),
                "verify_token_configured": bool(settings.verify_token_for(platform)),
            }
            for platform in ("facebook", "instagram", "line", "whatsapp")
        },
        "webhooks": {
            "background_processing": settings.webhook_background_processing,
            "allow_unsigned": settings.allow_unsigned_webhooks,
        },
        "redis": {"configured": settings.has_redis},
    }
