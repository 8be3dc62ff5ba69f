"""
Global error handling middleware with platform and tenant context.

Ingestion errors are turned into HTTP responses by the controller; this
middleware only catches what escapes it.
"""

import time
import traceback
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from omnihook.core.config.settings import settings
from omnihook.core.logging.logger import get_logger

WEBHOOK_PATH_PREFIX = "/webhooks/"


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catches unhandled exceptions and returns structured error responses.

    Webhook routes answer with ``{"success": false, "message": ...}`` so
    providers see a consistent body; internals are only exposed in DEV.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except HTTPException as http_exc:
            get_logger(__name__).warning(
                f"HTTP {http_exc.status_code} - {request.method} {request.url.path} - "
                f"Detail: {http_exc.detail}"
            )
            raise

        except Exception as exc:
            return self._handle_unexpected_exception(request, exc)

    def _handle_unexpected_exception(self, request: Request, exc: Exception) -> JSONResponse:
        logger = get_logger(__name__)
        logger.error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )

        if self._is_webhook_endpoint(request.url.path):
            return self._create_webhook_error_response(exc)
        return self._create_api_error_response(exc)

    @staticmethod
    def _is_webhook_endpoint(path: str) -> bool:
        return path.startswith(WEBHOOK_PATH_PREFIX)

    @staticmethod
    def _create_webhook_error_response(exc: Exception) -> JSONResponse:
        error_response: dict[str, Any] = {
            "success": False,
            "message": "Webhook processing failed",
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            }
        return JSONResponse(status_code=500, content=error_response)

    @staticmethod
    def _create_api_error_response(exc: Exception) -> JSONResponse:
        error_response: dict[str, Any] = {
            "detail": "Internal server error",
            "type": "internal_error",
            "timestamp": time.time(),
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n"),
            }
        return JSONResponse(status_code=500, content=error_response)
