"""
Request and response logging middleware.

Webhook bodies and signature headers are never logged.
"""

import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from omnihook.core.config.settings import settings
from omnihook.core.logging.logger import get_logger

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-access-token",
        "x-hub-signature",
        "x-hub-signature-256",
        "x-line-signature",
    }
)

SKIP_PATHS = ("/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and its response timing with sanitized headers."""

    def __init__(self, app, log_requests: bool = True, log_responses: bool = True):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.sensitive_headers = SENSITIVE_HEADERS

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        logger = get_logger(__name__)
        skip = self._should_skip_logging(request.url.path)

        if self.log_requests and not skip:
            self._log_request(request, logger)

        response = await call_next(request)
        process_time = time.time() - start_time

        if settings.is_development:
            response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        if self.log_responses and not skip:
            self._log_response(request, response, process_time, logger)

        return response

    @staticmethod
    def _should_skip_logging(path: str) -> bool:
        return any(path.startswith(skip_path) for skip_path in SKIP_PATHS)

    def sanitize_headers(self, headers) -> dict[str, str]:
        """Drop credentials and webhook signatures from a header mapping."""
        return {k: v for k, v in headers.items() if k.lower() not in self.sensitive_headers}

    def _log_request(self, request: Request, logger) -> None:
        log_data: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "headers": self.sanitize_headers(request.headers),
            "client_host": request.client.host if request.client else "unknown",
            "content_type": request.headers.get("content-type", "unknown"),
            "content_length": request.headers.get("content-length"),
        }
        logger.info(f"Incoming {request.method} {request.url.path}", extra={"request": log_data})

    @staticmethod
    def _log_response(request: Request, response: Response, process_time: float, logger) -> None:
        status_code = response.status_code
        if status_code >= 500:
            log_level = "error"
        elif status_code >= 400:
            log_level = "warning"
        else:
            log_level = "info"

        process_time_ms = round(process_time * 1000, 2)
        getattr(logger, log_level)(
            f"Response {status_code} for {request.method} {request.url.path} "
            f"({process_time_ms}ms)",
            extra={"response": {"status_code": status_code, "process_time_ms": process_time_ms}},
        )
