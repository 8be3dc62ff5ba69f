"""
Exception taxonomy for webhook ingestion.

AuthenticationError rejects a whole request. Every other error is scoped to a
single event: the gateway dead-letters it and moves on to the next one.
"""

from omnihook.schemas.core.types import ErrorCode, PlatformType


class IngestionError(Exception):
    """Base exception for ingestion-related errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        platform: PlatformType | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.platform = platform
        super().__init__(message)


class AuthenticationError(IngestionError):
    """Raised when a signature or handshake token does not check out."""

    def __init__(
        self,
        message: str,
        platform: PlatformType | None = None,
        error_code: ErrorCode = ErrorCode.SIGNATURE_VALIDATION_FAILED,
    ):
        super().__init__(message, error_code, platform)


class ChallengeNotSupportedError(IngestionError):
    """Raised when a handshake is requested for a platform without one."""

    def __init__(self, platform: PlatformType):
        super().__init__(
            f"{platform.value} does not use a subscription handshake",
            ErrorCode.CHALLENGE_NOT_SUPPORTED,
            platform,
        )


class UnknownPlatformError(IngestionError):
    """Raised when a route names a platform without a registered processor."""

    def __init__(self, platform: str):
        super().__init__(
            f"Unknown platform: {platform}", ErrorCode.UNKNOWN_PLATFORM, None
        )
        self.platform_name = platform


class ConfigurationError(IngestionError):
    """Raised when the event cannot be attributed (unknown tenant, missing secret)."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.TENANT_NOT_FOUND,
        platform: PlatformType | None = None,
    ):
        super().__init__(message, error_code, platform)


class MalformedPayloadError(IngestionError):
    """Raised when a payload or one of its events has an unrecognized shape."""

    def __init__(self, message: str, platform: PlatformType | None = None):
        super().__init__(message, ErrorCode.MALFORMED_PAYLOAD, platform)


class TransientStorageError(IngestionError):
    """Raised when storage keeps failing after the retry budget is spent."""

    retryable = True

    def __init__(self, message: str, platform: PlatformType | None = None):
        super().__init__(message, ErrorCode.TRANSIENT_STORAGE, platform)


class EnrichmentError(IngestionError):
    """Raised when a profile fetch fails. Never fails the event."""

    def __init__(self, message: str, platform: PlatformType | None = None):
        super().__init__(message, ErrorCode.ENRICHMENT_FAILED, platform)


__all__ = [
    "AuthenticationError",
    "ChallengeNotSupportedError",
    "ConfigurationError",
    "EnrichmentError",
    "IngestionError",
    "MalformedPayloadError",
    "TransientStorageError",
    "UnknownPlatformError",
]
