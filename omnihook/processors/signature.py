"""
Webhook signature verification over the raw request body.

Signatures are computed strictly over the unparsed bytes; re-serializing a
parsed payload changes whitespace and key order and breaks the HMAC.
"""

import base64
import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from omnihook.core.config.settings import Settings, settings
from omnihook.core.errors import AuthenticationError
from omnihook.core.logging.logger import get_logger
from omnihook.schemas.core.types import ErrorCode, PlatformType


class SignatureEncoding(str, Enum):
    """How a platform encodes its HMAC-SHA256 digest."""

    HEX_PREFIXED = "hex_prefixed"  # sha256=<hex>
    BASE64 = "base64"


@dataclass(frozen=True)
class SignatureScheme:
    """Header and encoding used by one platform."""

    header: str
    encoding: SignatureEncoding


META_SIGNATURE = SignatureScheme("x-hub-signature-256", SignatureEncoding.HEX_PREFIXED)
LINE_SIGNATURE = SignatureScheme("x-line-signature", SignatureEncoding.BASE64)

SIGNATURE_SCHEMES: dict[PlatformType, SignatureScheme] = {
    PlatformType.FACEBOOK: META_SIGNATURE,
    PlatformType.INSTAGRAM: META_SIGNATURE,
    PlatformType.WHATSAPP: META_SIGNATURE,
    PlatformType.LINE: LINE_SIGNATURE,
}


def compute_signature(secret: str, raw_body: bytes, encoding: SignatureEncoding) -> str:
    """
    Compute the signature header value a provider would send.

    Args:
        secret: App or channel secret
        raw_body: Exact request body bytes
        encoding: Platform encoding

    Returns:
        ``sha256=<hex>`` or the base64 digest
    """
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256)
    if encoding == SignatureEncoding.BASE64:
        return base64.b64encode(digest.digest()).decode("ascii")
    return f"sha256={digest.hexdigest()}"


class SignatureVerifier:
    """
    Per-platform authenticity check. Fails closed.

    Missing header, missing configured secret, malformed header or mismatch
    all reject. The only bypass is the explicit ``ALLOW_UNSIGNED_WEBHOOKS``
    flag, logged on every request it lets through.
    """

    def __init__(self, config: Settings | None = None):
        self.settings = config or settings
        self.logger = get_logger(__name__)

    def verify(
        self, platform: PlatformType, raw_body: bytes, headers: Mapping[str, str]
    ) -> bool:
        """
        Check a delivery's signature.

        Args:
            platform: Platform the delivery claims to come from
            raw_body: Unparsed request body
            headers: Request headers (any case)

        Returns:
            True if the signature is valid (or the bypass flag is on)
        """
        try:
            self.require_valid(platform, raw_body, headers)
        except AuthenticationError:
            return False
        return True

    def require_valid(
        self, platform: PlatformType, raw_body: bytes, headers: Mapping[str, str]
    ) -> None:
        """
        Like verify(), but raise on rejection.

        Raises:
            AuthenticationError: With the reason for the rejection
        """
        if self.settings.allow_unsigned_webhooks:
            self.logger.warning(
                f"Signature check bypassed for {platform.value} (ALLOW_UNSIGNED_WEBHOOKS)"
            )
            return

        scheme = SIGNATURE_SCHEMES.get(platform)
        if scheme is None:
            raise AuthenticationError(
                f"No signature scheme for {platform.value}", platform
            )

        secret = self.settings.app_secret_for(platform.value)
        if not secret:
            self.logger.error(f"No signing secret configured for {platform.value}")
            raise AuthenticationError(
                f"Signing secret not configured for {platform.value}",
                platform,
                ErrorCode.MISSING_SECRET,
            )

        lowered = {key.lower(): value for key, value in headers.items()}
        provided = lowered.get(scheme.header)
        if not provided:
            raise AuthenticationError(f"Missing {scheme.header} header", platform)

        if scheme.encoding == SignatureEncoding.HEX_PREFIXED:
            if not provided.startswith("sha256="):
                raise AuthenticationError(
                    "Invalid signature format - must start with 'sha256='", platform
                )
            provided = provided[7:].lower()
            expected = compute_signature(secret, raw_body, scheme.encoding)[7:]
        else:
            expected = compute_signature(secret, raw_body, scheme.encoding)

        if not hmac.compare_digest(
            expected.encode("ascii"), provided.encode("ascii", "replace")
        ):
            self.logger.error(
                f"Webhook signature validation failed for {platform.value}"
            )
            raise AuthenticationError(
                f"Webhook signature validation failed for {platform.value}", platform
            )
