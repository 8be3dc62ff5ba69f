"""
Subscription handshake for providers that verify webhook URLs.

Meta-family and WhatsApp-style providers send a GET with ``hub.mode``,
``hub.verify_token`` and ``hub.challenge``; the challenge is echoed back only
when the token matches the one configured for that platform.
"""

import hmac

from omnihook.core.config.settings import Settings, settings
from omnihook.core.errors import AuthenticationError, ChallengeNotSupportedError
from omnihook.core.logging.logger import get_logger
from omnihook.schemas.core.types import ErrorCode, PlatformType

CHALLENGE_PLATFORMS = frozenset(
    {PlatformType.FACEBOOK, PlatformType.INSTAGRAM, PlatformType.WHATSAPP}
)


class ChallengeResponder:
    """Answers subscription handshakes with the configured per-platform token."""

    def __init__(self, config: Settings | None = None):
        self.settings = config or settings
        self.logger = get_logger(__name__)

    def respond(
        self,
        platform: PlatformType,
        mode: str | None,
        verify_token: str | None,
        challenge: str | None,
    ) -> str:
        """
        Validate a handshake and return the challenge to echo.

        Args:
            platform: Platform being verified
            mode: ``hub.mode`` query value, must be "subscribe"
            verify_token: ``hub.verify_token`` query value
            challenge: ``hub.challenge`` query value

        Returns:
            The challenge string, verbatim

        Raises:
            ChallengeNotSupportedError: Platform has no handshake (LINE)
            AuthenticationError: Wrong mode, token or missing challenge
        """
        if platform not in CHALLENGE_PLATFORMS:
            raise ChallengeNotSupportedError(platform)

        if mode != "subscribe" or not challenge:
            raise AuthenticationError(
                "Not a subscription verification request",
                platform,
                ErrorCode.CHALLENGE_FAILED,
            )

        expected = self.settings.verify_token_for(platform.value)
        if not expected:
            self.logger.error(f"No verify token configured for {platform.value}")
            raise AuthenticationError(
                f"Verify token not configured for {platform.value}",
                platform,
                ErrorCode.MISSING_SECRET,
            )

        if not verify_token or not hmac.compare_digest(
            expected.encode("utf-8"), verify_token.encode("utf-8")
        ):
            self.logger.error(f"Invalid verification token received for {platform.value}")
            raise AuthenticationError(
                "Invalid verification token", platform, ErrorCode.CHALLENGE_FAILED
            )

        self.logger.info(f"Webhook verification successful for {platform.value}")
        return challenge
