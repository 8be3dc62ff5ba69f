"""
Tests for the subscription handshake.
"""

import pytest

from omnihook.core.errors import AuthenticationError, ChallengeNotSupportedError
from omnihook.processors.challenge import ChallengeResponder
from omnihook.schemas.core.types import ErrorCode, PlatformType

from tests.factories import TEST_VERIFY_TOKENS


class TestChallengeResponder:
    @pytest.mark.parametrize(
        "platform",
        [PlatformType.FACEBOOK, PlatformType.INSTAGRAM, PlatformType.WHATSAPP],
    )
    def test_echoes_challenge_verbatim(self, test_settings, platform):
        responder = ChallengeResponder(test_settings)

        challenge = responder.respond(
            platform, "subscribe", TEST_VERIFY_TOKENS[platform], "1158201444"
        )

        assert challenge == "1158201444"

    def test_wrong_token_rejected(self, test_settings):
        responder = ChallengeResponder(test_settings)

        with pytest.raises(AuthenticationError) as exc_info:
            responder.respond(PlatformType.FACEBOOK, "subscribe", "guess", "123")

        assert exc_info.value.error_code == ErrorCode.CHALLENGE_FAILED

    def test_token_of_another_platform_rejected(self, test_settings):
        responder = ChallengeResponder(test_settings)

        with pytest.raises(AuthenticationError):
            responder.respond(
                PlatformType.WHATSAPP,
                "subscribe",
                TEST_VERIFY_TOKENS[PlatformType.FACEBOOK],
                "123",
            )

    @pytest.mark.parametrize("mode", [None, "unsubscribe", ""])
    def test_wrong_mode_rejected(self, test_settings, mode):
        responder = ChallengeResponder(test_settings)

        with pytest.raises(AuthenticationError):
            responder.respond(
                PlatformType.FACEBOOK, mode, TEST_VERIFY_TOKENS[PlatformType.FACEBOOK], "1"
            )

    def test_missing_challenge_rejected(self, test_settings):
        responder = ChallengeResponder(test_settings)

        with pytest.raises(AuthenticationError):
            responder.respond(
                PlatformType.FACEBOOK,
                "subscribe",
                TEST_VERIFY_TOKENS[PlatformType.FACEBOOK],
                None,
            )

    def test_unconfigured_token_fails_closed(self, test_settings):
        test_settings.instagram_verify_token = None
        responder = ChallengeResponder(test_settings)

        with pytest.raises(AuthenticationError) as exc_info:
            responder.respond(PlatformType.INSTAGRAM, "subscribe", "", "1")

        assert exc_info.value.error_code == ErrorCode.MISSING_SECRET

    def test_line_has_no_handshake(self, test_settings):
        responder = ChallengeResponder(test_settings)

        with pytest.raises(ChallengeNotSupportedError):
            responder.respond(PlatformType.LINE, "subscribe", "x", "1")
