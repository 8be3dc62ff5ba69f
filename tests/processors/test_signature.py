"""
Tests for webhook signature verification over the raw body.
"""

import json

import pytest

from omnihook.core.errors import AuthenticationError
from omnihook.processors.signature import (
    SignatureEncoding,
    SignatureVerifier,
    compute_signature,
)
from omnihook.schemas.core.types import ErrorCode, PlatformType

from tests.factories import TEST_SECRETS, signed_headers

BODY = b'{"object": "page", "entry": []}'


class TestComputeSignature:
    def test_hex_prefixed_format(self):
        signature = compute_signature("secret", BODY, SignatureEncoding.HEX_PREFIXED)

        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_base64_format(self):
        signature = compute_signature("secret", BODY, SignatureEncoding.BASE64)

        # 32-byte digest, base64 encoded
        assert len(signature) == 44
        assert signature.endswith("=")


class TestSignatureVerifier:
    """Acceptance and rejection per platform."""

    @pytest.mark.parametrize("platform", list(PlatformType))
    def test_accepts_valid_signature(self, test_settings, platform):
        verifier = SignatureVerifier(test_settings)
        headers = signed_headers(platform, BODY, TEST_SECRETS[platform])

        assert verifier.verify(platform, BODY, headers) is True

    @pytest.mark.parametrize("platform", list(PlatformType))
    def test_rejects_wrong_secret(self, test_settings, platform):
        verifier = SignatureVerifier(test_settings)
        headers = signed_headers(platform, BODY, "not-the-secret")

        assert verifier.verify(platform, BODY, headers) is False

    def test_signature_covers_exact_bytes(self, test_settings):
        """Re-serializing the same JSON changes the bytes and breaks the HMAC."""
        verifier = SignatureVerifier(test_settings)
        headers = signed_headers(
            PlatformType.FACEBOOK, BODY, TEST_SECRETS[PlatformType.FACEBOOK]
        )
        reserialized = json.dumps(json.loads(BODY), separators=(",", ":")).encode()

        assert verifier.verify(PlatformType.FACEBOOK, reserialized, headers) is False

    def test_header_lookup_is_case_insensitive(self, test_settings):
        verifier = SignatureVerifier(test_settings)
        headers = signed_headers(PlatformType.LINE, BODY, TEST_SECRETS[PlatformType.LINE])
        headers = {"X-Line-Signature": headers["x-line-signature"]}

        assert verifier.verify(PlatformType.LINE, BODY, headers) is True

    def test_missing_header_rejected(self, test_settings):
        verifier = SignatureVerifier(test_settings)

        with pytest.raises(AuthenticationError, match="Missing x-hub-signature-256"):
            verifier.require_valid(PlatformType.WHATSAPP, BODY, {})

    def test_unprefixed_meta_signature_rejected(self, test_settings):
        verifier = SignatureVerifier(test_settings)
        headers = signed_headers(
            PlatformType.FACEBOOK, BODY, TEST_SECRETS[PlatformType.FACEBOOK]
        )
        headers["x-hub-signature-256"] = headers["x-hub-signature-256"][7:]

        with pytest.raises(AuthenticationError, match="sha256="):
            verifier.require_valid(PlatformType.FACEBOOK, BODY, headers)

    def test_missing_secret_fails_closed(self, test_settings):
        test_settings.line_channel_secret = None
        verifier = SignatureVerifier(test_settings)
        headers = signed_headers(PlatformType.LINE, BODY, "anything")

        with pytest.raises(AuthenticationError) as exc_info:
            verifier.require_valid(PlatformType.LINE, BODY, headers)

        assert exc_info.value.error_code == ErrorCode.MISSING_SECRET

    def test_explicit_bypass_flag(self, test_settings):
        test_settings.allow_unsigned_webhooks = True
        verifier = SignatureVerifier(test_settings)

        assert verifier.verify(PlatformType.FACEBOOK, BODY, {}) is True

    def test_development_environment_does_not_bypass(self, test_settings):
        test_settings.environment = "DEV"
        verifier = SignatureVerifier(test_settings)

        assert verifier.verify(PlatformType.FACEBOOK, BODY, {}) is False
