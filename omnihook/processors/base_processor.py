"""
Base processor abstraction for platform-agnostic webhook processing.

This module defines the abstract base class every platform processor
inherits from. A processor splits a delivery into provider events and
normalizes each one into a ProcessedWebhookEvent; the two steps are separate
so the gateway can dead-letter a single bad event and keep its siblings.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from omnihook.core.errors import MalformedPayloadError
from omnihook.core.logging.logger import get_logger
from omnihook.processors.signature import SignatureVerifier
from omnihook.schemas.core.events import ProcessedWebhookEvent, ProviderEvent
from omnihook.schemas.core.types import MessageType, PlatformType

EventHandler = Callable[[ProviderEvent], ProcessedWebhookEvent | None]


class ProcessorCapabilities:
    """
    Represents the capabilities of a platform processor.

    Lets routes and health checks describe what each platform supports
    without instantiating payloads.
    """

    def __init__(
        self,
        platform: PlatformType,
        supported_message_types: set[MessageType],
        supports_challenge: bool = True,
        supports_status_updates: bool = True,
        supports_watermarks: bool = False,
    ):
        self.platform = platform
        self.supported_message_types = supported_message_types
        self.supports_challenge = supports_challenge
        self.supports_status_updates = supports_status_updates
        self.supports_watermarks = supports_watermarks

    def can_handle_message_type(self, message_type: MessageType) -> bool:
        """Check if processor can produce a specific message type."""
        return message_type in self.supported_message_types

    def to_dict(self) -> dict[str, Any]:
        """Convert capabilities to dictionary."""
        return {
            "platform": self.platform.value,
            "supported_message_types": sorted(
                mt.value for mt in self.supported_message_types
            ),
            "supports_challenge": self.supports_challenge,
            "supports_status_updates": self.supports_status_updates,
            "supports_watermarks": self.supports_watermarks,
        }


class BaseWebhookProcessor(ABC):
    """
    Platform-agnostic webhook processor base class.

    Subclasses implement ``split_events`` for their envelope and register one
    handler per provider event kind. Processors hold no per-request state, so
    one instance serves concurrent deliveries.
    """

    def __init__(self, verifier: SignatureVerifier | None = None):
        self.logger = get_logger(__name__)
        self.verifier = verifier or SignatureVerifier()

        # Provider event kind -> normalizer
        self._event_handlers: dict[str, EventHandler] = {}

    @property
    @abstractmethod
    def platform(self) -> PlatformType:
        """Get the platform this processor handles."""
        pass

    @property
    @abstractmethod
    def capabilities(self) -> ProcessorCapabilities:
        """Get the capabilities of this processor."""
        pass

    @property
    def supports_challenge(self) -> bool:
        """Check if the platform verifies webhook URLs with a handshake."""
        return self.capabilities.supports_challenge

    def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """
        Validate webhook signature for security.

        Args:
            raw_body: Raw webhook payload bytes
            headers: Request headers

        Returns:
            True if signature is valid, False otherwise
        """
        return self.verifier.verify(self.platform, raw_body, headers)

    @abstractmethod
    def split_events(self, payload: Any) -> list[ProviderEvent]:
        """
        Split a delivery into provider events, in arrival order.

        Args:
            payload: Parsed webhook JSON

        Returns:
            Provider events in the order they appear in the payload

        Raises:
            MalformedPayloadError: If the envelope itself is unrecognizable
        """
        pass

    def normalize_event(self, provider_event: ProviderEvent) -> ProcessedWebhookEvent | None:
        """
        Normalize one provider event.

        Args:
            provider_event: Event produced by split_events

        Returns:
            Canonical event, or None when the event is intentionally ignored

        Raises:
            MalformedPayloadError: If the event is missing required fields
        """
        handler = self._event_handlers.get(provider_event.kind)
        if handler is None:
            self.logger.debug(
                f"Ignoring {self.platform.value} event kind '{provider_event.kind}'"
            )
            return None
        return handler(provider_event)

    def extract_events(self, payload: Any) -> list[ProcessedWebhookEvent]:
        """
        Split and normalize a whole delivery.

        Strict variant used outside the gateway: the first malformed event
        raises.

        Args:
            payload: Parsed webhook JSON

        Returns:
            Canonical events in arrival order, ignored events dropped
        """
        events = []
        for provider_event in self.split_events(payload):
            normalized = self.normalize_event(provider_event)
            if normalized is not None:
                events.append(normalized)
        return events

    def register_event_handler(self, kind: str, handler: EventHandler) -> None:
        """Register a normalizer for a provider event kind."""
        self._event_handlers[kind] = handler

    def get_event_handler(self, kind: str) -> EventHandler | None:
        """Get the normalizer for a provider event kind."""
        return self._event_handlers.get(kind)

    # ------------------------------------------------------------------
    # Helpers shared by platform variants
    # ------------------------------------------------------------------

    def _malformed(self, message: str) -> MalformedPayloadError:
        return MalformedPayloadError(f"{self.platform.value}: {message}", self.platform)

    def _require_mapping(self, value: Any, what: str) -> dict[str, Any]:
        """Return value if it is a JSON object, raise MalformedPayloadError otherwise."""
        if not isinstance(value, dict):
            raise self._malformed(f"{what} must be an object")
        return value

    def _require_list(self, value: Any, what: str) -> list[Any]:
        """Return value if it is a JSON array, raise MalformedPayloadError otherwise."""
        if not isinstance(value, list):
            raise self._malformed(f"{what} must be an array")
        return value

    def _require_id(self, container: Mapping[str, Any], key: str, what: str) -> str:
        """
        Read a required identifier and return it as a string.

        Providers send some ids as numbers; ids are always stored as strings.
        """
        value = container.get(key)
        if value is None or value == "":
            raise self._malformed(f"missing {what}")
        if isinstance(value, (dict, list, bool)):
            raise self._malformed(f"{what} must be a string or number")
        return str(value)

    def _timestamp(self, value: Any, converter: Callable[[Any], datetime]) -> datetime:
        """Convert a provider epoch, raising MalformedPayloadError on garbage."""
        try:
            return converter(value)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise self._malformed(f"invalid timestamp {value!r}") from e

    def __str__(self) -> str:
        """String representation of the processor."""
        return f"{self.__class__.__name__}(platform={self.platform.value})"
