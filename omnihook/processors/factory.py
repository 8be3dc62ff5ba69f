"""
Webhook processor factory.

Maps platform route names to processor variants and caches one instance per
platform. Adding a platform means registering its processor class here.
"""

from typing import Any

from omnihook.core.errors import UnknownPlatformError
from omnihook.core.logging.logger import get_logger
from omnihook.processors.base_processor import BaseWebhookProcessor
from omnihook.processors.line_processor import LineWebhookProcessor
from omnihook.processors.meta_processor import (
    FacebookWebhookProcessor,
    InstagramWebhookProcessor,
)
from omnihook.processors.signature import SignatureVerifier
from omnihook.processors.whatsapp_processor import WhatsAppWebhookProcessor
from omnihook.schemas.core.types import PlatformType

DEFAULT_PROCESSORS: dict[PlatformType, type[BaseWebhookProcessor]] = {
    PlatformType.FACEBOOK: FacebookWebhookProcessor,
    PlatformType.INSTAGRAM: InstagramWebhookProcessor,
    PlatformType.LINE: LineWebhookProcessor,
    PlatformType.WHATSAPP: WhatsAppWebhookProcessor,
}


class ProcessorFactory:
    """
    Factory for platform-specific webhook processors.

    Processors are stateless, so each platform gets a single cached
    instance sharing the factory's signature verifier.
    """

    def __init__(self, verifier: SignatureVerifier | None = None):
        self.logger = get_logger(__name__)
        self.verifier = verifier or SignatureVerifier()
        self._registry: dict[PlatformType, type[BaseWebhookProcessor]] = dict(
            DEFAULT_PROCESSORS
        )
        self._processors: dict[PlatformType, BaseWebhookProcessor] = {}

    def register(
        self, platform: PlatformType, processor_class: type[BaseWebhookProcessor]
    ) -> None:
        """Register (or replace) the processor class for a platform."""
        self._registry[platform] = processor_class
        self._processors.pop(platform, None)
        self.logger.debug(f"Registered {processor_class.__name__} for {platform.value}")

    @staticmethod
    def parse_platform(platform: str | PlatformType) -> PlatformType:
        """
        Convert a route segment to a PlatformType.

        Raises:
            UnknownPlatformError: If the name is not a known platform
        """
        if isinstance(platform, PlatformType):
            return platform
        try:
            return PlatformType(platform.lower())
        except ValueError as e:
            raise UnknownPlatformError(platform) from e

    def get_processor(self, platform: str | PlatformType) -> BaseWebhookProcessor:
        """
        Get or create the processor for a platform.

        Args:
            platform: Platform enum or route name (e.g. "line")

        Returns:
            Platform-specific processor instance

        Raises:
            UnknownPlatformError: If no processor is registered for the platform
        """
        platform_type = self.parse_platform(platform)

        if platform_type in self._processors:
            return self._processors[platform_type]

        processor_class = self._registry.get(platform_type)
        if processor_class is None:
            raise UnknownPlatformError(platform_type.value)

        processor = processor_class(verifier=self.verifier)
        self._processors[platform_type] = processor
        self.logger.info(f"Created and cached processor for platform: {platform_type.value}")
        return processor

    def get_supported_platforms(self) -> set[PlatformType]:
        """Get the set of platforms with a registered processor."""
        return set(self._registry)

    def is_platform_supported(self, platform: PlatformType) -> bool:
        return platform in self._registry

    def get_processor_capabilities(self, platform: PlatformType) -> dict[str, Any] | None:
        """Get capabilities for a platform, or None if it is not supported."""
        if not self.is_platform_supported(platform):
            return None
        return self.get_processor(platform).capabilities.to_dict()

    def clear_cache(self) -> None:
        """Clear the processor cache, forcing recreation on next access."""
        self._processors.clear()
