"""
Platform webhook processors.

Each processor turns one provider's webhook envelope into canonical
ProcessedWebhookEvent instances.
"""

from .base_processor import BaseWebhookProcessor, ProcessorCapabilities
from .challenge import ChallengeResponder
from .factory import ProcessorFactory
from .line_processor import LineWebhookProcessor
from .meta_processor import (
    FacebookWebhookProcessor,
    InstagramWebhookProcessor,
    MetaWebhookProcessor,
)
from .signature import SignatureVerifier, compute_signature
from .whatsapp_processor import WhatsAppWebhookProcessor

__all__ = [
    "BaseWebhookProcessor",
    "ChallengeResponder",
    "FacebookWebhookProcessor",
    "InstagramWebhookProcessor",
    "LineWebhookProcessor",
    "MetaWebhookProcessor",
    "ProcessorCapabilities",
    "ProcessorFactory",
    "SignatureVerifier",
    "WhatsAppWebhookProcessor",
    "compute_signature",
]
