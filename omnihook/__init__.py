"""
omnihook - multi-platform chat webhook ingestion.

Receives Facebook, Instagram, LINE and WhatsApp webhooks, verifies them,
normalizes every event into one shape and persists customers, conversations
and messages per tenant, publishing realtime notifications on change.
"""

from .core.config.settings import settings
from .core.factory import OmnihookBuilder, OmnihookPlugin
from .core.gateway import DeliveryResult, WebhookGateway
from .core.omnihook_app import create_app, create_builder

__version__ = settings.version

__all__ = [
    "DeliveryResult",
    "OmnihookBuilder",
    "OmnihookPlugin",
    "WebhookGateway",
    "create_app",
    "create_builder",
]
