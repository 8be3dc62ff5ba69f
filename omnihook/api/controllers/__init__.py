"""
API controllers.

Controllers map gateway outcomes to HTTP responses; routes only handle
request parsing.
"""

from .webhook_controller import WebhookController

__all__ = ["WebhookController"]
