"""
Record store for ingested conversations.

SQLModel tables plus the async session manager used by every resolver.
"""

from .models import (
    ALL_MODELS,
    Conversation,
    Customer,
    CustomerIdentity,
    DeadLetterEvent,
    Message,
    PlatformAccount,
)
from .session_manager import SessionManager

__all__ = [
    "ALL_MODELS",
    "Conversation",
    "Customer",
    "CustomerIdentity",
    "DeadLetterEvent",
    "Message",
    "PlatformAccount",
    "SessionManager",
]
