"""
Ingestion services: tenant, customer and conversation resolution, message
persistence, receipt propagation and dead-lettering.
"""

from .conversation_resolver import ConversationResolver
from .customer_resolver import CustomerResolver
from .dead_letter import DeadLetterStore
from .message_writer import MessageWriter, WriteResult
from .profile_enrichment import (
    CompositeProfileFetcher,
    CustomerProfile,
    GraphProfileFetcher,
    LineProfileFetcher,
    ProfileFetcher,
)
from .status_propagator import StatusPropagator, StatusUpdateResult
from .tenant_resolver import TenantResolver

__all__ = [
    "CompositeProfileFetcher",
    "ConversationResolver",
    "CustomerProfile",
    "CustomerResolver",
    "DeadLetterStore",
    "GraphProfileFetcher",
    "LineProfileFetcher",
    "MessageWriter",
    "ProfileFetcher",
    "StatusPropagator",
    "StatusUpdateResult",
    "TenantResolver",
    "WriteResult",
]
