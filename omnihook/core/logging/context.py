"""
Request context management using contextvars for automatic propagation.

The gateway sets the platform once per delivery and the organization and
customer once per event; every logger created through get_logger picks them
up without manual parameter passing.
"""

from contextvars import ContextVar

_platform_context: ContextVar[str | None] = ContextVar(
    "platform", default=None
)  # From the webhook route
_organization_context: ContextVar[str | None] = ContextVar(
    "organization_id", default=None
)  # From tenant resolution
_customer_context: ContextVar[str | None] = ContextVar(
    "customer_id", default=None
)  # External customer id from the payload


def set_request_context(
    platform: str | None = None,
    organization_id: str | None = None,
    customer_id: str | None = None,
) -> None:
    """
    Set the request context for the current async context.

    Args:
        platform: Platform the delivery came from (facebook, line, ...)
        organization_id: Organization owning the target platform account
        customer_id: External customer identifier from the payload
    """
    if platform is not None:
        _platform_context.set(platform)
    if organization_id is not None:
        _organization_context.set(organization_id)
    if customer_id is not None:
        _customer_context.set(customer_id)


def get_current_platform_context() -> str | None:
    """Get the current platform from context variables."""
    return _platform_context.get()


def get_current_organization_context() -> str | None:
    """
    Get the current organization ID from context variables.

    Returns:
        Current organization ID, or None before tenant resolution
    """
    return _organization_context.get()


def get_current_customer_context() -> str | None:
    """Get the current external customer ID from context variables."""
    return _customer_context.get()


def clear_event_context() -> None:
    """Clear the per-event part of the context, keeping the platform."""
    _organization_context.set(None)
    _customer_context.set(None)


def clear_request_context() -> None:
    """
    Clear the request context.

    This is typically not needed as context is automatically isolated
    per request, but can be useful for testing.
    """
    _platform_context.set(None)
    clear_event_context()


def get_context_info() -> dict[str, str | None]:
    """
    Get current context information for debugging.

    Returns:
        Dictionary with current platform, organization_id and customer_id
    """
    return {
        "platform": get_current_platform_context(),
        "organization_id": get_current_organization_context(),
        "customer_id": get_current_customer_context(),
    }
