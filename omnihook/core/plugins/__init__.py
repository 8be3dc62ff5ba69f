"""
Omnihook Core Plugins

- OmnihookCorePlugin: logging, middleware, routes and the webhook gateway
- DatabasePlugin: record store session manager
- RealtimePlugin: conversation change notifications
"""

from .core_plugin import OmnihookCorePlugin
from .database_plugin import DatabasePlugin
from .realtime_plugin import RealtimePlugin

__all__ = [
    "OmnihookCorePlugin",
    "DatabasePlugin",
    "RealtimePlugin",
]
