"""
Omnihook Factory Module

Plugin-based factory for assembling the FastAPI application.
"""

from .builder import OmnihookBuilder
from .plugin import OmnihookPlugin

__all__ = [
    "OmnihookBuilder",
    "OmnihookPlugin",
]
