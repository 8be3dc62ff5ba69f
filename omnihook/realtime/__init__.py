"""
Realtime fan-out of conversation changes.
"""

from .publisher import (
    LoggingRealtimePublisher,
    RealtimePublisher,
    RedisRealtimePublisher,
    channel_for,
    create_publisher,
)

__all__ = [
    "LoggingRealtimePublisher",
    "RealtimePublisher",
    "RedisRealtimePublisher",
    "channel_for",
    "create_publisher",
]
