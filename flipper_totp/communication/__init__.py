"""
Communication Module

Provides the in-process event bus used for client lifecycle events.
"""

from .event_bus import EventBus, ProtocolEvent

__all__ = ['EventBus', 'ProtocolEvent']
