"""
Protocol Event Bus

In-process publish/subscribe channel for client lifecycle events.
Consumers (UI layers, CLI) subscribe handlers per event type; the client
publishes with itself as the only payload.
"""

from enum import Enum
from typing import Any, Callable, Dict, List
import logging


class ProtocolEvent(Enum):
    """Events raised by the protocol client"""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PIN_REQUESTED = "pin_requested"
    CLOSED = "closed"


Handler = Callable[[Any], None]


class EventBus:
    """
    Route protocol events to subscribed handlers.

    Handlers are called synchronously in subscription order. A failing
    handler is logged and does not stop delivery to the others.
    """

    def __init__(self):
        """Initialize event bus with empty handler registry"""
        self.handlers: Dict[ProtocolEvent, List[Handler]] = {event: [] for event in ProtocolEvent}
        self.logger = logging.getLogger(__name__)

    def subscribe(self, event: ProtocolEvent, handler: Handler):
        """
        Register a handler for an event type.

        Args:
            event: Event to listen for
            handler: Callable receiving the originating client
        """
        self.handlers[event].append(handler)
        self.logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {event.value}")

    def unsubscribe(self, event: ProtocolEvent, handler: Handler):
        """Remove a handler; unknown handlers are ignored"""
        if handler in self.handlers[event]:
            self.handlers[event].remove(handler)

    def publish(self, event: ProtocolEvent, source: Any) -> int:
        """
        Deliver an event to every handler subscribed to it.

        Args:
            event: Event being raised
            source: Originating client

        Returns:
            Number of handlers that completed without error
        """
        self.logger.debug(f"Event bus: {event.value}")

        delivered = 0
        for handler in list(self.handlers[event]):
            try:
                handler(source)
                delivered += 1
            except Exception as e:
                self.logger.error(
                    f"Handler error for {event.value}: {e}",
                    exc_info=True
                )
        return delivered

    def subscriber_count(self, event: ProtocolEvent) -> int:
        """Number of handlers subscribed to an event"""
        return len(self.handlers[event])
