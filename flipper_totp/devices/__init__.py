"""
Device Connection Module

Provides serial discovery, transport and session management:
- DeviceLocator: Finds the authenticator by USB vendor/product id
- SerialTransport: Framed read/write over the serial port
- SessionManager: Connection lifecycle with retry and reconnection

Usage:
    from flipper_totp.devices import SessionManager

    session = SessionManager(event_bus)
    transport = await session.get_transport()
"""

from .locator import DeviceEndpoint, DeviceLocator, enumerate_serial_ports
from .transport import (
    ReadTimeoutError,
    SerialTransport,
    TransportClosedError,
    find_terminator
)
from .session import DeviceUnavailableError, SessionManager, SessionState

__all__ = [
    "DeviceEndpoint",
    "DeviceLocator",
    "DeviceUnavailableError",
    "ReadTimeoutError",
    "SerialTransport",
    "SessionManager",
    "SessionState",
    "TransportClosedError",
    "enumerate_serial_ports",
    "find_terminator",
]
