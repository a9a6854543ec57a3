"""
Device Session

Owns the single serial connection of a client: discovery, opening,
shell-readiness probing, reconnection and teardown.
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import logging

from flipper_totp.communication.event_bus import EventBus, ProtocolEvent
from flipper_totp.monitoring import track_connection_attempt
from flipper_totp.utils.settings import ClientSettings
from .locator import DeviceEndpoint, DeviceLocator
from .transport import SerialTransport


class SessionState(Enum):
    """Session states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class DeviceUnavailableError(ConnectionError):
    """Raised only when a bounded retry policy runs out of attempts"""


TransportFactory = Callable[[DeviceEndpoint, int], Awaitable[SerialTransport]]


async def open_serial_transport(endpoint: DeviceEndpoint, baudrate: int) -> SerialTransport:
    return await SerialTransport.open(endpoint.path, baudrate)


class SessionManager:
    """
    Persistent session to the authenticator.

    Holds at most one live transport. ``get_transport()`` connects on
    demand and keeps retrying until the device answers with its CLI
    prompt; a transport that closes underneath us is dropped so the next
    call reconnects.

    Events are published with ``owner`` as the source, so subscribers see
    the client object rather than the session.
    """

    def __init__(
        self,
        event_bus: EventBus,
        settings: Optional[ClientSettings] = None,
        locator: Optional[DeviceLocator] = None,
        transport_factory: TransportFactory = open_serial_transport,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        owner: Any = None
    ):
        """
        Initialize session manager.

        Args:
            event_bus: Bus receiving connecting/connected/closed events
            settings: Client settings (defaults match the device firmware)
            locator: Device locator, built from settings if omitted
            transport_factory: Coroutine opening a transport for an endpoint
            sleep: Awaitable delay used between retries
            owner: Source reported with published events
        """
        self.settings = settings or ClientSettings()
        self.event_bus = event_bus
        self.locator = locator or DeviceLocator(
            vendor_id=self.settings.vendor_id,
            product_id=self.settings.product_id,
            poll_interval=self.settings.poll_interval,
            sleep=sleep
        )
        self.owner = owner if owner is not None else self
        self._transport_factory = transport_factory
        self._sleep = sleep
        self._transport: Optional[SerialTransport] = None

        self.state = SessionState.DISCONNECTED
        self.connected_at: Optional[datetime] = None
        self.stats = {
            'connection_attempts': 0,
            'failed_connections': 0,
            'connections': 0,
            'disconnects': 0
        }

        self.logger = logging.getLogger(__name__)

    @property
    def transport(self) -> Optional[SerialTransport]:
        """Currently held transport, if any"""
        return self._transport

    def is_connected(self) -> bool:
        return self._transport is not None

    async def get_transport(self) -> SerialTransport:
        """
        Return the live transport, connecting first if necessary.

        Returns:
            Open transport whose CLI prompt has been seen

        Raises:
            DeviceUnavailableError: Only when retry.max_attempts is set
                and every attempt failed
        """
        if self._transport is not None:
            return self._transport

        self.state = SessionState.CONNECTING
        self.event_bus.publish(ProtocolEvent.CONNECTING, self.owner)

        transport = None
        attempt = 0
        while transport is None:
            attempt += 1
            self.stats['connection_attempts'] += 1

            endpoint = await self.locator.wait_for_device()
            transport = await self._try_connect(endpoint)

            if transport is None:
                self.stats['failed_connections'] += 1
                retry = self.settings.retry
                if retry.max_attempts is not None and attempt >= retry.max_attempts:
                    self.state = SessionState.DISCONNECTED
                    raise DeviceUnavailableError(
                        f"Device did not become ready after {attempt} attempts"
                    )
                await self._sleep(retry.delay_for(attempt))

        transport.add_close_listener(self._on_transport_closed)
        self._transport = transport
        self.state = SessionState.CONNECTED
        self.connected_at = datetime.now(timezone.utc)
        self.stats['connections'] += 1

        self.logger.info(f"✓ Connected to {transport.path}", extra={'device_id': transport.path})
        self.event_bus.publish(ProtocolEvent.CONNECTED, self.owner)
        return transport

    async def _try_connect(self, endpoint: DeviceEndpoint) -> Optional[SerialTransport]:
        """Open the endpoint and wait for the CLI prompt; None on any failure"""
        try:
            transport = await self._transport_factory(endpoint, self.settings.baudrate)
        except Exception as e:
            self.logger.warning(f"Failed to open {endpoint.path}: {e}", extra={'device_id': endpoint.path})
            track_connection_attempt("open_failed")
            return None

        try:
            await transport.read_until(
                self.settings.protocol.end_of_command,
                self.settings.probe_timeout
            )
        except Exception as e:
            self.logger.warning(f"CLI on {endpoint.path} not ready: {e}", extra={'device_id': endpoint.path})
            track_connection_attempt("probe_failed")
            await transport.close()
            return None

        track_connection_attempt("connected")
        return transport

    def _on_transport_closed(self, transport: SerialTransport):
        if transport is not self._transport:
            return

        self._transport = None
        self.connected_at = None
        self.stats['disconnects'] += 1
        if self.state != SessionState.CLOSED:
            self.state = SessionState.DISCONNECTED
        self.logger.info(f"Session on {transport.path} ended", extra={'device_id': transport.path})

    async def close(self):
        """Close the held transport, if any, and publish the closed event"""
        transport = self._transport
        if transport is not None:
            await transport.close()
            self._transport = None

        self.state = SessionState.CLOSED
        self.event_bus.publish(ProtocolEvent.CLOSED, self.owner)

    def get_stats(self) -> Dict:
        """Get session statistics"""
        return {
            **self.stats,
            'state': self.state.value,
            'path': self._transport.path if self._transport else None,
            'connected_at': self.connected_at.isoformat() if self.connected_at else None
        }
