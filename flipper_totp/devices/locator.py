"""
Device Locator

Finds the authenticator among the serial ports currently attached to the host.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from serial.tools import list_ports

from flipper_totp.protocol import constants


@dataclass(frozen=True)
class DeviceEndpoint:
    """Candidate serial port reported by the enumerator"""
    path: str
    vendor_id: Optional[int]
    product_id: Optional[int]
    serial_number: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_port_info(cls, port) -> "DeviceEndpoint":
        """Build from a pyserial ListPortInfo"""
        return cls(
            path=port.device,
            vendor_id=port.vid,
            product_id=port.pid,
            serial_number=port.serial_number,
            description=port.description
        )


def enumerate_serial_ports() -> Iterable[DeviceEndpoint]:
    """List attached serial ports with their USB identifiers"""
    return [DeviceEndpoint.from_port_info(port) for port in list_ports.comports()]


class DeviceLocator:
    """
    Match serial ports against the device's vendor/product identifiers.

    The enumerator and sleep function are injectable so polling can be
    driven deterministically in tests.
    """

    def __init__(
        self,
        vendor_id: int = constants.FLIPPER_VENDOR_ID,
        product_id: int = constants.FLIPPER_PRODUCT_ID,
        poll_interval: float = constants.DEVICE_POLL_INTERVAL,
        enumerator: Callable[[], Iterable[DeviceEndpoint]] = enumerate_serial_ports,
        sleep: Callable[[float], Awaitable] = asyncio.sleep
    ):
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.poll_interval = poll_interval
        self._enumerator = enumerator
        self._sleep = sleep

        self.logger = logging.getLogger(__name__)

    def find_device(self) -> Optional[DeviceEndpoint]:
        """
        Return the first attached port matching the device identifiers.

        Returns:
            Matching endpoint, or None if the device is not attached
        """
        for endpoint in self._enumerator():
            if endpoint.vendor_id == self.vendor_id and endpoint.product_id == self.product_id:
                return endpoint
        return None

    async def wait_for_device(self) -> DeviceEndpoint:
        """
        Poll until the device is attached.

        Never times out; cancel the enclosing task to stop waiting.
        """
        announced = False
        while True:
            endpoint = self.find_device()
            if endpoint is not None:
                self.logger.info(f"Found device at {endpoint.path}")
                return endpoint

            if not announced:
                self.logger.info(
                    f"Waiting for device {self.vendor_id:04x}:{self.product_id:04x}..."
                )
                announced = True

            await self._sleep(self.poll_interval)
