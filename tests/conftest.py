"""
Shared fixtures: in-memory stand-ins for the serial port and the clock.
"""

import pytest

from flipper_totp.communication.event_bus import EventBus, ProtocolEvent
from flipper_totp.devices.locator import DeviceEndpoint, DeviceLocator
from flipper_totp.devices.transport import ReadTimeoutError, TransportClosedError, find_terminator
from flipper_totp.utils.settings import ClientSettings

FLIPPER_PATH = "/dev/ttyACM0"
PROMPT = ">: "


class FakeTransport:
    """
    Scripted serial transport.

    Starts with the CLI prompt in its receive buffer so the readiness probe
    succeeds. Each write appends the next scripted response. A read whose
    terminator never appears fails like an expired deadline.
    """

    def __init__(self, responses=None, banner=PROMPT, path=FLIPPER_PATH):
        self.path = path
        self.buffer = banner
        self.responses = list(responses or [])
        self.written = []
        self.read_timeouts = []
        self.close_calls = 0
        self._closed = False
        self._listeners = []

    @property
    def is_closed(self):
        return self._closed

    def add_close_listener(self, callback):
        self._listeners.append(callback)

    async def write_and_drain(self, text):
        if self._closed:
            raise TransportClosedError("closed")
        self.written.append(text)
        if self.responses:
            self.buffer += self.responses.pop(0)

    async def read_until(self, terminator, timeout=None):
        self.read_timeouts.append(timeout)
        end = find_terminator(self.buffer, terminator)
        if end is None:
            raise ReadTimeoutError(f"no match for {terminator!r}")
        result, self.buffer = self.buffer[:end], self.buffer[end:]
        return result

    async def close(self):
        self.close_calls += 1
        self.drop()

    def drop(self):
        """Simulate the channel closing underneath the session"""
        if self._closed:
            return
        self._closed = True
        listeners, self._listeners = self._listeners, []
        for callback in listeners:
            callback(self)


class FakeSleep:
    """Awaitable replacement for asyncio.sleep that records delays"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TransportFactory:
    """Hands out prepared transports; exceptions in the list are raised"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.opened = []

    async def __call__(self, endpoint, baudrate):
        self.opened.append((endpoint.path, baudrate))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def flipper_endpoint(path=FLIPPER_PATH):
    return DeviceEndpoint(path=path, vendor_id=0x0483, product_id=0x5740, description="Flipper")


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def settings():
    return ClientSettings()


@pytest.fixture
def locator(fake_sleep):
    """Locator that always sees a Flipper on FLIPPER_PATH"""
    return DeviceLocator(enumerator=lambda: [flipper_endpoint()], sleep=fake_sleep)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """List of (event, source) tuples published on event_bus"""
    events = []
    for event in ProtocolEvent:
        event_bus.subscribe(event, lambda source, event=event: events.append((event, source)))
    return events
