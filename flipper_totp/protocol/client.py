"""
TOTP Application Client

Public operations of the authenticator: readiness checks, listing and
editing tokens. Construct one client per device and pass it explicitly to
whatever needs it; the client owns exactly one serial session.

Usage:
    bus = EventBus()
    bus.subscribe(ProtocolEvent.PIN_REQUESTED, lambda client: print("Enter PIN"))

    async with TotpAppClient(event_bus=bus) as client:
        await client.wait_for_app()
        for record in await client.list_tokens():
            print(record['Name'])
"""

import asyncio
import logging
import re
from typing import Awaitable, Callable, Dict, List, Optional

from flipper_totp.communication.event_bus import EventBus
from flipper_totp.devices.locator import DeviceLocator
from flipper_totp.devices.session import SessionManager, TransportFactory, open_serial_transport
from flipper_totp.utils.settings import ClientSettings
from . import constants
from .executor import CommandExecutor, ExecuteOptions
from .table_parser import parse

QUOTED_TEXT_PATTERN = re.compile(r'"[^"]*"')


def quote_argument(value: str) -> str:
    """Quote a CLI argument when it contains whitespace"""
    if not value:
        raise ValueError("CLI arguments must not be empty")
    if '"' in value or '\r' in value or '\n' in value:
        raise ValueError(f"Unsupported character in CLI argument: {value!r}")
    if re.search(r"\s", value):
        return f'"{value}"'
    return value


class TotpAppClient:
    """
    Client for the TOTP application on a Flipper Zero.

    Lifecycle events (connecting, connected, pin_requested, closed) are
    published on ``event_bus`` with this client as the source.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        settings: Optional[ClientSettings] = None,
        locator: Optional[DeviceLocator] = None,
        transport_factory: TransportFactory = open_serial_transport,
        sleep: Callable[[float], Awaitable] = asyncio.sleep
    ):
        """
        Initialize client.

        Args:
            event_bus: Bus for lifecycle events (a private one if omitted)
            settings: Client settings
            locator: Device locator override
            transport_factory: Coroutine opening a transport for an endpoint
            sleep: Awaitable delay used by every retry loop
        """
        self.event_bus = event_bus or EventBus()
        self.settings = settings or ClientSettings()
        self.session = SessionManager(
            self.event_bus,
            settings=self.settings,
            locator=locator,
            transport_factory=transport_factory,
            sleep=sleep,
            owner=self
        )
        self.executor = CommandExecutor(
            self.session,
            self.event_bus,
            settings=self.settings,
            sleep=sleep,
            owner=self
        )

        self.logger = logging.getLogger(__name__)

    async def __aenter__(self) -> "TotpAppClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _command(self, *args: str) -> str:
        return " ".join((self.settings.protocol.totp_command,) + args)

    async def execute(self, command: str, options: Optional[ExecuteOptions] = None) -> Optional[str]:
        """Run a raw CLI command through the executor"""
        return await self.executor.execute(command, options)

    async def wait_for_app(self):
        """Block until the TOTP application answers its help command"""
        await self.executor.execute(self._command("?"))

    async def wait_for_device(self):
        """Block until a serial session is established, without sending a command"""
        if not self.session.is_connected():
            await self.session.get_transport()

    async def list_tokens(self) -> List[Dict[str, str]]:
        """
        List tokens stored on the device.

        Returns:
            Records keyed by column header, in device order; empty when
            the device gave no response
        """
        response = await self.executor.execute(self._command("ls"))
        return parse(response) if response else []

    def _mutation_succeeded(self, action: str, response: Optional[str]) -> bool:
        if response is None:
            self.logger.info(f"{action} cancelled or unanswered")
            return False

        # token names are echoed back in quotes and may contain marker words
        lowered = QUOTED_TEXT_PATTERN.sub("", response).lower()
        for marker in constants.MUTATION_ERROR_MARKERS:
            if marker in lowered:
                self.logger.warning(f"{action} rejected by device: {response.strip()}")
                return False
        return True

    async def add_token(
        self,
        name: str,
        secret: str,
        algorithm: str = "sha1",
        digits: int = 6,
        duration: int = 30,
        secret_encoding: str = "base32"
    ) -> bool:
        """
        Add a token.

        The device asks for the secret interactively so it never shows up
        in the CLI history; it is sent once the prompt appears.

        Returns:
            True if the device accepted the token
        """
        if algorithm not in constants.SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {algorithm}")
        if secret_encoding not in constants.SUPPORTED_SECRET_ENCODINGS:
            raise ValueError(f"Unsupported secret encoding: {secret_encoding}")
        if not secret or '\r' in secret or '\n' in secret:
            raise ValueError("Token secret must be a single non-empty line")

        command = self._command(
            "add", quote_argument(name),
            "-a", algorithm,
            "-e", secret_encoding,
            "-d", str(int(digits)),
            "-l", str(int(duration))
        )
        action = f"Adding token '{name}'"
        secret_prompt = self.settings.protocol.enter_secret
        prompt_or_end = re.compile(
            f"{re.escape(secret_prompt)}|{re.escape(self.settings.protocol.end_of_command)}",
            re.IGNORECASE
        )
        response = await self.executor.execute(
            command,
            ExecuteOptions(trim_end_marker=False, end_marker=prompt_or_end, drain_to_prompt=False)
        )
        if response is None:
            return self._mutation_succeeded(action, None)
        if secret_prompt.lower() not in response.lower():
            self.logger.warning(f"{action} rejected by device: {response.strip()}")
            return False

        response = await self.executor.execute(
            secret,
            ExecuteOptions(skip_first_line=False),
            redact=True
        )
        return self._mutation_succeeded(action, response)

    async def update_token(
        self,
        index: int,
        name: Optional[str] = None,
        algorithm: Optional[str] = None,
        digits: Optional[int] = None,
        duration: Optional[int] = None
    ) -> bool:
        """Change properties of the token at a 1-based index"""
        args = ["update", str(int(index))]
        if name is not None:
            args += ["-n", quote_argument(name)]
        if algorithm is not None:
            if algorithm not in constants.SUPPORTED_ALGORITHMS:
                raise ValueError(f"Unsupported algorithm: {algorithm}")
            args += ["-a", algorithm]
        if digits is not None:
            args += ["-d", str(int(digits))]
        if duration is not None:
            args += ["-l", str(int(duration))]

        if len(args) == 2:
            raise ValueError("update_token needs at least one property to change")

        response = await self.executor.execute(self._command(*args))
        return self._mutation_succeeded(f"Updating token #{index}", response)

    async def delete_token(self, index: int) -> bool:
        """Delete the token at a 1-based index without on-device confirmation"""
        response = await self.executor.execute(self._command("delete", str(int(index)), "-f"))
        return self._mutation_succeeded(f"Deleting token #{index}", response)

    async def move_token(self, index: int, new_index: int) -> bool:
        """Move a token to another position"""
        response = await self.executor.execute(
            self._command("move", str(int(index)), str(int(new_index)))
        )
        return self._mutation_succeeded(f"Moving token #{index}", response)

    async def get_timezone(self) -> Optional[str]:
        """Timezone offset reported by the application, as printed"""
        response = await self.executor.execute(self._command("timezone"))
        if response is None:
            return None
        match = re.search(r"(-?\d+(?:\.\d+)?)", response)
        return match.group(1) if match else response.strip()

    async def set_timezone(self, offset_hours: float) -> bool:
        """Set the timezone offset in hours"""
        if not -12 <= offset_hours <= 12:
            raise ValueError(f"Timezone offset out of range: {offset_hours}")
        response = await self.executor.execute(self._command("timezone", f"{offset_hours:g}"))
        return self._mutation_succeeded("Setting timezone", response)

    async def close(self):
        """Close the session and publish the closed event"""
        await self.session.close()

    def get_stats(self) -> Dict:
        return self.session.get_stats()
