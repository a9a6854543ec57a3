"""
Command Executor

Request/response state machine for the device CLI.

A command is written, its echo skipped, and output collected until the
CLI prompt, a PIN prompt or a cancellation notice shows up. Unknown
commands (the TOTP application still starting) are re-submitted; a PIN
prompt is announced on the event bus and the executor keeps reading until
the operator has answered it on the device.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Pattern, Union

from flipper_totp.communication.event_bus import EventBus, ProtocolEvent
from flipper_totp.devices.session import SessionManager
from flipper_totp.devices.transport import ReadTimeoutError
from flipper_totp.monitoring import (
    track_command,
    track_command_latency,
    track_command_retry,
    track_pin_request
)
from flipper_totp.utils.settings import ClientSettings
from . import constants

# ESC[<n>m colours, ESC[A cursor up, ESC[2K line erase, and backspace erasure
TERMINAL_CONTROL_PATTERN = re.compile(r"\x1b\[(?:\d+m|A|2K)|\x08 \x08\r?")


@dataclass(frozen=True)
class ExecuteOptions:
    """
    Framing options for a single command.

    end_marker of None means the configured CLI prompt. With drain_to_prompt,
    a read that stopped at a custom end marker also consumes the CLI prompt
    that follows, so the next command starts on a clean stream.
    """
    skip_first_line: bool = True
    trim_end_marker: bool = True
    trim_empty_lines: bool = True
    trim_terminal_control: bool = True
    end_marker: Optional[Union[str, Pattern[str]]] = None
    drain_to_prompt: bool = True


DEFAULT_OPTIONS = ExecuteOptions()


def marker_pattern(marker: Union[str, Pattern[str]]) -> str:
    """Regular expression source for a literal or compiled end marker"""
    if isinstance(marker, str):
        return re.escape(marker)
    return marker.pattern


def strip_end_marker(text: str, marker: Union[str, Pattern[str]]) -> str:
    """Remove the last occurrence of the end marker"""
    matches = list(re.finditer(marker_pattern(marker), text, re.IGNORECASE))
    if not matches:
        return text
    last = matches[-1]
    return text[:last.start()] + text[last.end():]


def strip_terminal_control(text: str) -> str:
    return TERMINAL_CONTROL_PATTERN.sub("", text)


def strip_empty_lines(text: str) -> str:
    """Drop blank and whitespace-only lines, keeping other line endings"""
    return "".join(line for line in text.splitlines(keepends=True) if line.strip())


class CommandExecutor:
    """
    Run CLI commands on the device.

    Commands must be issued one at a time; two concurrent ``execute`` calls
    would interleave on the same serial port.
    """

    def __init__(
        self,
        session: SessionManager,
        event_bus: EventBus,
        settings: Optional[ClientSettings] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        owner: Any = None
    ):
        self.session = session
        self.event_bus = event_bus
        self.settings = settings or session.settings
        self.owner = owner if owner is not None else self
        self._sleep = sleep

        self.logger = logging.getLogger(__name__)

    def detection_pattern(self, end_marker: Union[str, Pattern[str]]) -> Pattern[str]:
        """Pattern matching the end marker, the PIN prompt or the cancellation notice"""
        protocol = self.settings.protocol
        return re.compile(
            f"({marker_pattern(end_marker)})"
            f"|({re.escape(protocol.ask_for_pin)})"
            f"|({re.escape(protocol.command_cancelled)})",
            re.IGNORECASE
        )

    async def execute(
        self,
        command: str,
        options: Optional[ExecuteOptions] = None,
        redact: bool = False
    ) -> Optional[str]:
        """
        Execute a command and collect its output.

        Args:
            command: Command line without the trailing carriage return
            options: Framing options, defaults when omitted
            redact: Keep the command text out of the logs (secrets)

        Returns:
            Sanitized output, or None if the device produced no response
            or the operator cancelled the command

        Raises:
            ReadTimeoutError: Echo or response did not arrive in time
            TransportClosedError: Device went away mid-command
        """
        opts = options or DEFAULT_OPTIONS
        protocol = self.settings.protocol
        end_marker = opts.end_marker if opts.end_marker is not None else protocol.end_of_command
        detection = self.detection_pattern(end_marker)

        label = "<redacted>" if redact else command
        verb = "input" if redact else " ".join(command.split()[:2])
        loop = asyncio.get_running_loop()
        started = loop.time()

        response = None
        command_found = False
        while not command_found:
            transport = await self.session.get_transport()
            self.logger.debug(f"→ {label}")
            await transport.write_and_drain(command + constants.COMMAND_SUBMIT)

            if opts.skip_first_line:
                await transport.read_until(constants.LINE_TERMINATOR, self.settings.echo_timeout)

            try:
                response = await transport.read_until(detection, self.settings.response_timeout)
            except TimeoutError:
                track_command(verb, "timeout")
                raise

            command_found = bool(response) and protocol.command_not_found not in response
            if not command_found:
                self.logger.warning(
                    f"Device did not recognize '{label}', retrying",
                    extra={'device_id': transport.path}
                )
                track_command_retry("command_not_found")
                await self._sleep(self.settings.retry.delay)
                continue

            if protocol.ask_for_pin.lower() in response.lower():
                self.logger.info("Device is waiting for PIN entry", extra={'device_id': transport.path})
                track_pin_request()
                self.event_bus.publish(ProtocolEvent.PIN_REQUESTED, self.owner)
                response = await transport.read_until(detection)

        track_command_latency(verb, loop.time() - started)

        cancelled = protocol.command_cancelled.lower() in response.lower()
        at_prompt = response.lower().endswith(protocol.end_of_command.lower())
        if not at_prompt and (cancelled or opts.drain_to_prompt):
            await self._drain_to_prompt(transport)

        if not response or cancelled:
            self.logger.info(
                f"'{label}' produced no response or was cancelled",
                extra={'device_id': transport.path}
            )
            track_command(verb, "cancelled")
            return None

        track_command(verb, "ok")
        return self.sanitize(response, opts, end_marker)

    async def _drain_to_prompt(self, transport):
        """Consume input up to the next CLI prompt, if one arrives shortly"""
        try:
            await transport.read_until(
                self.settings.protocol.end_of_command,
                self.settings.echo_timeout
            )
        except ReadTimeoutError:
            self.logger.debug("No CLI prompt after interrupted output", extra={'device_id': transport.path})

    @staticmethod
    def sanitize(
        response: str,
        options: ExecuteOptions,
        end_marker: Union[str, Pattern[str]]
    ) -> str:
        """Strip protocol artifacts from a raw response according to options"""
        if options.trim_end_marker:
            response = strip_end_marker(response, end_marker)

        if options.trim_terminal_control:
            response = strip_terminal_control(response)

        if options.trim_empty_lines:
            response = strip_empty_lines(response)

        return response
