"""
Client Settings

Typed view over the YAML configuration. Every field defaults to the value
fixed by the device firmware or the protocol contract in
flipper_totp.protocol.constants.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from flipper_totp.protocol import constants


@dataclass
class RetryPolicy:
    """
    Delay schedule for the connection and command retry loops.

    With the defaults every retry waits ``delay`` seconds and the loop
    never gives up. ``backoff`` > 1 escalates the delay up to ``max_delay``;
    ``max_attempts`` bounds the connection loop.
    """
    delay: float = constants.RETRY_DELAY
    backoff: float = 1.0
    max_delay: float = 30.0
    max_attempts: Optional[int] = None

    def __post_init__(self):
        if self.delay < 0:
            raise ValueError(f"Retry delay must be >= 0, got {self.delay}")
        if self.backoff < 1.0:
            raise ValueError(f"Retry backoff must be >= 1.0, got {self.backoff}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt"""
        return min(self.delay * (self.backoff ** max(attempt - 1, 0)), max(self.max_delay, self.delay))


@dataclass
class ProtocolSettings:
    """CLI sentinels of the target firmware"""
    totp_command: str = constants.TOTP_COMMAND
    end_of_command: str = constants.CLI_END_OF_COMMAND
    command_not_found: str = constants.CLI_COMMAND_NOT_FOUND
    ask_for_pin: str = constants.TOTP_ASK_FOR_PIN
    command_cancelled: str = constants.TOTP_COMMAND_CANCELLED
    enter_secret: str = constants.TOTP_ENTER_SECRET


@dataclass
class ClientSettings:
    """All tunables of the protocol client"""
    vendor_id: int = constants.FLIPPER_VENDOR_ID
    product_id: int = constants.FLIPPER_PRODUCT_ID
    baudrate: int = constants.SERIAL_BAUDRATE
    poll_interval: float = constants.DEVICE_POLL_INTERVAL
    probe_timeout: float = constants.PROBE_TIMEOUT
    echo_timeout: float = constants.ECHO_TIMEOUT
    response_timeout: float = constants.RESPONSE_TIMEOUT
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    protocol: ProtocolSettings = field(default_factory=ProtocolSettings)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ClientSettings":
        """
        Build settings from a loaded configuration dictionary.

        Recognized sections: device, serial, timeouts, retry, protocol.
        Unknown keys are ignored; missing keys keep their defaults.
        """
        device = config.get('device') or {}
        serial = config.get('serial') or {}
        timeouts = config.get('timeouts') or {}
        retry = config.get('retry') or {}
        protocol = config.get('protocol') or {}

        defaults = cls()
        max_attempts = retry.get('max_attempts')

        return cls(
            vendor_id=int(device.get('vendor_id', defaults.vendor_id)),
            product_id=int(device.get('product_id', defaults.product_id)),
            baudrate=int(serial.get('baudrate', defaults.baudrate)),
            poll_interval=float(serial.get('poll_interval', defaults.poll_interval)),
            probe_timeout=float(timeouts.get('probe', defaults.probe_timeout)),
            echo_timeout=float(timeouts.get('echo', defaults.echo_timeout)),
            response_timeout=float(timeouts.get('response', defaults.response_timeout)),
            retry=RetryPolicy(
                delay=float(retry.get('delay', constants.RETRY_DELAY)),
                backoff=float(retry.get('backoff', 1.0)),
                max_delay=float(retry.get('max_delay', 30.0)),
                max_attempts=int(max_attempts) if max_attempts is not None else None
            ),
            protocol=ProtocolSettings(**{
                key: str(value) for key, value in protocol.items()
                if key in ProtocolSettings.__dataclass_fields__
            })
        )
