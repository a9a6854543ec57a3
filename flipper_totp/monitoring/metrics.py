"""
Prometheus metrics for the device protocol client.
"""

from prometheus_client import Counter, Histogram, start_http_server

_metrics_started = False

device_commands_total = Counter(
    "flipper_totp_commands_total",
    "Total CLI commands executed on the device",
    ["command", "outcome"]
)

device_command_latency_seconds = Histogram(
    "flipper_totp_command_latency_seconds",
    "Time from command submission to a complete response",
    ["command"]
)

device_command_retries_total = Counter(
    "flipper_totp_command_retries_total",
    "Command re-submissions",
    ["reason"]
)

device_connection_attempts_total = Counter(
    "flipper_totp_connection_attempts_total",
    "Serial connection attempts",
    ["outcome"]
)

device_pin_requests_total = Counter(
    "flipper_totp_pin_requests_total",
    "PIN prompts raised by the device"
)


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0"):
    """Start Prometheus metrics server if not already running."""
    global _metrics_started

    if _metrics_started:
        return

    start_http_server(port, addr=addr)
    _metrics_started = True


def track_command(command: str, outcome: str):
    """Track executed command by verb and outcome."""
    device_commands_total.labels(command=command, outcome=outcome).inc()


def track_command_latency(command: str, duration_seconds: float):
    """Track command latency."""
    device_command_latency_seconds.labels(command=command).observe(duration_seconds)


def track_command_retry(reason: str):
    """Track a command retry by reason."""
    device_command_retries_total.labels(reason=reason).inc()


def track_connection_attempt(outcome: str):
    """Track a connection attempt by outcome."""
    device_connection_attempts_total.labels(outcome=outcome).inc()


def track_pin_request():
    """Track a PIN prompt."""
    device_pin_requests_total.inc()
