"""
Monitoring utilities for the protocol client.
"""

from .metrics import (
    start_metrics_server,
    track_command,
    track_command_latency,
    track_command_retry,
    track_connection_attempt,
    track_pin_request
)

__all__ = [
    "start_metrics_server",
    "track_command",
    "track_command_latency",
    "track_command_retry",
    "track_connection_attempt",
    "track_pin_request"
]
