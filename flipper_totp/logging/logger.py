"""
Structured Logging

Provides JSON-formatted structured logging for the protocol client.
Every log entry includes timestamp, level, device_id and message. The
device_id is the serial path when the record carries one (passed as
extra={'device_id': path}), otherwise the formatter default.
"""

import logging
import logging.config
import json
import os
from datetime import datetime, timezone
from typing import Optional

import yaml


class StructuredFormatter(logging.Formatter):
    """Custom formatter that outputs JSON-structured log entries"""

    def __init__(self, device_id: str = "flipper"):
        super().__init__()
        self.device_id = device_id

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "device_id": getattr(record, "device_id", self.device_id),
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add any extra fields from the record
        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False)


def get_logger(name: str, device_id: str = "flipper", level: int = logging.INFO) -> logging.Logger:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically module name)
        device_id: Fallback device identifier for records without one
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance

    Example:
        >>> logger = get_logger(__name__, device_id="/dev/ttyACM0")
        >>> logger.info("Token listed", extra={'extra_fields': {'count': 3}})
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(level)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(StructuredFormatter(device_id))

        logger.addHandler(console_handler)
        logger.propagate = False

    return logger


def configure_logging(config_path: Optional[str] = None, default_level: int = logging.INFO) -> bool:
    """
    Configure logging from a YAML file. Falls back to basicConfig on failure.

    Args:
        config_path: Path to YAML logging config
        default_level: Default log level for fallback config

    Returns:
        True if YAML config loaded, False otherwise
    """
    if config_path and os.path.isfile(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as handle:
                config = yaml.safe_load(handle)

            if not config:
                raise ValueError("Logging config is empty")

            for handler in config.get("handlers", {}).values():
                filename = handler.get("filename")
                if filename and os.path.dirname(filename):
                    os.makedirs(os.path.dirname(filename), exist_ok=True)

            logging.config.dictConfig(config)
            return True
        except (OSError, ValueError, yaml.YAMLError) as e:
            logging.basicConfig(level=default_level)
            logging.getLogger(__name__).warning(f"Ignoring logging config {config_path}: {e}")
            return False

    logging.basicConfig(level=default_level)
    return False
