"""
Logging Module

Provides structured JSON logging.
"""

from .logger import configure_logging, get_logger, StructuredFormatter

__all__ = ['configure_logging', 'get_logger', 'StructuredFormatter']
