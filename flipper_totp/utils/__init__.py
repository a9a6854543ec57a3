"""
Configuration utilities.
"""

from .config_loader import ConfigLoader
from .settings import ClientSettings, ProtocolSettings, RetryPolicy

__all__ = ['ConfigLoader', 'ClientSettings', 'ProtocolSettings', 'RetryPolicy']
