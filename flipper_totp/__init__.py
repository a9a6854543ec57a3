"""
flipper_totp: protocol client for the Flipper Zero TOTP authenticator

Talks to the authenticator over its USB serial CLI: device discovery,
session recovery, command framing, PIN prompts and table parsing.
"""

from .__version__ import __version__
from .communication import EventBus, ProtocolEvent
from .protocol.client import TotpAppClient
from .utils import ClientSettings

__all__ = [
    '__version__',
    'ClientSettings',
    'EventBus',
    'ProtocolEvent',
    'TotpAppClient'
]
