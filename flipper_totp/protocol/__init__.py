"""
Device Protocol Module

CLI constants, response parsing and token models. The executor and the
client live in their own modules:

    from flipper_totp.protocol.client import TotpAppClient
"""

from . import constants
from .models import Token
from .table_parser import parse as parse_table

__all__ = ['constants', 'Token', 'parse_table']
