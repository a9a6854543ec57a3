"""
Token Models

Typed view over records parsed from the ``totp ls`` table. Records stay
plain text dictionaries; coercion happens only when a caller asks for it.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class Token:
    """Token entry as listed by the device"""
    index: Optional[int]
    name: str
    algorithm: Optional[str] = None
    digits: Optional[int] = None
    duration: Optional[int] = None
    extra: Dict[str, str] = field(default_factory=dict)

    COLUMNS = {
        '#': 'index',
        'Name': 'name',
        'Algo': 'algorithm',
        'Ln': 'digits',
        'Dur': 'duration'
    }

    @classmethod
    def from_record(cls, record: Dict[str, str]) -> "Token":
        """
        Coerce a parsed table record.

        Numeric columns that fail to parse become None; columns this
        model does not know about are kept in ``extra``.
        """
        return cls(
            index=_to_int(record.get('#')),
            name=record.get('Name', ''),
            algorithm=record.get('Algo') or None,
            digits=_to_int(record.get('Ln')),
            duration=_to_int(record.get('Dur')),
            extra={key: value for key, value in record.items() if key not in cls.COLUMNS}
        )
