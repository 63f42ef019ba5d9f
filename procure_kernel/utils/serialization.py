"""
JSON-safe conversion of DTOs for collaborator consumption.

Outputs of the procurement engine are frozen dataclasses.  Web layers and
report exporters want plain dicts: money as strings (never floats), UUIDs as
strings, dates in ISO format, enums as their values.
"""

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def to_primitive(value: Any) -> Any:
    """Recursively convert ``value`` into JSON-serializable primitives."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_primitive(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(to_primitive(k)): to_primitive(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_primitive(v) for v in value]
    raise TypeError(f"Cannot convert {type(value).__name__} to a primitive")
