"""Database layer - engine, base classes, types, and append-only guards."""

from procure_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from procure_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from procure_kernel.db.types import round_money, to_decimal, to_quantity

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "round_money",
    "to_decimal",
    "to_quantity",
]
