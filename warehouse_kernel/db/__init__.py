"""Database layer - engine, base classes, column types, and append-only guards."""

from warehouse_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from warehouse_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from warehouse_kernel.db.types import Cbm, Ratio, ShortCode, round_cbm

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Cbm",
    "Ratio",
    "ShortCode",
    "round_cbm",
]
