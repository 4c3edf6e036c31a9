"""Database layer - engine, base classes, types, ledger store."""

from fleet_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fleet_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from fleet_kernel.db.types import Currency, Money, UTCDateTime

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Currency",
    "UTCDateTime",
]
