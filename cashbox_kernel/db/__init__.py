"""Database layer: declarative base, column types, engine and sessions."""

from cashbox_kernel.db.base import UUID, Base, UUIDString
from cashbox_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)
from cashbox_kernel.db.types import Money, UTCDateTime, round_money

__all__ = [
    "Base",
    "UUID",
    "UUIDString",
    "Money",
    "UTCDateTime",
    "round_money",
    "build_engine",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
]
