"""Database layer: declarative base, engine/session management, locking."""

from scms_kernel.db.base import Base, TimestampedBase, TZDateTime, UUIDString
from scms_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
    transaction,
)

__all__ = [
    "Base",
    "TimestampedBase",
    "TZDateTime",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "reset_engine",
    "session_scope",
    "transaction",
]
