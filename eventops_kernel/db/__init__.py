"""Database layer - engine, base classes and column types."""

from eventops_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from eventops_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session_factory",
    "create_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
