"""SQLAlchemy adapter package for directory-sync."""

from __future__ import annotations

from .repositories import SqlAlchemyCursorRepository
from .state_store import SqlAlchemySyncStateStore
from .tables import (
    UTCDateTime,
    create_all_tables,
    metadata,
    registry_cursor_table,
    source_cursor_table,
)
from .unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyCursorRepository",
    "SqlAlchemySyncStateStore",
    "SqlAlchemyUnitOfWork",
    "UTCDateTime",
    "create_all_tables",
    "metadata",
    "registry_cursor_table",
    "shutdown",
    "source_cursor_table",
    "startup",
]
