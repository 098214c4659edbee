"""SQLAlchemy Core tables holding the synchronisation cursors."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from sqlalchemy import Column, DateTime, Dialect, Integer, MetaData, String, Table, TypeDecorator

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

REGISTRY_CURSOR_ROW: Final[int] = 1


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData()

source_cursor_table = Table(
    "source_cursor",
    metadata,
    Column("address", String(2048), primary_key=True),
    Column("last_synced", UTCDateTime(), nullable=True),
)

registry_cursor_table = Table(
    "registry_cursor",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("last_synced", UTCDateTime(), nullable=False),
)


def create_all_tables(engine: Engine) -> None:
    """Create the cursor tables if they do not exist yet."""

    log.debug("Creating sync state tables")
    metadata.create_all(engine)


def drop_all_tables(engine: Engine) -> None:
    log.debug("Dropping sync state tables")
    metadata.drop_all(engine)
