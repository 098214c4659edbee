"""Cursor repository backed by a SQLAlchemy session."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select

from .tables import REGISTRY_CURSOR_ROW, registry_cursor_table, source_cursor_table

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from sqlalchemy.orm import Session


class SqlAlchemyCursorRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def registry_cursor(self) -> datetime | None:
        stmt = select(registry_cursor_table.c.last_synced).where(
            registry_cursor_table.c.id == REGISTRY_CURSOR_ROW
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def set_registry_cursor(self, cursor: datetime | None) -> None:
        self.session.execute(
            delete(registry_cursor_table).where(registry_cursor_table.c.id == REGISTRY_CURSOR_ROW)
        )
        if cursor is not None:
            self.session.execute(
                insert(registry_cursor_table).values(id=REGISTRY_CURSOR_ROW, last_synced=cursor)
            )

    def source_cursors(self) -> dict[str, datetime | None]:
        stmt = select(source_cursor_table.c.address, source_cursor_table.c.last_synced).order_by(
            source_cursor_table.c.address
        )
        return {address: last_synced for address, last_synced in self.session.execute(stmt)}

    def replace_source_cursors(self, cursors: Mapping[str, datetime | None]) -> None:
        """Store exactly ``cursors``; sources missing from it are no longer tracked."""

        self.session.execute(delete(source_cursor_table))
        if cursors:
            self.session.execute(
                insert(source_cursor_table),
                [
                    {"address": address, "last_synced": last_synced}
                    for address, last_synced in sorted(cursors.items())
                ],
            )
