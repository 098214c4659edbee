"""Persisted sync state on top of the SQLAlchemy unit of work."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy.exc import DatabaseError

from directory_sync.domain.model import SyncState

from .unit_of_work import SqlAlchemyUnitOfWork, recreate_database

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)


class SqlAlchemySyncStateStore:
    """Load and save cursors.

    An unreadable database loads as empty state and is recreated by the next save.
    """

    def __init__(
        self, unit_of_work_factory: Callable[[], SqlAlchemyUnitOfWork] = SqlAlchemyUnitOfWork
    ) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def load(self) -> SyncState:
        try:
            with self._unit_of_work_factory() as uow:
                registry_cursor = uow.cursors.registry_cursor()
                source_cursors = uow.cursors.source_cursors()
        except DatabaseError as exc:
            log.warning(
                "Sync state could not be read (%s); a full sync is required to rebuild it", exc
            )
            return SyncState()
        return SyncState(registry_cursor=registry_cursor, source_cursors=source_cursors)

    def save(self, state: SyncState) -> None:
        try:
            self._write(state)
        except DatabaseError as exc:
            recreate_database(exc)
            self._write(state)
        log.debug(
            "Saved sync state: registry cursor %s, %d tracked sources",
            state.registry_cursor.isoformat() if state.registry_cursor else "unset",
            len(state.source_cursors),
        )

    def _write(self, state: SyncState) -> None:
        with self._unit_of_work_factory() as uow:
            uow.cursors.set_registry_cursor(state.registry_cursor)
            uow.cursors.replace_source_cursors(state.source_cursors)
            uow.commit()
