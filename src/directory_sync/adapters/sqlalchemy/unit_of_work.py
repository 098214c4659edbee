"""SQLAlchemy-backed unit of work for the persisted sync state."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.exc import DatabaseError
from sqlalchemy.orm import Session, sessionmaker

from directory_sync.config.storage import get_database_config

from .repositories import SqlAlchemyCursorRepository
from .tables import create_all_tables, drop_all_tables

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call directory_sync.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine, tables, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    try:
        create_all_tables(resolved_engine)
    except DatabaseError as exc:
        _recreate(resolved_engine, exc)

    _STATE.engine = resolved_engine


def recreate_database(reason: Exception) -> None:
    """Replace the unreadable state database of the running adapter with an empty one."""

    if _STATE.engine is None:
        raise StartupError("SQLAlchemy adapter not initialised")
    _recreate(_STATE.engine, reason)


def _recreate(engine: Engine, reason: Exception) -> None:
    engine.dispose()
    database = engine.url.database
    if engine.dialect.name == "sqlite" and database and database != ":memory:":
        broken = Path(database)
        if broken.exists():
            kept = broken.with_name(f"{broken.name}.corrupt")
            broken.replace(kept)
            log.warning(
                "Sync state database is unreadable (%s), moved it to %s; "
                "a full sync is required to rebuild it",
                reason,
                kept,
            )
    else:
        log.warning(
            "Sync state database is unreadable (%s), recreating its tables; "
            "a full sync is required to rebuild it",
            reason,
        )
        drop_all_tables(engine)
    create_all_tables(engine)


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class SqlAlchemyUnitOfWork:
    """Unit of work managing one SQLAlchemy session for cursor reads and writes."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None
        self._cursors: SqlAlchemyCursorRepository | None = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.session = self.session_factory()
        self._cursors = SqlAlchemyCursorRepository(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self.session = None
        self._cursors = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def cursors(self) -> SqlAlchemyCursorRepository:
        if self._cursors is None:
            raise StartupError("Unit of work session not initialised")
        return self._cursors

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session
