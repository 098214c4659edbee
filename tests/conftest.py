from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from directory_sync.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup
from directory_sync.domain.model import RegistryOrganization
from tests.helpers.directories import (
    FakeRegistry,
    FakeSourceDirectory,
    InMemoryAggregateDirectory,
    InMemoryStateStore,
)
from tests.helpers.resources import ADMIN_A, ADMIN_B

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry(
        [
            RegistryOrganization(external_id="1001", name="Huisarts A", endpoint_address=ADMIN_A),
            RegistryOrganization(external_id="2002", name="Apotheek B", endpoint_address=ADMIN_B),
        ]
    )


@pytest.fixture
def source_a() -> FakeSourceDirectory:
    return FakeSourceDirectory(ADMIN_A)


@pytest.fixture
def source_b() -> FakeSourceDirectory:
    return FakeSourceDirectory(ADMIN_B)


@pytest.fixture
def aggregate() -> InMemoryAggregateDirectory:
    return InMemoryAggregateDirectory()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()
