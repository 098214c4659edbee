"""Application orchestration entry points."""

from __future__ import annotations

import threading
from contextlib import ExitStack
from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.adapters.fhir import FhirAggregateDirectory, FhirSourceDirectory
from directory_sync.adapters.registry import FhirRegistry
from directory_sync.adapters.sqlalchemy import SqlAlchemySyncStateStore
from directory_sync.adapters.sqlalchemy.unit_of_work import is_started, startup
from directory_sync.config import get_directory_config, get_sync_config
from directory_sync.domain.orchestrator import UpdateOrchestrator

if TYPE_CHECKING:
    from datetime import datetime

    from directory_sync.config import DirectoryConfig, SyncConfig
    from directory_sync.domain.orchestrator import SyncReport

log = getLogger(__name__)

_active: UpdateOrchestrator | None = None


class SourceDirectories:
    """One admin directory adapter per address, so each keeps a single client and rate limit."""

    def __init__(self) -> None:
        self._adapters: dict[str, FhirSourceDirectory] = {}
        self._lock = threading.Lock()

    def __call__(self, address: str) -> FhirSourceDirectory:
        with self._lock:
            if address not in self._adapters:
                self._adapters[address] = FhirSourceDirectory(address)
            return self._adapters[address]

    def close(self) -> None:
        with self._lock:
            adapters, self._adapters = list(self._adapters.values()), {}
        for adapter in adapters:
            adapter.close()


def build_orchestrator(
    *,
    directories: DirectoryConfig | None = None,
    sync: SyncConfig | None = None,
    resources: ExitStack | None = None,
) -> UpdateOrchestrator:
    """Wire the orchestrator to the configured FHIR servers and the state database.

    The HTTP adapters are closed by ``resources`` when one is given.
    """

    directory_config = directories or get_directory_config()
    sync_config = sync or get_sync_config()
    if not is_started():
        startup()
    registry = FhirRegistry(directory_config.registry_resilience())
    aggregate = FhirAggregateDirectory(directory_config.query_directory_resilience())
    sources = SourceDirectories()
    if resources is not None:
        for adapter in (registry, aggregate, sources):
            resources.callback(adapter.close)
    return UpdateOrchestrator(
        registry=registry,
        aggregate=aggregate,
        source_factory=sources,
        state_store=SqlAlchemySyncStateStore(),
        max_workers=sync_config.max_workers,
    )


def run_sync(
    *,
    full: bool = False,
    since: datetime | None = None,
    orchestrator: UpdateOrchestrator | None = None,
) -> SyncReport:
    """Run one full or incremental synchronisation."""

    global _active  # noqa: PLW0603
    with ExitStack() as resources:
        active = orchestrator or build_orchestrator(resources=resources)
        log.info(
            "Starting %s sync%s",
            "full" if full else "incremental",
            f" since {since.isoformat()}" if since else "",
        )
        _active = active
        try:
            return active.run(full=full, since=since)
        finally:
            _active = None


def cancel_sync() -> bool:
    """Ask the running synchronisation to stop after its current units; False if idle."""

    if _active is None:
        return False
    _active.cancel()
    return True
