"""Full and incremental synchronisation across all admin directories."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, TypeVar

from directory_sync.domain.errors import (
    MissingCursorError,
    OperationalError,
    OrchestratorBusyError,
)
from directory_sync.domain.reconciliation import (
    apply_source_changes,
    delete_organization_graph,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from directory_sync.domain.model import RegistryOrganization, SyncState
    from directory_sync.domain.ports import (
        AggregateDirectory,
        Registry,
        SourceDirectory,
        SourceDirectoryFactory,
        SyncStateStore,
    )

log = getLogger(__name__)

TUnit = TypeVar("TUnit")


class SyncMode(StrEnum):
    FULL = "full"
    INCREMENTAL = "incremental"


class OrchestratorState(StrEnum):
    IDLE = "idle"
    FULL_SYNC = "full-sync"
    INCREMENTAL_SYNC = "incremental-sync"


@dataclass(slots=True)
class SyncReport:
    mode: SyncMode
    started_at: datetime
    organizations_synced: int = 0
    organizations_deleted: int = 0
    organizations_failed: list[str] = field(default_factory=list[str])
    sources_synced: list[str] = field(default_factory=list[str])
    sources_failed: list[str] = field(default_factory=list[str])
    registry_cursor_advanced: bool = False
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not (self.organizations_failed or self.sources_failed or self.cancelled)


@dataclass(slots=True)
class _SourceOutcome:
    source: str
    processed: set[str] = field(default_factory=set[str])
    synced: int = 0
    failed: list[str] = field(default_factory=list[str])
    complete: bool = False
    cursor: datetime | None = None


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class UpdateOrchestrator:
    """Drive reconciliation runs and keep the persisted cursors in step.

    Sources are processed in parallel, bounded by ``max_workers``; the work for a
    single source always runs sequentially in one worker. ``cancel`` is honoured
    between organizations and sources, never while a transaction is in flight.
    """

    def __init__(
        self,
        *,
        registry: Registry,
        aggregate: AggregateDirectory,
        source_factory: SourceDirectoryFactory,
        state_store: SyncStateStore,
        max_workers: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._registry = registry
        self._aggregate = aggregate
        self._source_factory = source_factory
        self._state_store = state_store
        self._max_workers = max_workers
        self._clock = clock
        self._lock = threading.Lock()
        self._state = OrchestratorState.IDLE
        self._cancelled = threading.Event()
        self._aborted = threading.Event()

    @property
    def state(self) -> OrchestratorState:
        return self._state

    def cancel(self) -> None:
        if self._state is not OrchestratorState.IDLE:
            log.info("Cancellation requested, finishing the units in progress")
        self._cancelled.set()

    def run(self, *, full: bool = False, since: datetime | None = None) -> SyncReport:
        if full and since is not None:
            raise ValueError("A full sync does not take a since cursor")

        mode = SyncMode.FULL if full else SyncMode.INCREMENTAL
        with self._lock:
            if self._state is not OrchestratorState.IDLE:
                raise OrchestratorBusyError(f"A {self._state} run is already in progress")
            self._state = (
                OrchestratorState.FULL_SYNC if full else OrchestratorState.INCREMENTAL_SYNC
            )
            self._cancelled.clear()
            self._aborted.clear()

        report = SyncReport(mode=mode, started_at=self._clock())
        try:
            state = self._state_store.load()
            try:
                if full:
                    self._full_sync(state, report)
                else:
                    self._incremental_sync(state, report, since)
            finally:
                self._state_store.save(state)
        finally:
            report.cancelled = self._cancelled.is_set()
            with self._lock:
                self._state = OrchestratorState.IDLE

        log.info(
            "%s sync finished: %d organizations synced, %d deleted, %d failed; "
            "%d sources synced, %d failed%s",
            mode,
            report.organizations_synced,
            report.organizations_deleted,
            len(report.organizations_failed),
            len(report.sources_synced),
            len(report.sources_failed),
            " (cancelled)" if report.cancelled else "",
        )
        return report

    # full sync

    def _full_sync(self, state: SyncState, report: SyncReport) -> None:
        started_at = report.started_at
        previously_known = self._aggregate.tracked_external_ids()

        by_source: dict[str, list[RegistryOrganization]] = {}
        for organization in self._registry.authoritative_organizations():
            by_source.setdefault(organization.source, []).append(organization)
        log.info(
            "Full sync of %d organizations across %d admin directories",
            sum(len(organizations) for organizations in by_source.values()),
            len(by_source),
        )
        state.replace_tracked(by_source)

        units = sorted(by_source.items())
        for outcome in self._in_parallel(units, self._sync_source_organizations):
            previously_known -= outcome.processed
            report.organizations_synced += outcome.synced
            report.organizations_failed.extend(outcome.failed)
            if outcome.complete:
                state.advance(outcome.source, started_at)
                report.sources_synced.append(outcome.source)
            else:
                report.sources_failed.append(outcome.source)

        if self._should_stop():
            log.info("Full sync interrupted, skipping removal of unlisted organizations")
            return

        for external_id in sorted(previously_known):
            if self._should_stop():
                return
            log.info("Organization %s is no longer listed by the Registry", external_id)
            try:
                delete_organization_graph(self._aggregate, external_id)
            except OperationalError as exc:
                log.warning("Could not delete organization %s: %s", external_id, exc)
                report.organizations_failed.append(external_id)
                continue
            report.organizations_deleted += 1

        state.registry_cursor = started_at
        report.registry_cursor_advanced = True

    def _sync_source_organizations(
        self, unit: tuple[str, Sequence[RegistryOrganization]]
    ) -> _SourceOutcome:
        address, organizations = unit
        outcome = _SourceOutcome(source=address)
        source = self._source_factory(address)
        for organization in organizations:
            if self._should_stop():
                return outcome
            outcome.processed.add(organization.external_id)
            try:
                self._replace_organization_graph(source, organization)
            except OperationalError as exc:
                log.warning(
                    "%s: skipping organization %s: %s", address, organization.external_id, exc
                )
                outcome.failed.append(organization.external_id)
                continue
            outcome.synced += 1
        outcome.complete = not outcome.failed
        return outcome

    def _replace_organization_graph(
        self, source: SourceDirectory, organization: RegistryOrganization
    ) -> None:
        log.info("%s: pulling organization %s", source.address, organization.external_id)
        pulled = source.organization_graph(organization.external_id)
        current = self._aggregate.organization_graph(organization.external_id)
        apply_source_changes(
            pulled,
            source=source,
            aggregate=self._aggregate,
            registry=self._registry,
            designated={organization.external_id: organization},
            replaces=current,
        )

    # incremental sync

    def _incremental_sync(
        self, state: SyncState, report: SyncReport, since: datetime | None
    ) -> None:
        registry_since = since or state.registry_cursor
        if registry_since is None:
            raise MissingCursorError(
                "No registry cursor has been persisted yet; run a full sync or pass since"
            )

        started_at = report.started_at
        if self._apply_registry_changes(state, report, registry_since):
            state.registry_cursor = started_at
            report.registry_cursor_advanced = True

        if self._should_stop():
            return

        units = [
            (address, since or state.cursor_for(address)) for address in state.tracked_sources
        ]
        for outcome in self._in_parallel(units, self._sync_source_history):
            if outcome.complete and outcome.cursor is not None:
                state.advance(outcome.source, outcome.cursor)
                report.sources_synced.append(outcome.source)
            else:
                report.sources_failed.append(outcome.source)

    def _apply_registry_changes(
        self, state: SyncState, report: SyncReport, since: datetime
    ) -> bool:
        changes = list(self._registry.changes_since(since))
        log.info("Replaying %d Registry changes since %s", len(changes), since.isoformat())
        applied_all = True
        for change in changes:
            if self._should_stop():
                return False
            try:
                organization = change.as_organization()
                if organization is None:
                    log.info("Authority for organization %s ended", change.external_id)
                    delete_organization_graph(self._aggregate, change.external_id)
                    report.organizations_deleted += 1
                    continue
                source = self._source_factory(organization.source)
                self._replace_organization_graph(source, organization)
                state.track(organization.source)
                report.organizations_synced += 1
            except OperationalError as exc:
                log.warning("Skipping Registry change for %s: %s", change.external_id, exc)
                report.organizations_failed.append(change.external_id)
                applied_all = False
        return applied_all

    def _sync_source_history(self, unit: tuple[str, datetime | None]) -> _SourceOutcome:
        address, cursor = unit
        outcome = _SourceOutcome(source=address)
        if self._should_stop():
            return outcome
        source = self._source_factory(address)
        pulled_at = self._clock()
        try:
            changes = source.changes_since(cursor)
            log.info(
                "%s: %d changes since %s",
                address,
                len(changes),
                cursor.isoformat() if cursor else "the beginning",
            )
            apply_source_changes(
                changes, source=source, aggregate=self._aggregate, registry=self._registry
            )
        except OperationalError as exc:
            log.warning("%s: skipping source: %s", address, exc)
            return outcome
        outcome.complete = True
        outcome.cursor = pulled_at
        return outcome

    # workers

    def _should_stop(self) -> bool:
        return self._cancelled.is_set() or self._aborted.is_set()

    def _in_parallel(
        self, units: Sequence[TUnit], work: Callable[[TUnit], _SourceOutcome]
    ) -> Iterator[_SourceOutcome]:
        if not units:
            return
        workers = min(self._max_workers, len(units))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="directory-sync") as pool:
            futures = [pool.submit(work, unit) for unit in units]
            try:
                for future in as_completed(futures):
                    yield future.result()
            except BaseException:
                # stop the remaining workers at their next unit boundary
                self._aborted.set()
                for future in futures:
                    future.cancel()
                raise
