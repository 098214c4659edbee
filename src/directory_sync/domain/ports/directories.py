"""Ports towards the FHIR directories taking part in a synchronisation run."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, TypeAlias, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime

    from directory_sync.domain.model import (
        Change,
        Provenance,
        Resource,
        ResourceKey,
        Transaction,
    )


@runtime_checkable
class SourceDirectory(Protocol):
    """Read access to one admin directory."""

    @property
    def address(self) -> str: ...

    def organization_graph(self, external_id: str) -> list[Change]:
        """Return the organization with its sub-organizations and dependents.

        The result is empty when the source does not know the organization.
        """
        ...

    def read(self, key: ResourceKey) -> Resource | None:
        """Return the current version of a record, ``None`` when it is gone."""
        ...

    def changes_since(self, since: datetime | None) -> list[Change]:
        """Return the source's change feed, oldest change first."""
        ...


SourceDirectoryFactory: TypeAlias = Callable[[str], SourceDirectory]


@runtime_checkable
class AggregateDirectory(Protocol):
    """Read and write access to the Query Directory."""

    def find_by_provenance(self, provenance: Provenance) -> ResourceKey | None: ...

    def organization_graph(self, external_id: str) -> list[Resource]: ...

    def dependents(self, organizations: Collection[ResourceKey]) -> list[ResourceKey]:
        """Return the records owned, directly or via sub-organizations, by ``organizations``.

        The Endpoints and Practitioners those records refer to are included.
        """
        ...

    def referrers(self, target: ResourceKey) -> set[ResourceKey]:
        """Return the records whose reference fields point at ``target``."""
        ...

    def tracked_external_ids(self) -> set[str]: ...

    def commit(self, transaction: Transaction) -> None: ...


__all__ = [
    "AggregateDirectory",
    "SourceDirectory",
    "SourceDirectoryFactory",
]
