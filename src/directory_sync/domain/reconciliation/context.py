"""Per-pipeline memo of aggregate identities and Registry designations."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.domain.errors import NotAuthoritativeError
from directory_sync.domain.model import Provenance, normalize_address

if TYPE_CHECKING:
    from collections.abc import Mapping

    from directory_sync.domain.model import RegistryOrganization, ResourceKey
    from directory_sync.domain.ports import AggregateDirectory, Registry

log = getLogger(__name__)


@dataclass(slots=True)
class ReconciliationContext:
    """State shared by the phases of one source pipeline.

    A context is created for every batch and never outlives it: identities that the
    transaction at the end of the pipeline creates must not leak into the next batch
    as "not tracked".
    """

    source: str
    aggregate: AggregateDirectory
    registry: Registry
    designated: Mapping[str, RegistryOrganization] = field(
        default_factory=dict[str, "RegistryOrganization"]
    )
    _identities: dict[ResourceKey, ResourceKey | None] = field(
        default_factory=dict, init=False, repr=False
    )
    _designations: dict[str, RegistryOrganization | None] = field(
        default_factory=dict[str, "RegistryOrganization | None"], init=False, repr=False
    )

    def __post_init__(self) -> None:
        self.source = normalize_address(self.source)

    def provenance(self, key: ResourceKey) -> Provenance:
        return Provenance.of(self.source, key)

    def aggregate_id(self, key: ResourceKey) -> ResourceKey | None:
        """Return the aggregate record holding this source's copy of ``key``."""

        if key not in self._identities:
            self._identities[key] = self.aggregate.find_by_provenance(self.provenance(key))
        return self._identities[key]

    def is_tracked(self, key: ResourceKey) -> bool:
        return self.aggregate_id(key) is not None

    def designation(self, external_id: str) -> RegistryOrganization | None:
        if external_id in self.designated:
            return self.designated[external_id]
        if external_id not in self._designations:
            try:
                found = self.registry.authoritative_organization(external_id)
            except NotAuthoritativeError as exc:
                log.info("Organization %s: %s", external_id, exc)
                found = None
            self._designations[external_id] = found
        return self._designations[external_id]

    @staticmethod
    def declare() -> str:
        return f"urn:uuid:{uuid.uuid4()}"
