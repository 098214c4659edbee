"""One reconciliation pass: authority, association, rewrite, transaction, commit."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.domain.model import Resource, ResourceKind, Transaction

from .authority import resolve_authority
from .builder import build_transaction, deletion_transaction
from .context import ReconciliationContext
from .fetcher import fetch_associated
from .rewrite import rewrite_references

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from directory_sync.domain.model import Change, RegistryOrganization, ResourceKey
    from directory_sync.domain.ports import AggregateDirectory, Registry, SourceDirectory

    from .rewrite import RewrittenChange

log = getLogger(__name__)

# kinds without an owner; several graphs may refer to the same record
SHARED_KINDS = frozenset({ResourceKind.ENDPOINT, ResourceKind.PRACTITIONER})


@dataclass(frozen=True, slots=True)
class PipelineResult:
    source: str
    received: int
    accepted: int
    transaction: Transaction

    @property
    def committed(self) -> bool:
        return bool(self.transaction)


def apply_source_changes(
    changes: Sequence[Change],
    *,
    source: SourceDirectory,
    aggregate: AggregateDirectory,
    registry: Registry,
    designated: Mapping[str, RegistryOrganization] | None = None,
    replaces: Sequence[Resource] = (),
) -> PipelineResult:
    """Reconcile a batch of source changes into the aggregate in one transaction.

    ``designated`` lists organizations the Registry is known to designate to this
    source; each is treated as a root regardless of its ``partOf``. ``replaces`` is
    the aggregate's current copy of the graph being pulled: every record in it that
    the transaction does not update is deleted.
    """

    context = ReconciliationContext(
        source=source.address,
        aggregate=aggregate,
        registry=registry,
        designated=dict(designated or {}),
    )
    accepted = resolve_authority(changes, context)
    working = fetch_associated(accepted, changes, source=source, context=context)
    rewritten = rewrite_references(working, context)

    extra_deletes = _extra_deletes(rewritten, aggregate, replaces)
    transaction = build_transaction(rewritten, context, extra_deletes=extra_deletes)

    result = PipelineResult(
        source=context.source,
        received=len(changes),
        accepted=len(accepted),
        transaction=transaction,
    )
    if not transaction:
        log.info("%s: nothing to apply (%d changes received)", context.source, len(changes))
        return result

    aggregate.commit(transaction)
    log.info(
        "%s: committed %d of %d changes (%s)",
        context.source,
        len(accepted),
        len(changes),
        transaction.summary(),
    )
    return result


def delete_organization_graph(aggregate: AggregateDirectory, external_id: str) -> int:
    """Remove an organization and everything it holds from the aggregate.

    Endpoints and Practitioners that records outside the graph still refer to are kept.
    """

    records = aggregate.organization_graph(external_id)
    removed = {record.key for record in records}
    transaction = deletion_transaction(
        record.key for record in records if not _still_referenced(record.key, aggregate, removed)
    )
    if not transaction:
        log.debug("Organization %s is not in the aggregate", external_id)
        return 0
    aggregate.commit(transaction)
    log.info("Deleted organization %s (%d records)", external_id, len(transaction))
    return len(transaction)


def _extra_deletes(
    rewritten: Sequence[RewrittenChange],
    aggregate: AggregateDirectory,
    replaces: Sequence[Resource],
) -> list[ResourceKey]:
    candidates = [*_cascade(rewritten, aggregate), *(record.key for record in replaces)]
    if not candidates:
        return []
    # records the transaction rewrites count with their new body only
    targets = {item.target for item in rewritten if item.target is not None}
    superseded = {*targets, *candidates}
    written = _written_references(rewritten)
    return [
        key
        for key in candidates
        if key not in targets and not _still_referenced(key, aggregate, superseded, written)
    ]


def _cascade(
    rewritten: Sequence[RewrittenChange], aggregate: AggregateDirectory
) -> list[ResourceKey]:
    organizations = [
        item.target
        for item in rewritten
        if item.change.is_delete
        and item.target is not None
        and item.change.key.kind is ResourceKind.ORGANIZATION
    ]
    if not organizations:
        return []
    return aggregate.dependents(organizations)


def _written_references(rewritten: Sequence[RewrittenChange]) -> set[ResourceKey]:
    references: set[ResourceKey] = set()
    for item in rewritten:
        if item.body is None:
            continue
        key = item.change.key
        references.update(Resource(kind=key.kind, id=key.id, body=item.body).references())
    return references


def _still_referenced(
    key: ResourceKey,
    aggregate: AggregateDirectory,
    removed: set[ResourceKey],
    written: set[ResourceKey] | None = None,
) -> bool:
    if key.kind not in SHARED_KINDS:
        return False
    if written and key in written:
        log.info("Keeping %s: the same transaction refers to it", key)
        return True
    others = aggregate.referrers(key) - removed
    if others:
        log.info("Keeping %s: still referenced by %s", key, ", ".join(sorted(map(str, others))))
        return True
    return False
