"""Select the part of a source batch the source is authoritative for.

Authority is decided per record but constrained by the owning Organization:

1. a record already in the aggregate stays authoritative (deletes included);
2. a root Organization is authoritative when the Registry designates the source;
3. a record owned by an authoritative record of the same batch inherits authority;
4. a record owned by an Organization already in the aggregate is authoritative.

Organizations carrying a Registry identifier finally receive the Registry's name.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.domain.errors import OwnershipCycleError
from directory_sync.domain.model import Change, ResourceKind

from .batch import latest_changes

if TYPE_CHECKING:
    from collections.abc import Iterable

    from directory_sync.domain.model import ResourceKey

    from .context import ReconciliationContext

log = getLogger(__name__)


def resolve_authority(
    changes: Iterable[Change], context: ReconciliationContext
) -> list[Change]:
    """Return the authoritative changes of a batch, owners before their dependents."""

    batch = latest_changes(changes)
    accepted: dict[ResourceKey, Change] = {}
    unresolved: dict[ResourceKey, Change] = {}

    for change in batch:
        if context.is_tracked(change.key):
            accepted[change.key] = change
        elif change.is_delete:
            log.debug("%s: skipping delete of untracked %s", context.source, change.key)
        elif _is_root_organization(change, context):
            if _designates_source(change, context):
                accepted[change.key] = change
        else:
            unresolved[change.key] = change

    pending = {key: change for key, change in unresolved.items() if _owner_of(change) is not None}
    orphans = [change for key, change in unresolved.items() if key not in pending]
    _settle(pending, unresolved, accepted, context, bound=len(batch))
    _report_unresolved(pending, orphans, context)

    ordered = _owners_first(accepted)
    return [_apply_registry_name(change, context) for change in ordered]


def _owner_of(change: Change) -> ResourceKey | None:
    assert change.resource is not None
    return change.resource.owner()


def _is_root_organization(change: Change, context: ReconciliationContext) -> bool:
    resource = change.resource
    if resource is None or resource.kind is not ResourceKind.ORGANIZATION:
        return False
    external_id = resource.external_id()
    if external_id is not None and external_id in context.designated:
        return True
    return not resource.has_owner_reference()


def _designates_source(change: Change, context: ReconciliationContext) -> bool:
    assert change.resource is not None
    external_id = change.resource.external_id()
    if external_id is None:
        log.info("%s: dropping %s, root organization without URA", context.source, change.key)
        return False
    designation = context.designation(external_id)
    if designation is None:
        log.info(
            "%s: dropping %s, organization %s has no designated admin directory",
            context.source,
            change.key,
            external_id,
        )
        return False
    if not designation.designates(context.source):
        log.info(
            "%s: dropping %s, organization %s is administered by %s",
            context.source,
            change.key,
            external_id,
            designation.source,
        )
        return False
    return True


def _settle(
    pending: dict[ResourceKey, Change],
    unresolved: dict[ResourceKey, Change],
    accepted: dict[ResourceKey, Change],
    context: ReconciliationContext,
    *,
    bound: int,
) -> None:
    """Scan ``pending`` until no change gains an authoritative owner, at most ``bound`` times."""

    for _ in range(bound):
        settled = [
            key
            for key, change in pending.items()
            if _has_authoritative_owner(change, unresolved, accepted, context)
        ]
        if not settled:
            return
        for key in settled:
            accepted[key] = pending.pop(key)
    if pending:
        raise OwnershipCycleError(
            f"Ownership propagation did not settle within {bound} scans, "
            f"{len(pending)} changes left"
        )


def _has_authoritative_owner(
    change: Change,
    unresolved: dict[ResourceKey, Change],
    accepted: dict[ResourceKey, Change],
    context: ReconciliationContext,
) -> bool:
    owner = _owner_of(change)
    if owner is None:
        return False
    if owner in accepted:
        return True
    # an owner outside the batch that the aggregate already holds
    return owner not in unresolved and context.is_tracked(owner)


def _report_unresolved(
    pending: dict[ResourceKey, Change],
    orphans: list[Change],
    context: ReconciliationContext,
) -> None:
    for change in orphans:
        log.debug("%s: %s has no owner, not authoritative on its own", context.source, change.key)

    for change in pending.values():
        if _in_cycle(change.key, pending):
            log.warning(
                "%s: dropping %s, its ownership chain forms a cycle", context.source, change.key
            )
        else:
            log.info(
                "%s: dropping %s, owner %s is not authoritative",
                context.source,
                change.key,
                _owner_of(change),
            )


def _in_cycle(start: ResourceKey, unresolved: dict[ResourceKey, Change]) -> bool:
    seen: set[ResourceKey] = set()
    current: ResourceKey | None = start
    while current is not None and current in unresolved:
        if current in seen:
            return True
        seen.add(current)
        current = _owner_of(unresolved[current])
    return False


def _owners_first(accepted: dict[ResourceKey, Change]) -> list[Change]:
    ordered: list[Change] = []
    placed: set[ResourceKey] = set()

    def place(key: ResourceKey, trail: frozenset[ResourceKey]) -> None:
        if key in placed or key in trail:
            return
        change = accepted[key]
        owner = None if change.resource is None else change.resource.owner()
        if owner is not None and owner in accepted:
            place(owner, trail | {key})
        placed.add(key)
        ordered.append(change)

    for key in accepted:
        place(key, frozenset())
    return ordered


def _apply_registry_name(change: Change, context: ReconciliationContext) -> Change:
    resource = change.resource
    if resource is None or resource.kind is not ResourceKind.ORGANIZATION:
        return change
    external_id = resource.external_id()
    if external_id is None:
        return change
    designation = context.designation(external_id)
    if designation is None or not designation.name or designation.name == resource.name:
        return change
    return change.with_resource(resource.renamed(designation.name))
