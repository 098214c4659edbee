"""Rewrite source-local references to aggregate identities.

The first pass gives every record of the working set a forward declaration
(``urn:uuid:...``) that the transaction uses to address records it creates. The
second pass rewrites each reference field on a copy of the record: references to
records the aggregate holds point at their aggregate id, references into the working
set point at the forward declaration, and everything else is dropped.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from directory_sync.domain.model import ResourceKey, iter_reference_slots

if TYPE_CHECKING:
    from collections.abc import Sequence

    from directory_sync.domain.model import Change, JsonObject, Resource

    from .context import ReconciliationContext


@dataclass(frozen=True, slots=True)
class RewrittenChange:
    change: Change
    target: ResourceKey | None
    forward_id: str | None
    body: JsonObject | None

    @property
    def is_create(self) -> bool:
        return not self.change.is_delete and self.target is None


def rewrite_references(
    changes: Sequence[Change], context: ReconciliationContext
) -> list[RewrittenChange]:
    deleted = {change.key for change in changes if change.is_delete}
    forward = {
        change.key: context.declare() for change in changes if not change.is_delete
    }

    rewritten: list[RewrittenChange] = []
    for change in changes:
        target = context.aggregate_id(change.key)
        if change.resource is None:
            rewritten.append(RewrittenChange(change, target, None, None))
            continue
        body = _rewrite_body(change.resource, context, forward, deleted)
        rewritten.append(RewrittenChange(change, target, forward[change.key], body))
    return rewritten


def _rewrite_body(
    resource: Resource,
    context: ReconciliationContext,
    forward: dict[ResourceKey, str],
    deleted: set[ResourceKey],
) -> JsonObject:
    body = copy.deepcopy(resource.body)
    for path in resource.capabilities.reference_fields:
        for container, field in list(iter_reference_slots(body, path)):
            value = container[field]
            if isinstance(value, list):
                items = cast("list[object]", value)
                kept = [
                    item
                    for item in items
                    if isinstance(item, dict)
                    and _rewrite_reference(cast("JsonObject", item), context, forward, deleted)
                ]
                if kept:
                    container[field] = kept
                else:
                    del container[field]
            elif not isinstance(value, dict) or not _rewrite_reference(
                cast("JsonObject", value), context, forward, deleted
            ):
                del container[field]
    return body


def _rewrite_reference(
    reference: JsonObject,
    context: ReconciliationContext,
    forward: dict[ResourceKey, str],
    deleted: set[ResourceKey],
) -> bool:
    """Rewrite ``reference`` in place; return whether anything worth keeping remains."""

    key = ResourceKey.parse(reference.get("reference"))
    if key is not None and key not in deleted:
        aggregate_key = context.aggregate_id(key)
        if aggregate_key is not None:
            reference["reference"] = str(aggregate_key)
            return True
        if key in forward:
            reference["reference"] = forward[key]
            return True
    reference.pop("reference", None)
    return "identifier" in reference or "display" in reference
