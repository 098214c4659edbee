"""Assemble the atomic write for one pipeline run."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from directory_sync.domain.model import Transaction, TransactionEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from directory_sync.domain.model import JsonObject, Provenance, ResourceKey

    from .context import ReconciliationContext
    from .rewrite import RewrittenChange

log = getLogger(__name__)

_SERVER_META = ("versionId", "lastUpdated")


def prepare_body(body: JsonObject, provenance: Provenance) -> JsonObject:
    """Tag ``body`` with its provenance and strip server-assigned fields."""

    prepared = dict(body)
    prepared.pop("id", None)
    meta = prepared.get("meta")
    meta_copy: dict[str, Any] = dict(cast("JsonObject", meta)) if isinstance(meta, dict) else {}
    for key in _SERVER_META:
        meta_copy.pop(key, None)
    meta_copy["source"] = str(provenance)
    prepared["meta"] = meta_copy
    return prepared


def build_transaction(
    rewritten: Sequence[RewrittenChange],
    context: ReconciliationContext,
    *,
    extra_deletes: Iterable[ResourceKey] = (),
) -> Transaction:
    """Build POST/PUT/DELETE entries, then append extra deletes not otherwise touched."""

    transaction = Transaction()
    written: set[ResourceKey] = set()
    deleted: set[ResourceKey] = set()

    for item in rewritten:
        change = item.change
        if change.is_delete:
            if item.target is None or item.target in deleted:
                continue
            deleted.add(item.target)
            transaction.add(TransactionEntry.delete(item.target))
            continue
        assert item.body is not None
        body = prepare_body(item.body, context.provenance(change.key))
        if item.target is None:
            assert item.forward_id is not None
            transaction.add(TransactionEntry.post(change.key.kind, item.forward_id, body))
        else:
            written.add(item.target)
            transaction.add(TransactionEntry.put(item.target, body))

    for target in extra_deletes:
        if target in written or target in deleted:
            continue
        deleted.add(target)
        transaction.add(TransactionEntry.delete(target))

    return transaction


def deletion_transaction(targets: Iterable[ResourceKey]) -> Transaction:
    transaction = Transaction()
    seen: set[ResourceKey] = set()
    for target in targets:
        if target in seen:
            continue
        seen.add(target)
        transaction.add(TransactionEntry.delete(target))
    return transaction
