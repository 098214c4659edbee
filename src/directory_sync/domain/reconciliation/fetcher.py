"""Pull records that become authoritative through the record referring to them."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.domain.errors import ResourceNotFoundError
from directory_sync.domain.model import Change

from .batch import latest_changes

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from directory_sync.domain.model import ResourceKey
    from directory_sync.domain.ports import SourceDirectory

    from .context import ReconciliationContext

log = getLogger(__name__)


def fetch_associated(
    accepted: Sequence[Change],
    batch: Iterable[Change],
    *,
    source: SourceDirectory,
    context: ReconciliationContext,
) -> list[Change]:
    """Extend ``accepted`` with the Endpoints and Practitioners its records reference.

    Referenced records come from the batch when it carries them, otherwise they are
    read from the source. Records already held by the aggregate are left alone.
    """

    available = {change.key: change for change in latest_changes(batch) if not change.is_delete}
    known: set[ResourceKey] = {change.key for change in accepted}
    working = list(accepted)

    for change in accepted:
        if change.resource is None:
            continue
        fields = change.resource.capabilities.associated_fields
        for key in change.resource.references(fields):
            if key in known or context.is_tracked(key):
                continue
            known.add(key)
            associated = available.get(key)
            if associated is None:
                associated = _read(source, key, referrer=change.key)
            if associated is not None:
                working.append(associated)

    return working


def _read(source: SourceDirectory, key: ResourceKey, *, referrer: ResourceKey) -> Change | None:
    try:
        resource = source.read(key)
    except ResourceNotFoundError:
        resource = None
    if resource is None:
        log.warning("%s: %s referenced by %s not found", source.address, key, referrer)
        return None
    log.debug("%s: fetched %s referenced by %s", source.address, key, referrer)
    return Change.create(resource)
