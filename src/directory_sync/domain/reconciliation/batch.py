from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from directory_sync.domain.model import Change, ResourceKey


def latest_changes(changes: Iterable[Change]) -> list[Change]:
    """Keep the newest change per record, ordered by where that change occurred."""

    latest: dict[ResourceKey, Change] = {}
    for change in changes:
        latest.pop(change.key, None)
        latest[change.key] = change
    return list(latest.values())
