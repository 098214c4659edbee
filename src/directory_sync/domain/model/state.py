from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from directory_sync.domain.model.resources import normalize_address

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime


@dataclass(slots=True)
class SyncState:
    """Persisted cursors; the keys of ``source_cursors`` are the tracked sources.

    A tracked source without a cursor has never been pulled completely and its next
    incremental pull starts from the beginning of its history.
    """

    registry_cursor: datetime | None = None
    source_cursors: dict[str, datetime | None] = field(default_factory=dict[str, "datetime | None"])

    @property
    def tracked_sources(self) -> tuple[str, ...]:
        return tuple(sorted(self.source_cursors))

    def cursor_for(self, source: str) -> datetime | None:
        return self.source_cursors.get(normalize_address(source))

    def track(self, source: str) -> None:
        self.source_cursors.setdefault(normalize_address(source), None)

    def advance(self, source: str, cursor: datetime) -> None:
        self.source_cursors[normalize_address(source)] = cursor

    def replace_tracked(self, sources: Iterable[str]) -> None:
        """Track exactly ``sources``, keeping the cursors of those already tracked."""

        previous = self.source_cursors
        self.source_cursors = {
            address: previous.get(address)
            for address in sorted({normalize_address(source) for source in sources})
        }
