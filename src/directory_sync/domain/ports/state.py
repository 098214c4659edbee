"""Port for persisting synchronisation cursors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from directory_sync.domain.model import SyncState


@runtime_checkable
class SyncStateStore(Protocol):
    def load(self) -> SyncState: ...

    def save(self, state: SyncState) -> None: ...


__all__ = ["SyncStateStore"]
