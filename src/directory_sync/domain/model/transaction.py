"""Atomic write submitted to the Query Directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from directory_sync.domain.model.resources import ResourceKey

if TYPE_CHECKING:
    from collections.abc import Iterator

    from directory_sync.domain.model.resources import JsonObject, ResourceKind


class EntryMethod(StrEnum):
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class TransactionEntry:
    method: EntryMethod
    url: str
    full_url: str | None = None
    resource: JsonObject | None = None

    @classmethod
    def post(cls, kind: ResourceKind, forward_id: str, body: JsonObject) -> TransactionEntry:
        return cls(method=EntryMethod.POST, url=str(kind), full_url=forward_id, resource=body)

    @classmethod
    def put(cls, target: ResourceKey, body: JsonObject) -> TransactionEntry:
        return cls(method=EntryMethod.PUT, url=str(target), resource=body)

    @classmethod
    def delete(cls, target: ResourceKey) -> TransactionEntry:
        return cls(method=EntryMethod.DELETE, url=str(target))

    @property
    def target(self) -> ResourceKey | None:
        """Aggregate record addressed by a PUT or DELETE."""

        if self.method is EntryMethod.POST:
            return None
        return ResourceKey.parse(self.url)


@dataclass(slots=True)
class Transaction:
    entries: list[TransactionEntry] = field(default_factory=list[TransactionEntry])

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __iter__(self) -> Iterator[TransactionEntry]:
        return iter(self.entries)

    def add(self, entry: TransactionEntry) -> None:
        self.entries.append(entry)

    def targets(self, method: EntryMethod) -> set[ResourceKey]:
        return {
            entry.target
            for entry in self.entries
            if entry.method is method and entry.target is not None
        }

    def summary(self) -> str:
        counts = {method: 0 for method in EntryMethod}
        for entry in self.entries:
            counts[entry.method] += 1
        return ", ".join(f"{count} {method}" for method, count in counts.items())
