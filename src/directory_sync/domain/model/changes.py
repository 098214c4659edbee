from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from directory_sync.domain.model.resources import Provenance

if TYPE_CHECKING:
    from directory_sync.domain.model.resources import Resource, ResourceKey


class ChangeMethod(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class Change:
    """One entry of a source's change feed, or one record of a pulled graph."""

    method: ChangeMethod
    key: ResourceKey
    resource: Resource | None = None

    def __post_init__(self) -> None:
        if self.method is ChangeMethod.DELETE:
            if self.resource is not None:
                raise ValueError(f"delete of {self.key} must not carry a resource")
        elif self.resource is None:
            raise ValueError(f"{self.method} of {self.key} requires a resource")

    @classmethod
    def create(cls, resource: Resource) -> Change:
        return cls(method=ChangeMethod.CREATE, key=resource.key, resource=resource)

    @classmethod
    def update(cls, resource: Resource) -> Change:
        return cls(method=ChangeMethod.UPDATE, key=resource.key, resource=resource)

    @classmethod
    def delete(cls, key: ResourceKey) -> Change:
        return cls(method=ChangeMethod.DELETE, key=key)

    @property
    def is_delete(self) -> bool:
        return self.method is ChangeMethod.DELETE

    def provenance(self, source: str) -> Provenance:
        return Provenance.of(source, self.key)

    def with_resource(self, resource: Resource) -> Change:
        return replace(self, resource=resource)

    def __str__(self) -> str:
        return f"{self.method} {self.key}"
