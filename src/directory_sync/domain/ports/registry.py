"""Port towards the central Registry of admin-directory designations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from directory_sync.domain.model import RegistryChange, RegistryOrganization


@runtime_checkable
class Registry(Protocol):
    def authoritative_organizations(self) -> Iterable[RegistryOrganization]: ...

    def authoritative_organization(self, external_id: str) -> RegistryOrganization | None:
        """Return the designation for ``external_id``.

        Returns ``None`` when the Registry does not know the organization and raises
        ``NotAuthoritativeError`` when it knows it but designates no admin directory.
        """
        ...

    def changes_since(self, since: datetime) -> Iterable[RegistryChange]: ...


__all__ = ["Registry"]
