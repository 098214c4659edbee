from __future__ import annotations

from dataclasses import dataclass

from directory_sync.domain.model.resources import normalize_address


@dataclass(frozen=True, slots=True)
class RegistryOrganization:
    """An organization together with the admin directory the Registry designates."""

    external_id: str
    name: str
    endpoint_address: str

    def designates(self, source: str) -> bool:
        return normalize_address(self.endpoint_address) == normalize_address(source)

    @property
    def source(self) -> str:
        return normalize_address(self.endpoint_address)


@dataclass(frozen=True, slots=True)
class RegistryChange:
    """Newest Registry change for one organization.

    ``endpoint_address`` is ``None`` when the organization no longer designates an
    admin directory (authority revoked).
    """

    external_id: str
    name: str | None
    endpoint_address: str | None
    deleted: bool = False

    @property
    def revoked(self) -> bool:
        return self.deleted or self.endpoint_address is None

    def as_organization(self) -> RegistryOrganization | None:
        if self.revoked or self.endpoint_address is None:
            return None
        return RegistryOrganization(
            external_id=self.external_id,
            name=self.name or "",
            endpoint_address=normalize_address(self.endpoint_address),
        )
