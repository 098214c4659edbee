"""Registry client: which admin directory is authoritative for which organization."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, TypeVar

from directory_sync.adapters.fhir.client import FhirClient
from directory_sync.adapters.fhir.translator import key_from_url
from directory_sync.adapters.http_resilience import ClientRunner
from directory_sync.domain.errors import NotAuthoritativeError, ResourceNotFoundError
from directory_sync.domain.model import (
    EXTERNAL_ID_SYSTEM,
    RegistryChange,
    ResourceKind,
    external_id_of,
)

from .translator import designated_endpoint, referenced_endpoint_ids, translate_designation

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from datetime import datetime

    from directory_sync.adapters.fhir.schema import BundleEntry
    from directory_sync.adapters.http_resilience import ResilientClient
    from directory_sync.config.http_resilience import ResilienceConfig
    from directory_sync.domain.model import JsonObject, RegistryOrganization

log = getLogger(__name__)

T = TypeVar("T")

PAGE_SIZE = "1000"


class FhirRegistry:
    """Registry backed by a FHIR server listing Organizations and their Endpoints."""

    def __init__(
        self,
        resilience: ResilienceConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._resilience = resilience
        self._runner = ClientRunner(resilience, client_factory)

    def authoritative_organizations(self) -> list[RegistryOrganization]:
        async def pull(client: FhirClient) -> list[RegistryOrganization]:
            result = await client.search(
                ResourceKind.ORGANIZATION,
                {
                    "identifier": f"{EXTERNAL_ID_SYSTEM}|",
                    "_include": "Organization:endpoint",
                    "_count": PAGE_SIZE,
                },
            )
            designations: list[RegistryOrganization] = []
            for organization in result.matches:
                designation = translate_designation(organization, result.includes)
                if designation is not None:
                    designations.append(designation)
            return designations

        return self._run(pull)

    def authoritative_organization(self, external_id: str) -> RegistryOrganization | None:
        async def lookup(client: FhirClient) -> RegistryOrganization | None:
            result = await client.search(
                ResourceKind.ORGANIZATION,
                {
                    "identifier": f"{EXTERNAL_ID_SYSTEM}|{external_id}",
                    "_include": "Organization:endpoint",
                },
            )
            if not result.matches:
                return None
            designation = translate_designation(result.matches[0], result.includes)
            if designation is None:
                raise NotAuthoritativeError(
                    f"Organization {external_id} has no designated admin directory"
                )
            return designation

        return self._run(lookup)

    def changes_since(self, since: datetime) -> list[RegistryChange]:
        """Replay Organization history since ``since``; the newest change per organization wins."""

        async def pull(client: FhirClient) -> list[RegistryChange]:
            entries = await client.history(ResourceKind.ORGANIZATION, since=since)
            latest: dict[str, BundleEntry] = {}
            for entry in entries:
                key = _entry_identity(entry)
                if key is None:
                    continue
                latest.pop(key, None)
                latest[key] = entry

            changes: dict[str, RegistryChange] = {}
            for entry in latest.values():
                change = await _translate_change(client, entry)
                if change is None:
                    continue
                changes.pop(change.external_id, None)
                changes[change.external_id] = change
            return list(changes.values())

        return self._run(pull)

    def close(self) -> None:
        self._runner.close()

    def _run(self, operation: Callable[[FhirClient], Coroutine[object, object, T]]) -> T:
        async def call(http: ResilientClient) -> T:
            return await operation(FhirClient(http, name=self._resilience.name))

        return self._runner.run(call)


def _entry_identity(entry: BundleEntry) -> str | None:
    if entry.resource is not None and isinstance(entry.resource.get("id"), str):
        return f"{ResourceKind.ORGANIZATION}/{entry.resource['id']}"
    key = key_from_url(entry.request.url if entry.request is not None else None)
    if key is None:
        key = key_from_url(entry.full_url)
    return None if key is None else str(key)


async def _translate_change(client: FhirClient, entry: BundleEntry) -> RegistryChange | None:
    deleted = entry.request is not None and entry.request.method == "DELETE"
    organization = entry.resource
    if deleted:
        organization = await _last_known_version(client, entry)
    if organization is None:
        return None

    external_id = external_id_of(organization)
    raw_name = organization.get("name")
    name = raw_name if isinstance(raw_name, str) else None
    if external_id is None:
        log.warning("Organization/%s (%s) has no URA identifier", organization.get("id"), name)
        return None
    if deleted:
        return RegistryChange(
            external_id=external_id, name=name, endpoint_address=None, deleted=True
        )

    endpoint_ids = referenced_endpoint_ids(organization)
    endpoints: list[JsonObject] = []
    if endpoint_ids:
        result = await client.search(ResourceKind.ENDPOINT, {"_id": ",".join(endpoint_ids)})
        endpoints = result.matches
    address = designated_endpoint(organization, endpoints)
    if address is None:
        log.info(
            "Organization with URA %s (%s) no longer designates an admin directory",
            external_id,
            name,
        )
    return RegistryChange(external_id=external_id, name=name, endpoint_address=address)


async def _last_known_version(client: FhirClient, entry: BundleEntry) -> JsonObject | None:
    key = key_from_url(entry.request.url if entry.request is not None else None)
    if key is None:
        key = key_from_url(entry.full_url)
    if key is None:
        log.warning("Cannot resolve deleted Registry entry %s", entry.full_url)
        return None
    try:
        history = await client.history(key.kind, key.id)
    except ResourceNotFoundError:
        log.warning("No history for deleted %s", key)
        return None
    for version in reversed(history):
        if version.resource is not None:
            return version.resource
    log.warning("No surviving version of deleted %s", key)
    return None
