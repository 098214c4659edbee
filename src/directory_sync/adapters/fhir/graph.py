"""Walk an organization graph on a FHIR server.

The graph of an organization is the organization, its sub-organizations (via
``partof``), their Endpoints, and the Locations, PractitionerRoles (with their
Practitioners) and HealthcareServices (with their Endpoints) they own.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.domain.errors import ResourceNotFoundError
from directory_sync.domain.model import (
    EXTERNAL_ID_SYSTEM,
    ResourceKey,
    ResourceKind,
    iter_reference_objects,
)

from .client import SearchResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from directory_sync.domain.model import JsonObject

    from .client import FhirClient

log = getLogger(__name__)

OWNER_BATCH_SIZE = 50

# search parameters through which records refer to an Endpoint or a Practitioner
REFERRER_SEARCHES: dict[ResourceKind, tuple[tuple[ResourceKind, str], ...]] = {
    ResourceKind.ENDPOINT: (
        (ResourceKind.ORGANIZATION, "endpoint"),
        (ResourceKind.LOCATION, "endpoint"),
        (ResourceKind.HEALTHCARE_SERVICE, "endpoint"),
        (ResourceKind.PRACTITIONER_ROLE, "endpoint"),
    ),
    ResourceKind.PRACTITIONER: ((ResourceKind.PRACTITIONER_ROLE, "practitioner"),),
}


async def organization_graph(client: FhirClient, external_id: str) -> list[JsonObject]:
    result = await client.search(
        ResourceKind.ORGANIZATION,
        {
            "identifier": f"{EXTERNAL_ID_SYSTEM}|{external_id}",
            "_include": "Organization:endpoint",
        },
    )
    if not result.matches:
        return []
    return await collect_graph(client, result.matches, result.includes)


async def collect_graph(
    client: FhirClient,
    roots: Sequence[JsonObject],
    includes: Iterable[JsonObject] = (),
) -> list[JsonObject]:
    """Collect ``roots``, everything they own and the Endpoints and Practitioners used."""

    organizations = _Collected(roots)
    endpoints = _Collected(_of_kind(includes, ResourceKind.ENDPOINT))

    index = 0
    while index < len(organizations):
        organization_id = organizations[index]["id"]
        index += 1
        result = await client.search(
            ResourceKind.ORGANIZATION,
            {"partof": f"Organization/{organization_id}", "_include": "Organization:endpoint"},
        )
        organizations.extend(result.matches)
        endpoints.extend(_of_kind(result.includes, ResourceKind.ENDPOINT))

    owners = [f"Organization/{organization['id']}" for organization in organizations]
    locations = await _search_owned(client, ResourceKind.LOCATION, owners)
    roles = await _search_owned(
        client, ResourceKind.PRACTITIONER_ROLE, owners, include="PractitionerRole:practitioner"
    )
    services = await _search_owned(client, ResourceKind.HEALTHCARE_SERVICE, owners)

    for service in services.matches:
        for reference in iter_reference_objects(service.get("endpoint")):
            key = ResourceKey.parse(reference.get("reference"))
            if key is None or key.kind is not ResourceKind.ENDPOINT or key.id in endpoints.ids:
                continue
            try:
                endpoints.append(await client.read(key.kind, key.id))
            except ResourceNotFoundError:
                log.warning("%s referenced by HealthcareService/%s not found", key, service["id"])

    practitioners = _Collected(_of_kind(roles.includes, ResourceKind.PRACTITIONER))
    return [
        *organizations,
        *endpoints,
        *locations.matches,
        *roles.matches,
        *practitioners,
        *services.matches,
    ]


async def organizations_graph(
    client: FhirClient, keys: Sequence[ResourceKey]
) -> list[JsonObject]:
    """The graphs of the organizations with the given ids, merged."""

    result = await client.search(
        ResourceKind.ORGANIZATION,
        {"_id": ",".join(key.id for key in keys), "_include": "Organization:endpoint"},
    )
    if not result.matches:
        return []
    return await collect_graph(client, result.matches, result.includes)


async def referrers(client: FhirClient, target: ResourceKey) -> set[ResourceKey]:
    found: set[ResourceKey] = set()
    for kind, parameter in REFERRER_SEARCHES.get(target.kind, ()):
        result = await client.search(kind, {parameter: str(target)})
        found.update(
            ResourceKey(kind=kind, id=match["id"])
            for match in result.matches
            if isinstance(match.get("id"), str)
        )
    return found


async def _search_owned(
    client: FhirClient,
    kind: ResourceKind,
    owners: Sequence[str],
    *,
    include: str | None = None,
) -> SearchResult:
    combined = SearchResult()
    for start in range(0, len(owners), OWNER_BATCH_SIZE):
        params = {"organization": ",".join(owners[start : start + OWNER_BATCH_SIZE])}
        if include is not None:
            params["_include"] = include
        result = await client.search(kind, params)
        combined.matches.extend(result.matches)
        combined.includes.extend(result.includes)
    return combined


def _of_kind(resources: Iterable[JsonObject], kind: ResourceKind) -> list[JsonObject]:
    return [resource for resource in resources if resource.get("resourceType") == kind]


class _Collected:
    """Resources de-duplicated by id, in order of first appearance."""

    def __init__(self, resources: Iterable[JsonObject] = ()) -> None:
        self.items: list[JsonObject] = []
        self.ids: set[str] = set()
        self.extend(resources)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> JsonObject:
        return self.items[index]

    def __iter__(self) -> Iterator[JsonObject]:
        return iter(self.items)

    def append(self, resource: JsonObject) -> None:
        resource_id = resource.get("id")
        if not isinstance(resource_id, str) or resource_id in self.ids:
            return
        self.ids.add(resource_id)
        self.items.append(resource)

    def extend(self, resources: Iterable[JsonObject]) -> None:
        for resource in resources:
            self.append(resource)
