"""Directory resources as tagged variants with a static reference capability table."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, TypeAlias, cast

from directory_sync.domain.errors import IncompleteDataError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

EXTERNAL_ID_SYSTEM: Final[str] = "http://fhir.nl/fhir/NamingSystem/ura"

_LITERAL_REFERENCE = re.compile(r"^(?P<kind>[A-Z][A-Za-z]{0,63})/(?P<id>[A-Za-z0-9\-.]{1,128})$")

JsonObject: TypeAlias = dict[str, Any]


class ResourceKind(StrEnum):
    ORGANIZATION = "Organization"
    LOCATION = "Location"
    HEALTHCARE_SERVICE = "HealthcareService"
    ENDPOINT = "Endpoint"
    PRACTITIONER = "Practitioner"
    PRACTITIONER_ROLE = "PractitionerRole"

    @classmethod
    def parse(cls, value: object) -> ResourceKind | None:
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class KindCapabilities:
    """What the synchronisation needs to know about one resource kind.

    ``reference_fields`` are dotted paths; list values along the path are traversed
    element-wise (``qualification.issuer`` covers every qualification's issuer).
    ``owner_field`` names the reference to the owning Organization, if any.
    ``associated_fields`` name references whose targets are accepted together with
    the referring resource even though they have no owner of their own.
    """

    reference_fields: tuple[str, ...]
    owner_field: str | None = None
    associated_fields: tuple[str, ...] = ()


CAPABILITIES: Final[Mapping[ResourceKind, KindCapabilities]] = MappingProxyType(
    {
        ResourceKind.ORGANIZATION: KindCapabilities(
            reference_fields=("partOf", "endpoint"),
            owner_field="partOf",
            associated_fields=("endpoint",),
        ),
        ResourceKind.LOCATION: KindCapabilities(
            reference_fields=("managingOrganization", "partOf", "endpoint"),
            owner_field="managingOrganization",
        ),
        ResourceKind.HEALTHCARE_SERVICE: KindCapabilities(
            reference_fields=("providedBy", "location", "coverageArea", "endpoint"),
            owner_field="providedBy",
            associated_fields=("endpoint",),
        ),
        ResourceKind.ENDPOINT: KindCapabilities(
            reference_fields=("managingOrganization",),
        ),
        ResourceKind.PRACTITIONER_ROLE: KindCapabilities(
            reference_fields=(
                "practitioner",
                "organization",
                "location",
                "healthcareService",
                "endpoint",
            ),
            owner_field="organization",
            associated_fields=("practitioner",),
        ),
        ResourceKind.PRACTITIONER: KindCapabilities(
            reference_fields=("qualification.issuer",),
        ),
    }
)


def normalize_address(address: str) -> str:
    """Canonical form of a FHIR base address used for comparisons and provenance."""

    return address.strip().rstrip("/")


@dataclass(frozen=True, slots=True, order=True)
class ResourceKey:
    kind: ResourceKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.id}"

    @classmethod
    def parse(cls, reference: object) -> ResourceKey | None:
        """Parse a relative literal reference such as ``Organization/123``."""

        if not isinstance(reference, str):
            return None
        match = _LITERAL_REFERENCE.match(reference)
        if match is None:
            return None
        kind = ResourceKind.parse(match.group("kind"))
        if kind is None:
            return None
        return cls(kind=kind, id=match.group("id"))


@dataclass(frozen=True, slots=True)
class Provenance:
    """Origin of an aggregate record: ``<source>/<resourceType>/<id>``."""

    source: str
    key: ResourceKey

    def __str__(self) -> str:
        return f"{self.source}/{self.key.kind}/{self.key.id}"

    @classmethod
    def of(cls, source: str, key: ResourceKey) -> Provenance:
        return cls(source=normalize_address(source), key=key)


def iter_reference_slots(body: JsonObject, path: str) -> Iterator[tuple[JsonObject, str]]:
    """Yield ``(container, field)`` pairs holding the reference value(s) at ``path``."""

    *parents, field = path.split(".")
    containers: list[JsonObject] = [body]
    for part in parents:
        next_containers: list[JsonObject] = []
        for container in containers:
            value = container.get(part)
            if isinstance(value, dict):
                next_containers.append(cast("JsonObject", value))
            elif isinstance(value, list):
                items = cast("list[object]", value)
                next_containers.extend(
                    cast("JsonObject", item) for item in items if isinstance(item, dict)
                )
        containers = next_containers
    for container in containers:
        if field in container:
            yield container, field


def iter_reference_objects(value: object) -> Iterator[JsonObject]:
    if isinstance(value, dict):
        yield cast("JsonObject", value)
    elif isinstance(value, list):
        for item in cast("list[object]", value):
            if isinstance(item, dict):
                yield cast("JsonObject", item)


@dataclass(slots=True)
class Resource:
    """One directory record; ``body`` is the FHIR JSON as published by its server."""

    kind: ResourceKind
    id: str
    body: JsonObject

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> Resource:
        kind = ResourceKind.parse(payload.get("resourceType"))
        if kind is None:
            raise IncompleteDataError(
                f"Unsupported resource type {payload.get('resourceType')!r}"
            )
        resource_id = payload.get("id")
        if not isinstance(resource_id, str) or not resource_id:
            raise IncompleteDataError(f"{kind} resource without id")
        return cls(kind=kind, id=resource_id, body=copy.deepcopy(dict(payload)))

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(kind=self.kind, id=self.id)

    @property
    def capabilities(self) -> KindCapabilities:
        return CAPABILITIES[self.kind]

    @property
    def name(self) -> str | None:
        value = self.body.get("name")
        return value if isinstance(value, str) else None

    def has_owner_reference(self) -> bool:
        field = self.capabilities.owner_field
        return field is not None and bool(self.body.get(field))

    def owner(self) -> ResourceKey | None:
        field = self.capabilities.owner_field
        if field is None:
            return None
        for reference in iter_reference_objects(self.body.get(field)):
            return ResourceKey.parse(reference.get("reference"))
        return None

    def references(self, fields: tuple[str, ...] | None = None) -> Iterator[ResourceKey]:
        """Yield every resolvable reference in ``fields`` (default: all reference fields)."""

        for path in fields if fields is not None else self.capabilities.reference_fields:
            for container, field in iter_reference_slots(self.body, path):
                for reference in iter_reference_objects(container[field]):
                    key = ResourceKey.parse(reference.get("reference"))
                    if key is not None:
                        yield key

    def external_id(self) -> str | None:
        return external_id_of(self.body)

    def copy(self) -> Resource:
        return Resource(kind=self.kind, id=self.id, body=copy.deepcopy(self.body))

    def renamed(self, name: str) -> Resource:
        clone = self.copy()
        clone.body["name"] = name
        return clone


def external_id_of(body: Mapping[str, Any]) -> str | None:
    """Return the Registry identifier (URA) of an Organization payload, if present."""

    identifiers = body.get("identifier")
    if not isinstance(identifiers, list):
        return None
    for identifier in cast("list[object]", identifiers):
        if not isinstance(identifier, dict):
            continue
        entry = cast("JsonObject", identifier)
        value = entry.get("value")
        if entry.get("system") == EXTERNAL_ID_SYSTEM and isinstance(value, str) and value:
            return value
    return None
