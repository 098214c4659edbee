"""Builders for FHIR directory payloads used across the test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from directory_sync.domain.model import EXTERNAL_ID_SYSTEM, Resource

if TYPE_CHECKING:
    from collections.abc import Sequence

    from directory_sync.domain.model import JsonObject

ADMIN_A = "https://admin-a.example.org/fhir"
ADMIN_B = "https://admin-b.example.org/fhir"


def _references(kind: str, ids: Sequence[str]) -> list[dict[str, str]]:
    return [{"reference": f"{kind}/{resource_id}"} for resource_id in ids]


def organization(
    resource_id: str,
    *,
    ura: str | None = None,
    name: str | None = None,
    part_of: str | None = None,
    endpoints: Sequence[str] = (),
) -> JsonObject:
    payload: dict[str, Any] = {
        "resourceType": "Organization",
        "id": resource_id,
        "name": name or f"Organization {resource_id}",
    }
    if ura is not None:
        payload["identifier"] = [{"system": EXTERNAL_ID_SYSTEM, "value": ura}]
    if part_of is not None:
        payload["partOf"] = {"reference": f"Organization/{part_of}"}
    if endpoints:
        payload["endpoint"] = _references("Endpoint", endpoints)
    return payload


def endpoint(resource_id: str, *, address: str | None = None) -> JsonObject:
    return {
        "resourceType": "Endpoint",
        "id": resource_id,
        "status": "active",
        "address": address or f"https://services.example.org/{resource_id}",
    }


def location(resource_id: str, *, organization: str, name: str | None = None) -> JsonObject:
    return {
        "resourceType": "Location",
        "id": resource_id,
        "name": name or f"Location {resource_id}",
        "managingOrganization": {"reference": f"Organization/{organization}"},
    }


def healthcare_service(
    resource_id: str,
    *,
    provided_by: str,
    endpoints: Sequence[str] = (),
    locations: Sequence[str] = (),
) -> JsonObject:
    payload: dict[str, Any] = {
        "resourceType": "HealthcareService",
        "id": resource_id,
        "name": f"Service {resource_id}",
        "providedBy": {"reference": f"Organization/{provided_by}"},
    }
    if endpoints:
        payload["endpoint"] = _references("Endpoint", endpoints)
    if locations:
        payload["location"] = _references("Location", locations)
    return payload


def practitioner(resource_id: str, *, family: str = "Jansen") -> JsonObject:
    return {
        "resourceType": "Practitioner",
        "id": resource_id,
        "name": [{"family": family}],
    }


def practitioner_role(
    resource_id: str, *, organization: str, practitioner: str | None = None
) -> JsonObject:
    payload: dict[str, Any] = {
        "resourceType": "PractitionerRole",
        "id": resource_id,
        "organization": {"reference": f"Organization/{organization}"},
    }
    if practitioner is not None:
        payload["practitioner"] = {"reference": f"Practitioner/{practitioner}"}
    return payload


def as_resource(payload: JsonObject) -> Resource:
    return Resource.from_json(payload)
