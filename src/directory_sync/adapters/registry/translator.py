"""Translate Registry Organization/Endpoint payloads into designations."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast

from directory_sync.domain.model import (
    RegistryOrganization,
    ResourceKey,
    ResourceKind,
    external_id_of,
    iter_reference_objects,
    normalize_address,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from directory_sync.domain.model import JsonObject

log = getLogger(__name__)

NL_GF_ENDPOINT_PROFILE = (
    "http://nuts-foundation.github.io/nl-generic-functions-ig/StructureDefinition/nl-gf-endpoint"
)
DATA_EXCHANGE_CAPABILITIES = (
    "http://nuts-foundation.github.io/nl-generic-functions-ig/CodeSystem/"
    "nl-gf-data-exchange-capabilities"
)
ADMIN_DIRECTORY_UPDATE_CLIENT = (
    "http://nuts-foundation.github.io/nl-generic-functions-ig/CapabilityStatement/"
    "nl-gf-admin-directory-update-client"
)


def referenced_endpoint_ids(organization: JsonObject) -> list[str]:
    ids: list[str] = []
    for reference in iter_reference_objects(organization.get("endpoint")):
        key = ResourceKey.parse(reference.get("reference"))
        if key is not None and key.kind is ResourceKind.ENDPOINT:
            ids.append(key.id)
    return ids


def designated_endpoint(
    organization: JsonObject, endpoints: Iterable[JsonObject]
) -> str | None:
    """Return the address of the admin directory endpoint referenced by ``organization``.

    An Endpoint carrying the nl-gf-endpoint profile wins over one that merely declares
    the admin-directory update-client capability in its payload types.
    """

    wanted = set(referenced_endpoint_ids(organization))
    candidates = [
        endpoint
        for endpoint in endpoints
        if endpoint.get("resourceType") == ResourceKind.ENDPOINT and endpoint.get("id") in wanted
    ]
    for predicate in (_has_endpoint_profile, _has_update_client_capability):
        for endpoint in candidates:
            address = endpoint.get("address")
            if predicate(endpoint) and isinstance(address, str) and address:
                return normalize_address(address)
    return None


def translate_designation(
    organization: JsonObject, endpoints: Iterable[JsonObject]
) -> RegistryOrganization | None:
    external_id = external_id_of(organization)
    name = _name(organization)
    if external_id is None:
        log.warning("Organization/%s (%s) has no URA identifier", organization.get("id"), name)
        return None
    address = designated_endpoint(organization, endpoints)
    if address is None:
        log.warning(
            "Organization with URA %s (%s) has no admin directory endpoint", external_id, name
        )
        return None
    return RegistryOrganization(external_id=external_id, name=name, endpoint_address=address)


def _name(organization: JsonObject) -> str:
    name = organization.get("name")
    return name if isinstance(name, str) else ""


def _has_endpoint_profile(endpoint: JsonObject) -> bool:
    meta = endpoint.get("meta")
    if not isinstance(meta, dict):
        return False
    profiles = cast("JsonObject", meta).get("profile")
    return isinstance(profiles, list) and NL_GF_ENDPOINT_PROFILE in cast("list[object]", profiles)


def _has_update_client_capability(endpoint: JsonObject) -> bool:
    for payload_type in iter_reference_objects(endpoint.get("payloadType")):
        for coding in iter_reference_objects(payload_type.get("coding")):
            if (
                coding.get("system") == DATA_EXCHANGE_CAPABILITIES
                and coding.get("code") == ADMIN_DIRECTORY_UPDATE_CLIENT
            ):
                return True
    return False
