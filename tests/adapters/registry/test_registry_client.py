from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from directory_sync.adapters.http_resilience import ResilientClient
from directory_sync.adapters.registry import FhirRegistry
from directory_sync.adapters.registry.translator import NL_GF_ENDPOINT_PROFILE
from directory_sync.config.http_resilience import CacheConfig, ResilienceConfig, RetryPolicy
from directory_sync.domain.errors import NotAuthoritativeError
from directory_sync.domain.model import EXTERNAL_ID_SYSTEM, RegistryChange, RegistryOrganization
from tests.helpers.directories import at
from tests.helpers.http import (
    BASE_URL,
    FhirRoutes,
    history,
    history_entry,
    make_client_factory,
    resilience,
    searchset,
)
from tests.helpers.resources import ADMIN_A, ADMIN_B, endpoint, organization

if TYPE_CHECKING:
    from pathlib import Path


def _endpoint(resource_id: str, address: str) -> dict[str, object]:
    payload = endpoint(resource_id, address=address)
    payload["meta"] = {"profile": [NL_GF_ENDPOINT_PROFILE]}
    return payload


def _registry(routes: FhirRoutes) -> FhirRegistry:
    return FhirRegistry(resilience("registry"), client_factory=make_client_factory(routes))


def test_authoritative_organizations_skips_organizations_without_directory() -> None:
    routes = FhirRoutes()
    routes.get(
        "Organization",
        searchset(
            organization("org-1", ura="1001", name="Huisarts A", endpoints=["ep-1"]),
            organization("org-2", ura="2002", name="Apotheek B", endpoints=["ep-2"]),
            organization("org-3", ura="3003", name="Zonder adres"),
            includes=(_endpoint("ep-1", ADMIN_A), _endpoint("ep-2", f"{ADMIN_B}/")),
        ),
        params={
            "identifier": f"{EXTERNAL_ID_SYSTEM}|",
            "_include": "Organization:endpoint",
            "_count": "1000",
        },
    )

    organizations = _registry(routes).authoritative_organizations()

    assert organizations == [
        RegistryOrganization(external_id="1001", name="Huisarts A", endpoint_address=ADMIN_A),
        RegistryOrganization(external_id="2002", name="Apotheek B", endpoint_address=ADMIN_B),
    ]


def test_authoritative_organization_lookup() -> None:
    routes = FhirRoutes()
    routes.get(
        "Organization",
        searchset(
            organization("org-1", ura="1001", name="Huisarts A", endpoints=["ep-1"]),
            includes=(_endpoint("ep-1", ADMIN_A),),
        ),
        params={"identifier": f"{EXTERNAL_ID_SYSTEM}|1001"},
    )
    routes.get(
        "Organization",
        searchset(organization("org-3", ura="3003")),
        params={"identifier": f"{EXTERNAL_ID_SYSTEM}|3003"},
    )
    routes.get("Organization", searchset())
    registry = _registry(routes)

    assert registry.authoritative_organization("1001") == RegistryOrganization(
        external_id="1001", name="Huisarts A", endpoint_address=ADMIN_A
    )
    assert registry.authoritative_organization("9999") is None
    with pytest.raises(NotAuthoritativeError):
        registry.authoritative_organization("3003")


def test_repeated_lookup_is_answered_from_the_cache(tmp_path: Path) -> None:
    routes = FhirRoutes()
    routes.get(
        "Organization",
        searchset(
            organization("org-1", ura="1001", name="Huisarts A", endpoints=["ep-1"]),
            includes=(_endpoint("ep-1", ADMIN_A),),
        ),
        params={"identifier": f"{EXTERNAL_ID_SYSTEM}|1001"},
    )
    config = ResilienceConfig(
        name="registry",
        base_url=BASE_URL,
        retry=RetryPolicy(total=0),
        cache=CacheConfig(sqlite_path=str(tmp_path / "http_cache.db"), default_ttl_seconds=300.0),
    )
    registry = FhirRegistry(
        config,
        client_factory=lambda resilience: ResilientClient(
            resilience, transport=httpx.MockTransport(routes)
        ),
    )

    try:
        first = registry.authoritative_organization("1001")
        second = registry.authoritative_organization("1001")
    finally:
        registry.close()

    assert first == second == RegistryOrganization(
        external_id="1001", name="Huisarts A", endpoint_address=ADMIN_A
    )
    assert len(routes.requests) == 1

def test_changes_since_keeps_the_newest_change_per_organization() -> None:
    routes = FhirRoutes()
    routes.get(
        "Organization/_history",
        history(
            history_entry("PUT", "Organization/org-3", organization("org-3", ura="3003")),
            history_entry("DELETE", "Organization/org-2/_history/3"),
            history_entry(
                "PUT",
                "Organization/org-1",
                organization("org-1", ura="1001", name="Huisarts A", endpoints=["ep-1"]),
            ),
            history_entry(
                "POST", "Organization", organization("org-1", ura="1001", name="Oude naam")
            ),
        ),
        params={"_since": at(8).isoformat()},
    )
    routes.get(
        "Organization/org-2/_history",
        history(
            history_entry("DELETE", "Organization/org-2/_history/3"),
            history_entry(
                "PUT", "Organization/org-2", organization("org-2", ura="2002", name="Apotheek B")
            ),
        ),
    )
    routes.get("Endpoint", searchset(_endpoint("ep-1", ADMIN_A)), params={"_id": "ep-1"})

    changes = _registry(routes).changes_since(at(8))

    assert changes == [
        RegistryChange(external_id="1001", name="Huisarts A", endpoint_address=ADMIN_A),
        RegistryChange(
            external_id="2002", name="Apotheek B", endpoint_address=None, deleted=True
        ),
        RegistryChange(external_id="3003", name="Organization org-3", endpoint_address=None),
    ]
    assert all(change.revoked for change in changes[1:])
