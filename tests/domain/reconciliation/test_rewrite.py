from __future__ import annotations

import pytest

from directory_sync.domain.model import Change, ResourceKey, ResourceKind
from directory_sync.domain.reconciliation import ReconciliationContext, rewrite_references
from tests.helpers.directories import FakeRegistry, InMemoryAggregateDirectory
from tests.helpers.resources import (
    ADMIN_A,
    as_resource,
    endpoint,
    healthcare_service,
    location,
    organization,
)


@pytest.fixture
def context(
    aggregate: InMemoryAggregateDirectory, registry: FakeRegistry
) -> ReconciliationContext:
    return ReconciliationContext(source=ADMIN_A, aggregate=aggregate, registry=registry)


def test_references_into_the_batch_use_forward_declarations(
    context: ReconciliationContext,
) -> None:
    org = Change.create(as_resource(organization("org-1", ura="1001", endpoints=["ep-1"])))
    ep = Change.create(as_resource(endpoint("ep-1")))

    org_rewritten, ep_rewritten = rewrite_references([org, ep], context)

    assert org_rewritten.is_create
    assert ep_rewritten.is_create
    assert ep_rewritten.forward_id is not None
    assert ep_rewritten.forward_id.startswith("urn:uuid:")
    assert org_rewritten.forward_id != ep_rewritten.forward_id
    assert org_rewritten.body is not None
    assert org_rewritten.body["endpoint"] == [{"reference": ep_rewritten.forward_id}]


def test_references_to_tracked_records_use_aggregate_ids(
    aggregate: InMemoryAggregateDirectory, context: ReconciliationContext
) -> None:
    org_key = aggregate.seed(organization("org-1", ura="1001"), source=ADMIN_A)
    loc_key = aggregate.seed(location("loc-1", organization=org_key.id), source=ADMIN_A)
    change = Change.update(as_resource(location("loc-1", organization="org-1")))

    (rewritten,) = rewrite_references([change], context)

    assert rewritten.target == loc_key
    assert not rewritten.is_create
    assert rewritten.body is not None
    assert rewritten.body["managingOrganization"] == {"reference": str(org_key)}


def test_unresolvable_references_are_dropped_and_empty_lists_removed(
    context: ReconciliationContext,
) -> None:
    payload = healthcare_service(
        "hs-1", provided_by="org-1", endpoints=["ep-unknown"], locations=["loc-unknown"]
    )
    payload["location"].append({"reference": "Location/loc-2", "display": "Annex"})
    payload["coverageArea"] = [{"reference": "https://elsewhere.example.org/Location/1"}]
    resource = as_resource(payload)

    (rewritten,) = rewrite_references([Change.create(resource)], context)

    assert rewritten.body is not None
    assert "providedBy" not in rewritten.body
    assert "endpoint" not in rewritten.body
    assert "coverageArea" not in rewritten.body
    assert rewritten.body["location"] == [{"display": "Annex"}]
    assert resource.body["endpoint"] == [{"reference": "Endpoint/ep-unknown"}]


def test_references_to_records_deleted_in_the_batch_are_dropped(
    aggregate: InMemoryAggregateDirectory, context: ReconciliationContext
) -> None:
    aggregate.seed(endpoint("ep-1"), source=ADMIN_A)
    org = Change.update(as_resource(organization("org-1", ura="1001", endpoints=["ep-1"])))
    deleted = Change.delete(ResourceKey(ResourceKind.ENDPOINT, "ep-1"))

    org_rewritten, deleted_rewritten = rewrite_references([org, deleted], context)

    assert org_rewritten.body is not None
    assert "endpoint" not in org_rewritten.body
    assert deleted_rewritten.body is None
    assert deleted_rewritten.forward_id is None
    assert deleted_rewritten.target is not None


def test_identity_lookups_are_memoized_per_context(
    aggregate: InMemoryAggregateDirectory, context: ReconciliationContext
) -> None:
    org = Change.create(as_resource(organization("org-1", ura="1001")))
    locations = [
        Change.create(as_resource(location(f"loc-{index}", organization="org-1")))
        for index in range(3)
    ]

    rewrite_references([org, *locations], context)

    assert aggregate.provenance_lookups == 4
