from __future__ import annotations

import copy

from directory_sync.domain.model import (
    Change,
    EntryMethod,
    RegistryOrganization,
    ResourceKey,
    ResourceKind,
)
from directory_sync.domain.reconciliation import (
    apply_source_changes,
    delete_organization_graph,
)
from tests.helpers.directories import (
    FakeRegistry,
    FakeSourceDirectory,
    InMemoryAggregateDirectory,
    at,
)
from tests.helpers.resources import (
    ADMIN_A,
    ADMIN_B,
    endpoint,
    healthcare_service,
    location,
    organization,
    practitioner,
    practitioner_role,
)


def _populate(source: FakeSourceDirectory) -> None:
    source.put(organization("org-1", ura="1001", name="Local name", endpoints=["ep-1"]), when=at(9))
    source.put(endpoint("ep-1"), when=at(9))
    source.put(organization("org-2", part_of="org-1"), when=at(9))
    source.put(location("loc-1", organization="org-1"), when=at(9))
    source.put(location("loc-2", organization="org-2"), when=at(9))
    source.put(
        healthcare_service("hs-1", provided_by="org-2", endpoints=["ep-2"], locations=["loc-2"]),
        when=at(9),
    )
    source.put(endpoint("ep-2"))
    source.put(practitioner_role("role-1", organization="org-1", practitioner="pr-1"), when=at(9))
    source.put(practitioner("pr-1"))


def _apply(
    source: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
    changes: list[Change],
) -> None:
    apply_source_changes(changes, source=source, aggregate=aggregate, registry=registry)


def test_organization_and_endpoint_are_created_in_one_transaction(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    source_a.put(organization("org-1", ura="1001", endpoints=["ep-1"]), when=at(9))
    source_a.put(endpoint("ep-1"), when=at(9))

    result = apply_source_changes(
        source_a.changes_since(None), source=source_a, aggregate=aggregate, registry=registry
    )

    assert result.committed
    assert len(aggregate.commits) == 1
    (transaction,) = aggregate.commits
    assert [entry.method for entry in transaction] == [EntryMethod.POST, EntryMethod.POST]
    org_entry, ep_entry = transaction.entries
    assert org_entry.resource is not None
    assert org_entry.resource["endpoint"] == [{"reference": ep_entry.full_url}]

    org = aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.ORGANIZATION, "org-1"))
    ep = aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.ENDPOINT, "ep-1"))
    assert org is not None
    assert ep is not None
    assert org["endpoint"] == [{"reference": f"Endpoint/{ep['id']}"}]
    assert aggregate.dangling_references() == []


def test_delete_of_untracked_location_produces_no_transaction(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    result = apply_source_changes(
        [Change.delete(ResourceKey(ResourceKind.LOCATION, "loc-1"))],
        source=source_a,
        aggregate=aggregate,
        registry=registry,
    )

    assert not result.committed
    assert aggregate.commits == []


def test_only_the_newest_of_two_updates_is_applied(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    source_a.put(organization("org-1", ura="1001"), when=at(9))
    source_a.put(location("loc-1", organization="org-1", name="T1"), when=at(10))
    source_a.put(location("loc-1", organization="org-1", name="T2"), when=at(11))

    _apply(source_a, aggregate, registry, source_a.changes_since(None))

    (transaction,) = aggregate.commits
    assert len(transaction) == 2
    stored = aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.LOCATION, "loc-1"))
    assert stored is not None
    assert stored["name"] == "T2"


def test_full_graph_is_aggregated_with_registry_name_and_intact_references(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)

    _apply(source_a, aggregate, registry, source_a.changes_since(None))

    assert len(aggregate.records) == 9
    org = aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.ORGANIZATION, "org-1"))
    assert org is not None
    assert org["name"] == "Huisarts A"
    assert aggregate.dangling_references() == []
    assert ResourceKey(ResourceKind.ENDPOINT, "ep-2") in source_a.reads
    assert ResourceKey(ResourceKind.PRACTITIONER, "pr-1") in source_a.reads


def test_applying_the_same_batch_twice_equals_applying_it_once(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)
    batch = source_a.changes_since(None)

    _apply(source_a, aggregate, registry, batch)
    once = copy.deepcopy(aggregate.records)
    _apply(source_a, aggregate, registry, batch)

    assert aggregate.records == once
    second = aggregate.commits[1]
    assert {entry.method for entry in second} == {EntryMethod.PUT}
    assert second.targets(EntryMethod.PUT) <= set(once)


def test_records_of_an_organization_designated_elsewhere_are_ignored(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    source_a.put(organization("org-b", ura="2002"), when=at(9))
    source_a.put(location("loc-b", organization="org-b"), when=at(9))
    source_a.put(practitioner_role("role-b", organization="org-b"), when=at(9))

    _apply(source_a, aggregate, registry, source_a.changes_since(None))

    assert aggregate.records == {}


def test_deleting_an_organization_removes_its_dependents(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)
    _apply(source_a, aggregate, registry, source_a.changes_since(None))

    source_a.remove(ResourceKey(ResourceKind.ORGANIZATION, "org-1"), when=at(12))
    _apply(source_a, aggregate, registry, source_a.changes_since(at(11)))

    assert aggregate.records == {}


def test_cascade_keeps_an_endpoint_another_organization_refers_to(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)
    _apply(source_a, aggregate, registry, source_a.changes_since(None))
    shared = aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.ENDPOINT, "ep-1"))
    assert shared is not None
    other = aggregate.seed(
        organization("org-b", ura="2002", endpoints=[shared["id"]]), source=ADMIN_B
    )

    source_a.remove(ResourceKey(ResourceKind.ORGANIZATION, "org-1"), when=at(12))
    _apply(source_a, aggregate, registry, source_a.changes_since(at(11)))

    assert set(aggregate.records) == {other, ResourceKey(ResourceKind.ENDPOINT, shared["id"])}
    assert aggregate.dangling_references() == []


def test_graph_replacement_deletes_records_the_source_dropped(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)
    designation = {
        "1001": RegistryOrganization(
            external_id="1001", name="Huisarts A", endpoint_address=ADMIN_A
        )
    }
    apply_source_changes(
        source_a.organization_graph("1001"),
        source=source_a,
        aggregate=aggregate,
        registry=registry,
        designated=designation,
        replaces=aggregate.organization_graph("1001"),
    )
    source_a.remove(ResourceKey(ResourceKind.LOCATION, "loc-1"))

    apply_source_changes(
        source_a.organization_graph("1001"),
        source=source_a,
        aggregate=aggregate,
        registry=registry,
        designated=designation,
        replaces=aggregate.organization_graph("1001"),
    )

    assert aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.LOCATION, "loc-1")) is None
    assert len(aggregate.records) == 8
    assert aggregate.dangling_references() == []


def test_delete_organization_graph_removes_everything_it_holds(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)
    _apply(source_a, aggregate, registry, source_a.changes_since(None))

    deleted = delete_organization_graph(aggregate, "1001")

    assert deleted == 9
    assert aggregate.records == {}
    assert delete_organization_graph(aggregate, "1001") == 0


def test_delete_organization_graph_keeps_shared_practitioners(
    source_a: FakeSourceDirectory,
    aggregate: InMemoryAggregateDirectory,
    registry: FakeRegistry,
) -> None:
    _populate(source_a)
    _apply(source_a, aggregate, registry, source_a.changes_since(None))
    shared = aggregate.by_source_id(ADMIN_A, ResourceKey(ResourceKind.PRACTITIONER, "pr-1"))
    assert shared is not None
    role = aggregate.seed(
        practitioner_role("role-b", organization="org-b", practitioner=shared["id"]),
        source=ADMIN_B,
    )

    deleted = delete_organization_graph(aggregate, "1001")

    assert deleted == 8
    assert set(aggregate.records) == {role, ResourceKey(ResourceKind.PRACTITIONER, shared["id"])}
