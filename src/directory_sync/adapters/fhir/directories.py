"""Synchronous directory adapters over the async FHIR client."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, TypeAlias, TypeVar

from directory_sync.adapters.http_resilience import ClientRunner, ResilientClient
from directory_sync.config.directories import admin_directory_resilience
from directory_sync.domain.errors import (
    InvariantViolationError,
    MalformedResponseError,
    ResourceNotFoundError,
    SourceUnavailableError,
    UpstreamConnectionError,
    UpstreamServerError,
)
from directory_sync.domain.model import (
    EXTERNAL_ID_SYSTEM,
    Resource,
    ResourceKey,
    ResourceKind,
    external_id_of,
    normalize_address,
)

from .client import FhirClient
from .graph import organization_graph, organizations_graph, referrers
from .schema import Bundle, BundleEntry, BundleEntryRequest
from .translator import translate_graph, translate_history, translate_resource

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Coroutine, Iterable
    from datetime import datetime

    from directory_sync.config.http_resilience import ResilienceConfig
    from directory_sync.domain.model import Change, JsonObject, Provenance, Transaction

log = getLogger(__name__)

ClientFactory: TypeAlias = "Callable[[ResilienceConfig], ResilientClient]"

T = TypeVar("T")

# the order in which an admin directory's change feed is pulled
HISTORY_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.ORGANIZATION,
    ResourceKind.ENDPOINT,
    ResourceKind.LOCATION,
    ResourceKind.PRACTITIONER_ROLE,
    ResourceKind.PRACTITIONER,
    ResourceKind.HEALTHCARE_SERVICE,
)


class FhirSourceDirectory:
    """An admin directory; its failures are scoped to this source only."""

    def __init__(
        self,
        address: str,
        *,
        resilience: ResilienceConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._address = normalize_address(address)
        self._resilience = resilience or admin_directory_resilience(self._address)
        self._runner = ClientRunner(self._resilience, client_factory)

    @property
    def address(self) -> str:
        return self._address

    def organization_graph(self, external_id: str) -> list[Change]:
        async def pull(client: FhirClient) -> list[Change]:
            return translate_graph(await organization_graph(client, external_id))

        return self._run(pull)

    def read(self, key: ResourceKey) -> Resource | None:
        async def read(client: FhirClient) -> Resource | None:
            try:
                payload = await client.read(key.kind, key.id)
            except ResourceNotFoundError:
                return None
            return translate_resource(payload)

        return self._run(read)

    def changes_since(self, since: datetime | None) -> list[Change]:
        async def pull(client: FhirClient) -> list[Change]:
            changes: list[Change] = []
            for kind in HISTORY_ORDER:
                changes.extend(translate_history(await client.history(kind, since=since)))
            return changes

        return self._run(pull)

    def close(self) -> None:
        self._runner.close()

    def _run(self, operation: Callable[[FhirClient], Coroutine[object, object, T]]) -> T:
        async def call(http: ResilientClient) -> T:
            return await operation(FhirClient(http, name=self._address))

        try:
            return self._runner.run(call)
        except (UpstreamConnectionError, UpstreamServerError, MalformedResponseError) as exc:
            raise SourceUnavailableError(str(exc), details=exc.details) from exc


class FhirAggregateDirectory:
    """The Query Directory."""

    def __init__(
        self,
        resilience: ResilienceConfig,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._resilience = resilience
        self._runner = ClientRunner(resilience, client_factory)

    def find_by_provenance(self, provenance: Provenance) -> ResourceKey | None:
        async def find(client: FhirClient) -> ResourceKey | None:
            kind = provenance.key.kind
            result = await client.search(kind, {"_source": str(provenance)})
            if not result.matches:
                return None
            if len(result.matches) > 1:
                ids = ", ".join(str(match.get("id")) for match in result.matches)
                raise InvariantViolationError(
                    f"{len(result.matches)} {kind} records share provenance {provenance}: {ids}"
                )
            match_id = result.matches[0].get("id")
            if not isinstance(match_id, str):
                raise MalformedResponseError(f"{kind} search match without id")
            # the search index may lag behind deletes
            try:
                await client.read(kind, match_id)
            except ResourceNotFoundError:
                return None
            return ResourceKey(kind=kind, id=match_id)

        return self._run(find)

    def organization_graph(self, external_id: str) -> list[Resource]:
        async def pull(client: FhirClient) -> list[Resource]:
            return _resources(await organization_graph(client, external_id))

        return self._run(pull)

    def dependents(self, organizations: Collection[ResourceKey]) -> list[ResourceKey]:
        roots = sorted(organizations)
        if not roots:
            return []

        async def pull(client: FhirClient) -> list[ResourceKey]:
            graph = await organizations_graph(client, roots)
            return [
                resource.key
                for resource in _resources(graph)
                if resource.key not in organizations
            ]

        return self._run(pull)

    def referrers(self, target: ResourceKey) -> set[ResourceKey]:
        async def pull(client: FhirClient) -> set[ResourceKey]:
            return await referrers(client, target)

        return self._run(pull)

    def tracked_external_ids(self) -> set[str]:
        async def pull(client: FhirClient) -> set[str]:
            result = await client.search(
                ResourceKind.ORGANIZATION,
                {"identifier": f"{EXTERNAL_ID_SYSTEM}|", "_elements": "identifier"},
            )
            found = {external_id_of(match) for match in result.matches}
            return {external_id for external_id in found if external_id is not None}

        return self._run(pull)

    def commit(self, transaction: Transaction) -> None:
        bundle = Bundle(
            type="transaction",
            entry=[
                BundleEntry(
                    full_url=entry.full_url,
                    resource=entry.resource,
                    request=BundleEntryRequest(method=entry.method.value, url=entry.url),
                )
                for entry in transaction
            ],
        )

        async def submit(client: FhirClient) -> None:
            response = await client.transaction(bundle)
            log.debug("Transaction response: %d entries", len(response.entry))

        self._run(submit)

    def close(self) -> None:
        self._runner.close()

    def _run(self, operation: Callable[[FhirClient], Coroutine[object, object, T]]) -> T:
        async def call(http: ResilientClient) -> T:
            return await operation(FhirClient(http, name=self._resilience.name))

        return self._runner.run(call)


def _resources(payloads: Iterable[JsonObject]) -> list[Resource]:
    resources: list[Resource] = []
    for payload in payloads:
        resource = translate_resource(payload)
        if resource is not None:
            resources.append(resource)
    return resources
