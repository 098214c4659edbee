"""Async FHIR REST client over a ``ResilientClient`` session."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any, Unpack, cast

import httpx
from pydantic import ValidationError

from directory_sync.domain.errors import (
    ConflictError,
    MalformedResponseError,
    RejectedRequestError,
    ResourceNotFoundError,
    UpstreamConnectionError,
    UpstreamServerError,
)

from .schema import FHIR_MEDIA_TYPES, Bundle, OperationOutcome

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping
    from datetime import datetime

    from directory_sync.adapters.http_resilience import RequestOptions, ResilientClient
    from directory_sync.domain.model import JsonObject

    from .schema import BundleEntry

log = getLogger(__name__)

FHIR_JSON = "application/fhir+json"
MAX_PAGES = 1000


@dataclass(slots=True)
class SearchResult:
    matches: list[JsonObject] = field(default_factory=list["JsonObject"])
    includes: list[JsonObject] = field(default_factory=list["JsonObject"])


class FhirClient:
    """FHIR interactions used by the synchronisation: read, search, history, transaction."""

    def __init__(self, http: ResilientClient, *, name: str) -> None:
        self._http = http
        self._name = name

    async def read(self, resource_type: str, resource_id: str) -> JsonObject:
        response = await self._request("GET", f"{resource_type}/{resource_id}")
        payload = self._json(response)
        if payload.get("resourceType") != resource_type:
            raise MalformedResponseError(
                f"{self._name}: expected {resource_type}, got {payload.get('resourceType')!r}"
            )
        return payload

    async def search(self, resource_type: str, params: Mapping[str, str]) -> SearchResult:
        """Search ``resource_type`` and follow ``next`` links until exhausted."""

        result = SearchResult()
        async for bundle in self._pages(resource_type, params=dict(params)):
            for entry in bundle.entry:
                if entry.resource is None:
                    continue
                mode = entry.search.mode if entry.search is not None else None
                if mode == "include" or (
                    mode is None and entry.resource.get("resourceType") != resource_type
                ):
                    result.includes.append(entry.resource)
                elif mode != "outcome":
                    result.matches.append(entry.resource)
        return result

    async def history(
        self,
        resource_type: str,
        resource_id: str | None = None,
        *,
        since: datetime | None = None,
    ) -> list[BundleEntry]:
        """Return the history entries of a type or instance, oldest first."""

        path = (
            f"{resource_type}/{resource_id}/_history"
            if resource_id is not None
            else f"{resource_type}/_history"
        )
        params = {"_since": since.isoformat()} if since is not None else {}
        entries: list[BundleEntry] = []
        async for bundle in self._pages(path, params=params):
            entries.extend(bundle.entry)
        entries.reverse()
        return entries

    async def transaction(self, bundle: Bundle) -> Bundle:
        response = await self._request(
            "POST",
            "",
            json=bundle.to_payload(),
            headers={"Content-Type": FHIR_JSON},
        )
        return self._bundle(response)

    async def _pages(self, path: str, *, params: dict[str, str]) -> AsyncIterator[Bundle]:
        response = await self._request("GET", path, params=params)
        bundle = self._bundle(response)
        yield bundle
        for _ in range(MAX_PAGES):
            next_url = bundle.next_url()
            if next_url is None:
                return
            response = await self._request("GET", next_url)
            bundle = self._bundle(response)
            yield bundle
        log.warning("%s: stopped paging %s after %d pages", self._name, path, MAX_PAGES)

    async def _request(
        self, method: str, url: str, **kwargs: Unpack[RequestOptions]
    ) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise UpstreamConnectionError(
                f"{self._name}: {method} {url or '/'} failed: {exc!r}"
            ) from exc
        raise_for_status(response, name=self._name, method=method, url=url or "/")
        return response

    def _json(self, response: httpx.Response) -> JsonObject:
        media_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if media_type not in FHIR_MEDIA_TYPES:
            raise MalformedResponseError(
                f"{self._name}: unexpected content type {media_type or 'none'!r}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{self._name}: response is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"{self._name}: response is not a JSON object")
        return cast("JsonObject", payload)

    def _bundle(self, response: httpx.Response) -> Bundle:
        payload = self._json(response)
        try:
            return Bundle.model_validate(payload)
        except ValidationError as exc:
            raise MalformedResponseError(
                f"{self._name}: response is not a Bundle", details=str(exc)
            ) from exc


def raise_for_status(response: httpx.Response, *, name: str, method: str, url: str) -> None:
    status = response.status_code
    if status < 400:
        return
    message = f"{name}: {method} {url} returned {status}"
    details = _outcome_details(response)
    if status in {404, 410}:
        raise ResourceNotFoundError(message, details=details)
    if status in {409, 412}:
        raise ConflictError(message, details=details)
    if status < 500:
        raise RejectedRequestError(message, status_code=status, details=details)
    raise UpstreamServerError(message, status_code=status, details=details)


def _outcome_details(response: httpx.Response) -> str | None:
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text[:500] or None
    try:
        return OperationOutcome.model_validate(payload).describe() or None
    except ValidationError:
        return None
