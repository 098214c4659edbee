"""Translate FHIR history entries into domain changes."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from directory_sync.domain.errors import IncompleteDataError
from directory_sync.domain.model import Change, Resource, ResourceKey

if TYPE_CHECKING:
    from collections.abc import Iterable

    from directory_sync.domain.model import JsonObject

    from .schema import BundleEntry

log = getLogger(__name__)


def translate_history_entry(entry: BundleEntry) -> Change | None:
    method = entry.request.method if entry.request is not None else None
    if method == "DELETE":
        key = key_from_url(entry.request.url if entry.request is not None else None)
        if key is None:
            key = key_from_url(entry.full_url)
        if key is None:
            log.debug("Skipping delete entry without a resolvable target: %s", entry.full_url)
            return None
        return Change.delete(key)

    if entry.resource is None:
        log.debug("Skipping history entry without resource: %s", entry.full_url)
        return None
    resource = translate_resource(entry.resource)
    if resource is None:
        return None
    return Change.create(resource) if method == "POST" else Change.update(resource)


def translate_history(entries: Iterable[BundleEntry]) -> list[Change]:
    changes: list[Change] = []
    for entry in entries:
        change = translate_history_entry(entry)
        if change is not None:
            changes.append(change)
    return changes


def translate_resource(payload: JsonObject) -> Resource | None:
    try:
        return Resource.from_json(payload)
    except IncompleteDataError as exc:
        log.warning("Ignoring resource: %s", exc)
        return None


def translate_graph(payloads: Iterable[JsonObject]) -> list[Change]:
    """Turn a pulled organization graph into upserts."""

    changes: list[Change] = []
    for payload in payloads:
        resource = translate_resource(payload)
        if resource is not None:
            changes.append(Change.update(resource))
    return changes


def key_from_url(url: str | None) -> ResourceKey | None:
    if not url:
        return None
    parts = [part for part in url.split("?", 1)[0].split("/") if part]
    if "_history" in parts:
        parts = parts[: parts.index("_history")]
    if len(parts) < 2:
        return None
    return ResourceKey.parse("/".join(parts[-2:]))
