"""Public domain model surface."""

from __future__ import annotations

from directory_sync.domain.model.changes import Change, ChangeMethod
from directory_sync.domain.model.registry import RegistryChange, RegistryOrganization
from directory_sync.domain.model.resources import (
    CAPABILITIES,
    EXTERNAL_ID_SYSTEM,
    JsonObject,
    KindCapabilities,
    Provenance,
    Resource,
    ResourceKey,
    ResourceKind,
    external_id_of,
    iter_reference_objects,
    iter_reference_slots,
    normalize_address,
)
from directory_sync.domain.model.state import SyncState
from directory_sync.domain.model.transaction import EntryMethod, Transaction, TransactionEntry

__all__ = [  # noqa: RUF022
    # resources
    "CAPABILITIES",
    "EXTERNAL_ID_SYSTEM",
    "JsonObject",
    "KindCapabilities",
    "Provenance",
    "Resource",
    "ResourceKey",
    "ResourceKind",
    "external_id_of",
    "iter_reference_objects",
    "iter_reference_slots",
    "normalize_address",
    # changes
    "Change",
    "ChangeMethod",
    # registry
    "RegistryChange",
    "RegistryOrganization",
    # state
    "SyncState",
    # transaction
    "EntryMethod",
    "Transaction",
    "TransactionEntry",
]
