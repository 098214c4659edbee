"""Domain port definitions for adapters."""

from __future__ import annotations

from .directories import AggregateDirectory, SourceDirectory, SourceDirectoryFactory
from .registry import Registry
from .state import SyncStateStore

__all__ = [
    "AggregateDirectory",
    "Registry",
    "SourceDirectory",
    "SourceDirectoryFactory",
    "SyncStateStore",
]
