"""Synchronisation defaults for the update orchestrator."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_int_env_var

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True, slots=True)
class SyncConfig:
    max_workers: int = DEFAULT_MAX_WORKERS


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        max_workers=optional_int_env_var("SYNC_MAX_WORKERS", DEFAULT_MAX_WORKERS, minimum=1)
    )
