"""Endpoints of the Registry and the Query Directory."""

from __future__ import annotations

from dataclasses import dataclass

from .env import require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig

FHIR_JSON = "application/fhir+json"
REGISTRY_CACHE_TTL_SECONDS = 300.0


@dataclass(frozen=True, slots=True)
class DirectoryConfig:
    """Base addresses of the central FHIR servers this process talks to."""

    registry_base_url: str
    query_directory_base_url: str

    def registry_resilience(self) -> ResilienceConfig:
        return ResilienceConfig(
            name="registry",
            base_url=self.registry_base_url,
            ratelimit=RateLimit(max_calls=20, per_seconds=1.0),
            cache=CacheConfig(default_ttl_seconds=REGISTRY_CACHE_TTL_SECONDS),
            default_headers={"Accept": FHIR_JSON},
        )

    def query_directory_resilience(self) -> ResilienceConfig:
        return ResilienceConfig(
            name="query-directory",
            base_url=self.query_directory_base_url,
            default_headers={"Accept": FHIR_JSON},
        )


def admin_directory_resilience(base_url: str) -> ResilienceConfig:
    """Resilience settings for one admin directory; these are never cached."""

    return ResilienceConfig(
        name=f"admin-directory {base_url}",
        base_url=base_url,
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        default_headers={"Accept": FHIR_JSON, "Cache-Control": "no-cache"},
    )


def get_directory_config() -> DirectoryConfig:
    values = require_env_vars(("REGISTRY_BASE_URL", "QUERY_DIRECTORY_BASE_URL"))
    return DirectoryConfig(
        registry_base_url=values["REGISTRY_BASE_URL"],
        query_directory_base_url=values["QUERY_DIRECTORY_BASE_URL"],
    )
