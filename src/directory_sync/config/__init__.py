"""Application configuration helpers."""

from __future__ import annotations

from .directories import (
    DirectoryConfig,
    admin_directory_resilience,
    get_directory_config,
)
from .env import optional_int_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .storage import (
    DatabaseConfig,
    StorageConfig,
    get_database_config,
    get_storage_config,
)
from .sync import SyncConfig, get_sync_config

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "DirectoryConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "admin_directory_resilience",
    "get_database_config",
    "get_directory_config",
    "get_storage_config",
    "get_sync_config",
    "optional_int_env_var",
    "require_env_var",
    "require_env_vars",
]
