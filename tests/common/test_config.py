from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from directory_sync.config import (
    ConfigurationError,
    MissingConfigurationError,
    admin_directory_resilience,
    get_database_config,
    get_directory_config,
    get_storage_config,
    get_sync_config,
    require_env_var,
    require_env_vars,
)
from directory_sync.config.storage import DEFAULT_DB_FILENAME

if TYPE_CHECKING:
    from pathlib import Path


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_raises_when_any_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_VAR"])

    assert "MISSING_VAR" in str(exc.value)


def test_require_env_var_handles_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "   ")

    with pytest.raises(MissingConfigurationError):
        require_env_var("EXAMPLE_VAR")


def test_require_env_vars_restores_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEMP_VAR", "123")

    assert os.getenv("TEMP_VAR") == "123"
    result = require_env_var("TEMP_VAR")
    assert result == "123"


def test_directory_config_reads_both_base_urls(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REGISTRY_BASE_URL", "https://registry.example.org/fhir")
    monkeypatch.setenv("QUERY_DIRECTORY_BASE_URL", "https://query.example.org/fhir")

    config = get_directory_config()

    registry = config.registry_resilience()
    assert registry.base_url == "https://registry.example.org/fhir"
    assert registry.cache is not None
    assert config.query_directory_resilience().cache is None


def test_directory_config_requires_the_query_directory(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REGISTRY_BASE_URL", "https://registry.example.org/fhir")
    monkeypatch.delenv("QUERY_DIRECTORY_BASE_URL", raising=False)

    with pytest.raises(MissingConfigurationError, match="QUERY_DIRECTORY_BASE_URL"):
        get_directory_config()


def test_admin_directories_are_never_cached() -> None:
    config = admin_directory_resilience("https://admin.example.org/fhir")

    assert config.cache is None
    assert config.ratelimit is not None
    assert config.default_headers is not None
    assert config.default_headers["Cache-Control"] == "no-cache"


def test_sync_config_validates_worker_count(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SYNC_MAX_WORKERS", raising=False)
    assert get_sync_config().max_workers == 4

    monkeypatch.setenv("SYNC_MAX_WORKERS", "8")
    assert get_sync_config().max_workers == 8

    monkeypatch.setenv("SYNC_MAX_WORKERS", "0")
    with pytest.raises(ConfigurationError):
        get_sync_config()

    monkeypatch.setenv("SYNC_MAX_WORKERS", "many")
    with pytest.raises(ConfigurationError):
        get_sync_config()


def test_data_dir_prefers_explicit_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("DIRECTORY_SYNC_DATA_DIR", str(custom))

    result = get_storage_config().resolve_data_dir()

    assert result == custom.resolve()


def test_database_uri_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    assert get_database_config().uri == "sqlite:///override.db"


def test_database_uri_creates_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("DIRECTORY_SYNC_DATA_DIR", str(tmp_path / "data-dir"))

    uri = get_database_config().uri

    expected_path = (tmp_path / "data-dir" / DEFAULT_DB_FILENAME).resolve()
    assert uri == f"sqlite+pysqlite:///{expected_path}"
    assert expected_path.parent.exists()
