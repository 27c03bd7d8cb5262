"""Unit tests for Settings loading and the engine environment."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError
import pytest

from lightning_search.config import ENGINE_ENV_VARS, Settings
from lightning_search.domain.search import SearchMode


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.host == "127.0.0.1"
    assert settings.port == 8081
    assert settings.service_url == "http://127.0.0.1:8081"
    assert settings.default_mode is None
    assert settings.fallback_mode is SearchMode.EMBEDDED
    assert settings.fallback_enabled is True
    assert settings.binary_dir == Path("bin")
    assert settings.progress_marker == "Progress:"


def test_prefixed_environment_variables(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LIGHTNING_SEARCH_PORT", "9090")
    monkeypatch.setenv("LIGHTNING_SEARCH_DEFAULT_MODE", "eloquent")
    monkeypatch.setenv("LIGHTNING_SEARCH_RESULT_LIMIT", "50")

    settings = Settings(_env_file=None)

    assert settings.port == 9090
    assert settings.default_mode is SearchMode.EMBEDDED
    assert settings.result_limit == 50


def test_database_settings_fall_back_to_unprefixed_names(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_DATABASE", "forge")
    monkeypatch.setenv("LIGHTNING_SEARCH_DB_USERNAME", "search")

    settings = Settings(_env_file=None)

    assert settings.db_host == "db.internal"
    assert settings.db_database == "forge"
    assert settings.db_username == "search"
    assert settings.is_local_database() is False


@pytest.mark.parametrize("raw", ["none", "off", "", "false"])
def test_fallback_can_be_disabled(monkeypatch: pytest.MonkeyPatch, raw: str):
    monkeypatch.setenv("LIGHTNING_SEARCH_FALLBACK_MODE", raw)

    settings = Settings(_env_file=None)

    assert settings.fallback_mode is None
    assert settings.fallback_enabled is False


def test_models_are_read_as_json(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(
        "LIGHTNING_SEARCH_MODELS",
        '{"company": {"searchable_fields": ["name", "city"], "table": "firms"}}',
    )

    settings = Settings(_env_file=None)

    config = settings.model_config_for("company")
    assert config is not None
    assert config.searchable_fields == ["name", "city"]
    assert config.table == "firms"
    assert settings.model_config_for("person") is None


def test_env_file_is_read(tmp_path: Path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("LIGHTNING_SEARCH_PORT=7000\nDB_DATABASE=from_file\n", encoding="utf-8")

    settings = Settings(_env_file=env_file)

    assert settings.port == 7000
    assert settings.db_database == "from_file"


@pytest.mark.parametrize(("field", "value"), [("port", 0), ("port", 70000), ("cpu_cores", 0), ("result_limit", 0)])
def test_invalid_values_are_rejected(field: str, value: int):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_engine_environment_contains_only_the_fixed_set():
    settings = Settings(_env_file=None, db_database="forge", db_username="forge", db_password="s3cret", cpu_cores=4)

    env = settings.engine_environment()

    assert set(env) <= set(ENGINE_ENV_VARS)
    assert env["DB_PASSWORD"] == "s3cret"
    assert env["PORT"] == env["LIGHTNING_SEARCH_PORT"] == "8081"
    assert env["LIGHTNING_SEARCH_CPU_CORES"] == "4"


def test_engine_environment_omits_empty_values():
    env = Settings(_env_file=None).engine_environment()

    assert "DB_DATABASE" not in env
    assert "DB_PASSWORD" not in env
    assert env["DB_HOST"] == "127.0.0.1"


def test_missing_database_settings():
    assert Settings(_env_file=None).missing_database_settings() == ["DB_DATABASE", "DB_USERNAME"]
    assert Settings(_env_file=None, db_database="x", db_username="y").missing_database_settings() == []
