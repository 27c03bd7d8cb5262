"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
import sys

import pytest

from lightning_search.adapters.entity_store import InMemoryEntityStore
from lightning_search.config import Settings
from lightning_search.domain.search import IndexDescriptor


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

_ENV_PREFIXES = ("LIGHTNING_SEARCH_", "DB_")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Drop configuration inherited from the developer's shell and stay away from their .env."""
    for key in list(os.environ):
        if key.upper().startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        binary_dir=tmp_path / "bin",
        engine_source_dir=tmp_path / "go",
        seeder_source_dir=tmp_path / "go" / "seeder",
        db_database="forge",
        db_username="forge",
    )


@pytest.fixture
def company_descriptor() -> IndexDescriptor:
    return IndexDescriptor(
        entity_type="company",
        searchable_fields=("name", "city"),
        index_fields=("name", "city"),
        table_id="companies",
    )


@pytest.fixture
def company_rows() -> list[dict]:
    return [
        {"id": 1, "name": "Acme", "city": "London", "country": "UK"},
        {"id": 2, "name": "Bolt", "city": "Paris", "country": "FR"},
        {"id": 3, "name": "Colonnade", "city": "Rome", "country": "IT"},
    ]


@pytest.fixture
def store(company_rows: list[dict]) -> InMemoryEntityStore:
    return InMemoryEntityStore({"companies": company_rows})

