"""Unit tests for the in-memory entity store."""

from __future__ import annotations

import pytest

from lightning_search.adapters.entity_store import InMemoryEntityStore, search_index_name
from lightning_search.domain.errors import StoreError
from lightning_search.domain.search import IndexDescriptor


@pytest.mark.asyncio
async def test_substring_search_is_case_insensitive_across_fields(store, company_descriptor):
    rows = await store.search_substring(company_descriptor, "lon")

    assert [row["id"] for row in rows] == [1, 3]


@pytest.mark.asyncio
async def test_substring_search_applies_filters(store, company_descriptor):
    rows = await store.search_substring(company_descriptor, "lon", {"country": "IT"})

    assert [row["id"] for row in rows] == [3]


@pytest.mark.asyncio
async def test_substring_search_without_searchable_fields_matches_nothing(store):
    descriptor = IndexDescriptor(entity_type="company", table_id="companies")

    assert await store.search_substring(descriptor, "a") == []


@pytest.mark.asyncio
async def test_fetch_by_ids_normalises_identifier_types(store, company_descriptor):
    rows = await store.fetch_by_ids(company_descriptor, ["3", 1])

    assert sorted(row["id"] for row in rows) == [1, 3]
    assert store.fetch_calls == [("companies", ("3", 1))]


@pytest.mark.asyncio
async def test_fetch_by_ids_applies_filters(store, company_descriptor):
    rows = await store.fetch_by_ids(company_descriptor, [1, 2, 3], {"country": "FR"})

    assert [row["id"] for row in rows] == [2]


@pytest.mark.asyncio
async def test_unknown_table_raises_store_error():
    store = InMemoryEntityStore()
    descriptor = IndexDescriptor(entity_type="ghost", searchable_fields=("name",), table_id="ghosts")

    with pytest.raises(StoreError, match="ghosts"):
        await store.search_substring(descriptor, "x")


@pytest.mark.asyncio
async def test_rebuild_search_index_records_fields(store, company_descriptor):
    name = await store.rebuild_search_index(company_descriptor)

    assert name == search_index_name(company_descriptor) == "lightning_search_companies"
    assert store.indexes[name] == ("name", "city")


@pytest.mark.asyncio
async def test_returned_rows_are_copies(store, company_descriptor):
    rows = await store.search_substring(company_descriptor, "acme")
    rows[0]["name"] = "changed"

    again = await store.search_substring(company_descriptor, "acme")

    assert again[0]["name"] == "Acme"
