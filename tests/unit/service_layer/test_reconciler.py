"""Unit tests for mapping engine ids back to rows in engine order."""

from __future__ import annotations

import pytest

from lightning_search.adapters.entity_store import InMemoryEntityStore
from lightning_search.domain.errors import StoreError
from lightning_search.service_layer.reconciler import ResultReconciler


@pytest.mark.asyncio
async def test_rows_follow_engine_order(store, company_descriptor):
    reconciler = ResultReconciler(store)

    rows = await reconciler.reconcile([3, 1], company_descriptor)

    assert [row["id"] for row in rows] == [3, 1]
    assert store.fetch_calls == [("companies", (3, 1))]


@pytest.mark.asyncio
async def test_empty_ids_do_not_touch_the_store(store, company_descriptor):
    assert await ResultReconciler(store).reconcile([], company_descriptor) == []
    assert store.fetch_calls == []


@pytest.mark.asyncio
async def test_missing_ids_are_dropped_without_reordering(store, company_descriptor):
    rows = await ResultReconciler(store).reconcile([2, 99, 1], company_descriptor)

    assert [row["id"] for row in rows] == [2, 1]


@pytest.mark.asyncio
async def test_string_ids_match_integer_keys(store, company_descriptor):
    rows = await ResultReconciler(store).reconcile(["3", "2"], company_descriptor)

    assert [row["id"] for row in rows] == [3, 2]


@pytest.mark.asyncio
async def test_duplicate_ids_fetch_once_and_repeat_rows(store, company_descriptor):
    rows = await ResultReconciler(store).reconcile([1, 3, 1], company_descriptor)

    assert [row["id"] for row in rows] == [1, 3, 1]
    assert store.fetch_calls == [("companies", (1, 3))]


@pytest.mark.asyncio
async def test_filters_narrow_engine_results(store, company_descriptor):
    rows = await ResultReconciler(store).reconcile([3, 1, 2], company_descriptor, {"country": "UK"})

    assert [row["id"] for row in rows] == [1]


@pytest.mark.asyncio
async def test_store_errors_propagate(company_descriptor):
    with pytest.raises(StoreError):
        await ResultReconciler(InMemoryEntityStore()).reconcile([1], company_descriptor)
