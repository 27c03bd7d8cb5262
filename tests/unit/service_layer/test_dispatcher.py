"""Unit tests for engine-first dispatch and the fallback policy."""

from __future__ import annotations

from prometheus_client import REGISTRY
import pytest

from lightning_search.adapters.engine_client import EngineRequestError
from lightning_search.adapters.entity_store import InMemoryEntityStore
from lightning_search.config import Settings
from lightning_search.domain.errors import SearchBackendUnavailableError, StoreError
from lightning_search.domain.search import EngineQueryResult, IndexDescriptor, SearchMode, SearchRequest
from lightning_search.service_layer.dispatcher import SearchDispatcher


class FakeEngineClient:
    def __init__(self, *, ids=(), error: EngineRequestError | None = None) -> None:
        self.ids = tuple(ids)
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def query(self, table: str, query_text: str, kind: str = "fulltext") -> EngineQueryResult:
        self.calls.append((table, query_text, kind))
        if self.error is not None:
            raise self.error
        return EngineQueryResult(ids=self.ids, count=len(self.ids), elapsed_millis=1)


class BrokenStore(InMemoryEntityStore):
    async def search_substring(self, descriptor, query_text, filters=None):
        self.search_calls.append((descriptor.table_id, query_text))
        raise StoreError(descriptor.table_id, "database is locked")


def _request(mode=None, **kwargs) -> SearchRequest:
    return SearchRequest(entity_type="company", query_text=kwargs.pop("query_text", "lon"), mode=mode, **kwargs)


def _fallbacks(table: str) -> float:
    return REGISTRY.get_sample_value("lightning_search_fallbacks_total", {"table": table}) or 0.0


@pytest.fixture
def no_fallback_settings() -> Settings:
    return Settings(_env_file=None, fallback_mode="none")


class TestResolveMode:
    def test_explicit_mode_wins(self):
        settings = Settings(_env_file=None, default_mode="engine")
        dispatcher = SearchDispatcher(settings, FakeEngineClient(), InMemoryEntityStore())

        assert dispatcher.resolve_mode(_request(mode="embedded")) is SearchMode.EMBEDDED

    def test_configured_default_next(self):
        settings = Settings(_env_file=None, default_mode="eloquent")
        dispatcher = SearchDispatcher(settings, FakeEngineClient(), InMemoryEntityStore())

        assert dispatcher.resolve_mode(_request()) is SearchMode.EMBEDDED

    def test_engine_when_nothing_configured(self):
        dispatcher = SearchDispatcher(Settings(_env_file=None), FakeEngineClient(), InMemoryEntityStore())

        assert dispatcher.resolve_mode(_request()) is SearchMode.ENGINE


@pytest.mark.asyncio
async def test_engine_results_are_reconciled_in_engine_order(store, company_descriptor):
    engine = FakeEngineClient(ids=[3, 1])
    dispatcher = SearchDispatcher(Settings(_env_file=None), engine, store)

    outcome = await dispatcher.dispatch(_request(), company_descriptor)

    assert outcome.status == "success"
    assert outcome.backend is SearchMode.ENGINE
    assert outcome.fell_back is False
    assert [row["id"] for row in outcome.entities] == [3, 1]
    assert outcome.ids == (3, 1)
    assert engine.calls == [("companies", "lon", "fulltext")]
    assert store.search_calls == []


@pytest.mark.asyncio
async def test_embedded_mode_never_calls_engine(store, company_descriptor):
    engine = FakeEngineClient(ids=[2])
    dispatcher = SearchDispatcher(Settings(_env_file=None), engine, store)

    entities = await dispatcher.search(_request(mode="embedded"), company_descriptor)

    assert [row["id"] for row in entities] == [1, 3]
    assert engine.calls == []


@pytest.mark.asyncio
async def test_engine_failure_falls_back_exactly_once(store, company_descriptor):
    engine = FakeEngineClient(error=EngineRequestError("connection refused"))
    dispatcher = SearchDispatcher(Settings(_env_file=None), engine, store)
    before = _fallbacks("companies")

    outcome = await dispatcher.dispatch(_request(), company_descriptor)

    assert outcome.status == "success"
    assert outcome.backend is SearchMode.EMBEDDED
    assert outcome.fell_back is True
    assert [row["id"] for row in outcome.entities] == [1, 3]
    assert len(engine.calls) == 1
    assert store.search_calls == [("companies", "lon")]
    assert _fallbacks("companies") == before + 1


@pytest.mark.asyncio
async def test_engine_failure_without_fallback_is_surfaced(store, company_descriptor, no_fallback_settings):
    cause = EngineRequestError("engine returned HTTP 500: boom", status_code=500)
    engine = FakeEngineClient(error=cause)
    dispatcher = SearchDispatcher(no_fallback_settings, engine, store)

    outcome = await dispatcher.dispatch(_request(), company_descriptor)

    assert outcome.status == "backend_unavailable"
    assert isinstance(outcome.error, SearchBackendUnavailableError)
    assert outcome.error.table == "companies"
    assert outcome.error.status_code == 500
    assert outcome.error.__cause__ is cause
    assert len(engine.calls) == 1
    assert store.search_calls == []
    assert store.fetch_calls == []

    with pytest.raises(SearchBackendUnavailableError, match="status 500"):
        await dispatcher.search(_request(), company_descriptor)


@pytest.mark.asyncio
async def test_descriptor_without_searchable_fields_skips_engine(store):
    descriptor = IndexDescriptor(entity_type="company", table_id="companies")
    engine = FakeEngineClient(ids=[1])
    dispatcher = SearchDispatcher(Settings(_env_file=None), engine, store)

    outcome = await dispatcher.dispatch(_request(), descriptor)

    assert engine.calls == []
    assert outcome.fell_back is True
    assert outcome.entities == []


@pytest.mark.asyncio
async def test_descriptor_without_searchable_fields_and_no_fallback(store, no_fallback_settings):
    descriptor = IndexDescriptor(entity_type="company", table_id="companies")
    dispatcher = SearchDispatcher(no_fallback_settings, FakeEngineClient(), store)

    outcome = await dispatcher.dispatch(_request(), descriptor)

    assert outcome.status == "backend_unavailable"
    assert "no searchable fields" in (outcome.detail or "")


@pytest.mark.asyncio
async def test_store_error_during_fallback_is_not_retried(company_rows, company_descriptor):
    store = BrokenStore({"companies": company_rows})
    engine = FakeEngineClient(error=EngineRequestError("timed out"))
    dispatcher = SearchDispatcher(Settings(_env_file=None), engine, store)

    outcome = await dispatcher.dispatch(_request(), company_descriptor)

    assert outcome.status == "error"
    assert outcome.fell_back is True
    assert isinstance(outcome.error, StoreError)
    assert len(engine.calls) == 1
    assert len(store.search_calls) == 1
    with pytest.raises(StoreError) as excinfo:
        outcome.unwrap()
    assert excinfo.value is outcome.error


@pytest.mark.asyncio
async def test_store_error_during_reconcile_is_reported(company_descriptor):
    engine = FakeEngineClient(ids=[1])
    dispatcher = SearchDispatcher(Settings(_env_file=None), engine, InMemoryEntityStore())

    outcome = await dispatcher.dispatch(_request(), company_descriptor)

    assert outcome.status == "error"
    assert outcome.backend is SearchMode.ENGINE
    assert isinstance(outcome.error, StoreError)


@pytest.mark.asyncio
async def test_filters_apply_on_both_paths(store, company_descriptor):
    request = _request(filters={"country": "IT"})
    engine_dispatcher = SearchDispatcher(Settings(_env_file=None), FakeEngineClient(ids=[3, 1]), store)
    embedded_dispatcher = SearchDispatcher(
        Settings(_env_file=None), FakeEngineClient(error=EngineRequestError("down")), store
    )

    via_engine = await engine_dispatcher.search(request, company_descriptor)
    via_fallback = await embedded_dispatcher.search(request, company_descriptor)

    assert [row["id"] for row in via_engine] == [3]
    assert [row["id"] for row in via_fallback] == [3]
