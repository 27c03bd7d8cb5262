"""Search dispatch with engine-first, embedded-fallback policy.

Mode resolution: the request's explicit mode, then the configured default, then
the engine. A failed engine call is never retried: it either triggers exactly
one embedded search (when fallback is configured) or is reported as
``backend_unavailable``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from lightning_search.adapters.engine_client import FULLTEXT, EngineClient, EngineRequestError
from lightning_search.adapters.entity_store import AbstractEntityStore
from lightning_search.config import Settings
from lightning_search.domain.errors import SearchBackendUnavailableError, StoreError
from lightning_search.domain.search import IndexDescriptor, SearchMode, SearchOutcome, SearchRequest
from lightning_search.observability import (
    SEARCH_FALLBACKS,
    SEARCH_LATENCY,
    SEARCH_OUTCOMES,
    bound_context,
    create_span,
)
from lightning_search.service_layer.reconciler import ResultReconciler


logger = logging.getLogger(__name__)


class SearchDispatcher:
    """Decide which backend answers a request and apply the fallback policy."""

    def __init__(
        self,
        settings: Settings,
        engine_client: EngineClient,
        store: AbstractEntityStore,
        reconciler: ResultReconciler | None = None,
    ) -> None:
        self.settings = settings
        self.engine_client = engine_client
        self.store = store
        self.reconciler = reconciler or ResultReconciler(store)

    def resolve_mode(self, request: SearchRequest) -> SearchMode:
        if request.mode is not None:
            return request.mode
        if self.settings.default_mode is not None:
            return self.settings.default_mode
        return SearchMode.ENGINE

    async def search(self, request: SearchRequest, descriptor: IndexDescriptor) -> list[dict[str, Any]]:
        """Dispatch and return entities, raising the outcome's error on failure."""
        outcome = await self.dispatch(request, descriptor)
        return outcome.unwrap()

    async def dispatch(self, request: SearchRequest, descriptor: IndexDescriptor) -> SearchOutcome:
        mode = self.resolve_mode(request)
        attributes = {"search.entity_type": request.entity_type, "search.mode": mode.value}
        with bound_context(entity_type=request.entity_type), create_span("search.dispatch", attributes=attributes) as span:
            if mode == SearchMode.EMBEDDED:
                outcome = await self._embedded(request, descriptor, fell_back=False)
            else:
                outcome = await self._engine(request, descriptor)

            span.set_attribute("search.status", outcome.status)
            span.set_attribute("search.fell_back", outcome.fell_back)
            SEARCH_OUTCOMES.labels(status=outcome.status).inc()
            logger.debug(
                "Dispatch %s on %s: status=%s backend=%s results=%d elapsed=%.1fms",
                request.entity_type,
                descriptor.table_id,
                outcome.status,
                outcome.backend.value if outcome.backend else "-",
                len(outcome.entities),
                outcome.elapsed_millis,
            )
            return outcome

    async def _engine(self, request: SearchRequest, descriptor: IndexDescriptor) -> SearchOutcome:
        start = time.perf_counter()
        if not descriptor.is_engine_dispatchable:
            return await self._engine_failed(
                request, descriptor, EngineRequestError("entity type has no searchable fields")
            )

        try:
            result = await self.engine_client.query(descriptor.table_id, request.query_text, kind=FULLTEXT)
        except EngineRequestError as exc:
            return await self._engine_failed(request, descriptor, exc)

        try:
            entities = await self.reconciler.reconcile(result.ids, descriptor, request.filters)
        except StoreError as exc:
            return _error_outcome(SearchMode.ENGINE, exc, start)

        elapsed = _elapsed_ms(start)
        SEARCH_LATENCY.labels(backend=SearchMode.ENGINE.value).observe(elapsed / 1000)
        return SearchOutcome(
            status="success",
            backend=SearchMode.ENGINE,
            entities=entities,
            ids=result.ids,
            elapsed_millis=elapsed,
        )

    async def _engine_failed(
        self,
        request: SearchRequest,
        descriptor: IndexDescriptor,
        exc: EngineRequestError,
    ) -> SearchOutcome:
        if self.settings.fallback_enabled:
            logger.warning(
                "Engine search on %s failed (%s); falling back to embedded search",
                descriptor.table_id,
                exc.message,
            )
            SEARCH_FALLBACKS.labels(table=descriptor.table_id).inc()
            return await self._embedded(request, descriptor, fell_back=True)

        error = SearchBackendUnavailableError(descriptor.table_id, exc.message, status_code=exc.status_code)
        error.__cause__ = exc
        logger.error("%s", error)
        return SearchOutcome(
            status="backend_unavailable",
            backend=SearchMode.ENGINE,
            detail=str(error),
            error=error,
        )

    async def _embedded(self, request: SearchRequest, descriptor: IndexDescriptor, *, fell_back: bool) -> SearchOutcome:
        start = time.perf_counter()
        try:
            entities = await self.store.search_substring(descriptor, request.query_text, request.filters)
        except StoreError as exc:
            return _error_outcome(SearchMode.EMBEDDED, exc, start, fell_back=fell_back)

        elapsed = _elapsed_ms(start)
        SEARCH_LATENCY.labels(backend=SearchMode.EMBEDDED.value).observe(elapsed / 1000)
        return SearchOutcome(
            status="success",
            backend=SearchMode.EMBEDDED,
            entities=entities,
            fell_back=fell_back,
            elapsed_millis=elapsed,
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _error_outcome(backend: SearchMode, exc: StoreError, start: float, *, fell_back: bool = False) -> SearchOutcome:
    logger.error("%s", exc)
    return SearchOutcome(
        status="error",
        backend=backend,
        fell_back=fell_back,
        elapsed_millis=_elapsed_ms(start),
        detail=str(exc),
        error=exc,
    )
