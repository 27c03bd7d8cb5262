"""Observability: structured logging, OpenTelemetry tracing and Prometheus metrics."""

from lightning_search.observability.context import bound_context, current_context
from lightning_search.observability.logging import JsonFormatter, configure_logging
from lightning_search.observability.metrics import (
    ENGINE_PROCESS_EVENTS,
    SEARCH_FALLBACKS,
    SEARCH_LATENCY,
    SEARCH_OUTCOMES,
    init_metrics,
)
from lightning_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "ENGINE_PROCESS_EVENTS",
    "SEARCH_FALLBACKS",
    "SEARCH_LATENCY",
    "SEARCH_OUTCOMES",
    "JsonFormatter",
    "bound_context",
    "configure_logging",
    "create_span",
    "current_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
]
