"""Per-call context (trace ids, entity type) carried across async boundaries for log correlation."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


_search_context: ContextVar[dict | None] = ContextVar("search_context", default=None)


def new_trace_id() -> str:
    return uuid4().hex


def new_span_id() -> str:
    return uuid4().hex[:16]


def current_context() -> dict:
    """Return the active context, creating trace/span ids on first use."""
    ctx = _search_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": new_trace_id(), "span_id": new_span_id()}
        _search_context.set(ctx)
    return ctx


def update_span_id(span_id: str) -> None:
    ctx = _search_context.get() or {}
    _search_context.set({**ctx, "span_id": span_id})


@contextmanager
def bound_context(**values: object) -> Iterator[dict]:
    """Temporarily add ``values`` (e.g. ``entity_type``) to the context; restored on exit."""
    token = _search_context.set({**current_context(), **values})
    try:
        yield _search_context.get() or {}
    finally:
        _search_context.reset(token)
