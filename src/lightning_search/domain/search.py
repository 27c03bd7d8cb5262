"""Domain models for search dispatch.

Value objects are immutable (frozen=True). The dispatcher reports what happened
through ``SearchOutcome`` instead of raising, so callers can branch on
``status`` without relying on exceptions for the fallback path.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


EntityId = int | str

_MODE_ALIASES = {
    "go": "engine",
    "eloquent": "embedded",
}


class SearchMode(str, Enum):
    """Backend that answers a search request."""

    ENGINE = "engine"
    EMBEDDED = "embedded"

    @classmethod
    def parse(cls, value: str | SearchMode) -> SearchMode:
        """Parse a mode name, accepting the legacy ``go``/``eloquent`` aliases."""
        if isinstance(value, SearchMode):
            return value
        normalized = value.strip().lower()
        return cls(_MODE_ALIASES.get(normalized, normalized))


def entity_id_key(value: object) -> str:
    """Comparable form of an identifier; the engine may return ``"3"`` for integer key ``3``."""
    return str(value)


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        name = value.strip()
        if name and name not in seen:
            seen.add(name)
            ordered.append(name)
    return tuple(ordered)


class SearchRequest(BaseModel):
    """A single search call made by the application."""

    model_config = ConfigDict(frozen=True)

    entity_type: str = Field(min_length=1)
    query_text: str
    mode: SearchMode | None = None
    filters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SearchMode.parse(value)
        return value


class IndexDescriptor(BaseModel):
    """Which fields of an entity type are searched, which are indexed, and where it lives."""

    model_config = ConfigDict(frozen=True)

    entity_type: str
    searchable_fields: tuple[str, ...] = ()
    index_fields: tuple[str, ...] = ()
    table_id: str = Field(min_length=1)
    primary_key: str = "id"

    @model_validator(mode="before")
    @classmethod
    def _normalize_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        primary_key = payload.get("primary_key") or "id"
        payload["searchable_fields"] = _dedupe(payload.get("searchable_fields") or ())
        index_fields = _dedupe(payload.get("index_fields") or ())
        if primary_key not in index_fields:
            index_fields = (primary_key, *index_fields)
        payload["index_fields"] = index_fields
        return payload

    @property
    def is_engine_dispatchable(self) -> bool:
        return bool(self.searchable_fields)


class EngineQueryResult(BaseModel):
    """Identifiers returned by the engine, ordered by relevance."""

    model_config = ConfigDict(frozen=True)

    ids: tuple[EntityId, ...] = ()
    elapsed_millis: int = 0
    count: int = 0
    from_cache: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EngineQueryResult:
        """Build a result from the engine's ``{results, time_ms, count}`` response body."""
        results = payload.get("results") or []
        if not isinstance(results, list):
            raise ValueError("'results' must be a list")
        ids: list[EntityId] = []
        for row in results:
            if not isinstance(row, dict) or "id" not in row:
                raise ValueError("every result must be an object with an 'id'")
            ids.append(row["id"])
        return cls(
            ids=tuple(ids),
            elapsed_millis=int(payload.get("time_ms") or 0),
            count=int(payload.get("count", len(ids)) or 0),
            from_cache=bool(payload.get("from_cache", False)),
        )


OutcomeStatus = Literal["success", "backend_unavailable", "error"]


class SearchOutcome(BaseModel):
    """Typed result of a dispatch: ``success``, ``backend_unavailable`` or ``error``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: OutcomeStatus
    backend: SearchMode | None = None
    entities: list[dict[str, Any]] = Field(default_factory=list)
    ids: tuple[EntityId, ...] = ()
    fell_back: bool = False
    elapsed_millis: float = 0.0
    detail: str | None = None
    error: Exception | None = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def unwrap(self) -> list[dict[str, Any]]:
        """Return the entities, or raise the carried error unchanged."""
        if self.status == "success":
            return self.entities
        if self.error is not None:
            raise self.error
        raise RuntimeError(self.detail or f"search failed with status {self.status}")
