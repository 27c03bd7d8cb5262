"""Entity store abstractions.

The search core only reads from the store: it fetches rows by identifier for
the reconciler and runs the embedded substring search when the engine is not
used. Implementations raise ``StoreError`` for store-level failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
import logging
from typing import Any

from lightning_search.domain.errors import StoreError
from lightning_search.domain.search import EntityId, IndexDescriptor, entity_id_key


logger = logging.getLogger(__name__)


class AbstractEntityStore(ABC):
    """Read-side repository for searchable entities."""

    @abstractmethod
    async def fetch_by_ids(
        self,
        descriptor: IndexDescriptor,
        ids: Sequence[EntityId],
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch the rows whose primary key is in ``ids`` with a single query.

        Rows come back in store order; missing identifiers are simply absent.
        Equality ``filters`` narrow the result further.
        """
        raise NotImplementedError

    @abstractmethod
    async def search_substring(
        self,
        descriptor: IndexDescriptor,
        query_text: str,
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows where any searchable field contains ``query_text``, ignoring case.

        The OR group over searchable fields is AND-ed with the equality ``filters``.
        """
        raise NotImplementedError

    @abstractmethod
    async def rebuild_search_index(self, descriptor: IndexDescriptor) -> str:
        """Drop and recreate the full-text index over the searchable fields; return its name."""
        raise NotImplementedError

    def close(self) -> None:
        """Optional hook for releasing connections."""

        return


def search_index_name(descriptor: IndexDescriptor) -> str:
    return f"lightning_search_{descriptor.table_id}"


class InMemoryEntityStore(AbstractEntityStore):
    """Dictionary-backed store with the same semantics as the SQL adapter."""

    def __init__(self, tables: Mapping[str, Sequence[Mapping[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.fetch_calls: list[tuple[str, tuple[EntityId, ...]]] = []
        self.search_calls: list[tuple[str, str]] = []
        self.indexes: dict[str, tuple[str, ...]] = {}

    async def fetch_by_ids(
        self,
        descriptor: IndexDescriptor,
        ids: Sequence[EntityId],
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._rows(descriptor)
        self.fetch_calls.append((descriptor.table_id, tuple(ids)))
        wanted = {entity_id_key(value) for value in ids}
        return [
            dict(row)
            for row in rows
            if entity_id_key(row.get(descriptor.primary_key)) in wanted and _matches_filters(row, filters)
        ]

    async def search_substring(
        self,
        descriptor: IndexDescriptor,
        query_text: str,
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._rows(descriptor)
        self.search_calls.append((descriptor.table_id, query_text))
        needle = query_text.casefold()
        matches: list[dict[str, Any]] = []
        for row in rows:
            if not _matches_filters(row, filters):
                continue
            if any(needle in str(row.get(field) or "").casefold() for field in descriptor.searchable_fields):
                matches.append(dict(row))
        return matches

    async def rebuild_search_index(self, descriptor: IndexDescriptor) -> str:
        self._rows(descriptor)
        name = search_index_name(descriptor)
        self.indexes[name] = descriptor.searchable_fields
        return name

    def _rows(self, descriptor: IndexDescriptor) -> list[dict[str, Any]]:
        try:
            return self.tables[descriptor.table_id]
        except KeyError:
            raise StoreError(descriptor.table_id, "no such table") from None


def _matches_filters(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    return not filters or all(row.get(key) == value for key, value in filters.items())
