"""Map engine identifiers back to entity-store rows in engine (relevance) order."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

from lightning_search.adapters.entity_store import AbstractEntityStore
from lightning_search.domain.search import EntityId, IndexDescriptor, entity_id_key


logger = logging.getLogger(__name__)


class ResultReconciler:
    """Fetch rows for engine ids with one store query and re-sort them by id position.

    The re-sort happens in memory, keyed by the position of each id in the
    engine's list; the id list is bounded by the engine's result limit.
    """

    def __init__(self, store: AbstractEntityStore) -> None:
        self.store = store

    async def reconcile(
        self,
        ids: Sequence[EntityId],
        descriptor: IndexDescriptor,
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        if not ids:
            return []

        rows = await self.store.fetch_by_ids(descriptor, list(dict.fromkeys(ids)), filters)
        by_key: dict[str, dict[str, Any]] = {}
        for row in rows:
            by_key.setdefault(entity_id_key(row.get(descriptor.primary_key)), row)

        ordered = [by_key[key] for key in map(entity_id_key, ids) if key in by_key]
        dropped = len(ids) - len(ordered)
        if dropped:
            logger.debug("Dropped %d engine ids missing from %s", dropped, descriptor.table_id)
        return ordered
