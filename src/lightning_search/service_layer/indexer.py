"""(Re)build the store-side full-text indexes the engine queries."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import logging

from lightning_search.adapters.entity_store import AbstractEntityStore
from lightning_search.descriptors import IndexDescriptorResolver
from lightning_search.domain.errors import IndexDescriptorError, StoreError
from lightning_search.runtime.console import ProgressConsole


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexReport:
    indexed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class Indexer:
    def __init__(
        self,
        resolver: IndexDescriptorResolver,
        store: AbstractEntityStore,
        *,
        console: ProgressConsole | None = None,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.console = console or ProgressConsole()

    async def index(self, entity_types: Sequence[str] | None = None) -> IndexReport:
        """Rebuild the index of each named entity type, or of every registered one.

        A failing entity type is reported and does not stop the others.
        """
        names = list(entity_types) if entity_types else self.resolver.registry.names()
        if not names:
            raise IndexDescriptorError("No entity types configured for indexing")

        report = IndexReport()
        for name in names:
            self.console.info(f"Indexing {name}...")
            try:
                descriptor = self.resolver.resolve(name)
                if not descriptor.searchable_fields:
                    self.console.warning(f"No searchable fields defined for {name}")
                    report.skipped.append(name)
                    continue
                index_name = await self.store.rebuild_search_index(descriptor)
            except (IndexDescriptorError, StoreError) as exc:
                logger.error("Failed to index %s: %s", name, exc)
                self.console.error(f"Failed to index {name}: {exc}")
                report.failed[name] = str(exc)
                continue

            report.indexed[name] = index_name
            self.console.info(f"Created {index_name} on {', '.join(descriptor.searchable_fields)}")

        self.console.info("Indexing complete!")
        return report
