"""Entity types known to the search core.

An ``EntityType`` describes a persisted record kind structurally (table,
primary key, fillable columns) and may carry explicit search overrides.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class EntityType:
    """Structural description of a searchable entity.

    Attributes:
        name: Identifier used by callers and in configuration (e.g. ``"company"``).
        table: Backing table in the entity store.
        primary_key: Primary key column.
        fillable: Columns that carry user data, in declaration order.
        searchable: Explicit searchable field override.
        index_fields: Explicit index field override.
        searchable_table: Explicit table override for the engine.
    """

    name: str
    table: str
    primary_key: str = "id"
    fillable: tuple[str, ...] = ()
    searchable: tuple[str, ...] | None = None
    index_fields: tuple[str, ...] | None = None
    searchable_table: str | None = None


class EntityRegistry:
    """Name-keyed collection of entity types."""

    def __init__(self, entity_types: Iterable[EntityType] = ()) -> None:
        self._types: dict[str, EntityType] = {}
        for entity_type in entity_types:
            self.register(entity_type)

    def register(self, entity_type: EntityType) -> None:
        self._types[entity_type.name] = entity_type

    def get(self, name: str) -> EntityType | None:
        return self._types.get(name)

    def names(self) -> list[str]:
        return list(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[EntityType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)
