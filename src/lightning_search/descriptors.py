"""Resolve entity types into index descriptors.

Each of the three descriptor parts is resolved independently through the same
ordered sources: the entity type's explicit override, then the ``models``
configuration entry, then a structural default derived from the entity type.
"""

from __future__ import annotations

import logging

from lightning_search.config import ModelIndexConfig, Settings
from lightning_search.domain.entities import EntityRegistry, EntityType
from lightning_search.domain.errors import IndexDescriptorError
from lightning_search.domain.search import IndexDescriptor


logger = logging.getLogger(__name__)


class IndexDescriptorResolver:
    """Build and cache one ``IndexDescriptor`` per entity type."""

    def __init__(self, settings: Settings, registry: EntityRegistry) -> None:
        self._settings = settings
        self._registry = registry
        self._cache: dict[str, IndexDescriptor] = {}

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    def resolve(self, entity_name: str) -> IndexDescriptor:
        cached = self._cache.get(entity_name)
        if cached is not None:
            return cached

        entity_type = self._registry.get(entity_name)
        if entity_type is None:
            raise IndexDescriptorError(f"Unknown entity type '{entity_name}'")

        descriptor = resolve_descriptor(entity_type, self._settings.model_config_for(entity_name))
        if not descriptor.is_engine_dispatchable:
            logger.warning("Entity type %s has no searchable fields; engine search disabled", entity_name)
        self._cache[entity_name] = descriptor
        return descriptor

    def resolve_all(self) -> list[IndexDescriptor]:
        return [self.resolve(name) for name in self._registry.names()]


def resolve_descriptor(entity_type: EntityType, config: ModelIndexConfig | None) -> IndexDescriptor:
    """Resolve a descriptor from an entity type and its optional configuration entry."""

    if entity_type.searchable is not None:
        searchable = entity_type.searchable
    elif config is not None and config.searchable_fields is not None:
        searchable = tuple(config.searchable_fields)
    else:
        searchable = entity_type.fillable

    if entity_type.index_fields is not None:
        index_fields = entity_type.index_fields
    elif config is not None and config.index_fields is not None:
        index_fields = tuple(config.index_fields)
    else:
        index_fields = (entity_type.primary_key, *entity_type.fillable)

    if entity_type.searchable_table:
        table = entity_type.searchable_table
    elif config is not None and config.table:
        table = config.table
    else:
        table = entity_type.table

    return IndexDescriptor(
        entity_type=entity_type.name,
        searchable_fields=searchable,
        index_fields=index_fields,
        table_id=table,
        primary_key=entity_type.primary_key,
    )


def build_registry(settings: Settings, entity_types: list[EntityType] | None = None) -> EntityRegistry:
    """Combine explicitly registered entity types with those only named in configuration.

    A configuration-only entry becomes an entity type whose table defaults to the
    configured table (or the entity name) and whose fillable columns are the
    configured index fields minus the primary key.
    """

    registry = EntityRegistry(entity_types or [])
    for name, config in settings.models.items():
        if name in registry:
            continue
        fillable = tuple(field for field in (config.index_fields or config.searchable_fields or []) if field != "id")
        registry.register(EntityType(name=name, table=config.table or name, fillable=fillable))
    return registry
