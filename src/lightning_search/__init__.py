"""Lightning Search: engine-first full-text search with an embedded fallback."""

from lightning_search.config import Settings
from lightning_search.descriptors import IndexDescriptorResolver, build_registry
from lightning_search.domain import (
    EntityRegistry,
    EntityType,
    IndexDescriptor,
    SearchMode,
    SearchOutcome,
    SearchRequest,
)
from lightning_search.service_layer import ResultReconciler, SearchDispatcher


__version__ = "0.1.0"

__all__ = [
    "EntityRegistry",
    "EntityType",
    "IndexDescriptor",
    "IndexDescriptorResolver",
    "ResultReconciler",
    "SearchDispatcher",
    "SearchMode",
    "SearchOutcome",
    "SearchRequest",
    "Settings",
    "build_registry",
]
