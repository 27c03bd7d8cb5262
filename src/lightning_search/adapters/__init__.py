"""Adapters layer - infrastructure implementations.

Following Cosmic Python Chapter 2 (Repository Pattern):
- Entity store repositories for the embedded search and the reconciler
- The HTTP client speaking the external engine's protocol
"""

from lightning_search.adapters.engine_client import EngineClient, EngineRequestError
from lightning_search.adapters.entity_store import AbstractEntityStore, InMemoryEntityStore
from lightning_search.adapters.sqlite_entity_store import SqliteEntityStore


__all__ = [
    "AbstractEntityStore",
    "EngineClient",
    "EngineRequestError",
    "InMemoryEntityStore",
    "SqliteEntityStore",
]
