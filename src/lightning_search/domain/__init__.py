"""Domain layer - search value objects, entity types and the engine process aggregate.

No dependencies on infrastructure: no HTTP clients, no database drivers, no
subprocess handling.
"""

from lightning_search.domain.entities import EntityRegistry, EntityType
from lightning_search.domain.errors import (
    BinaryNotFoundError,
    CompileFailureError,
    EngineStartError,
    EnvironmentValidationError,
    IndexDescriptorError,
    InvalidStateTransitionError,
    LightningSearchError,
    ProcessStopError,
    SearchBackendUnavailableError,
    StoreError,
    ToolchainError,
)
from lightning_search.domain.process import (
    PlatformTarget,
    ProcessEvent,
    ProcessExited,
    ProcessFailed,
    ProcessHandle,
    ProcessSpawned,
    ProcessState,
    StateChanged,
    default_targets,
)
from lightning_search.domain.search import (
    EngineQueryResult,
    EntityId,
    IndexDescriptor,
    SearchMode,
    SearchOutcome,
    SearchRequest,
    entity_id_key,
)


__all__ = [
    "BinaryNotFoundError",
    "CompileFailureError",
    "EngineQueryResult",
    "EngineStartError",
    "EnvironmentValidationError",
    "EntityId",
    "EntityRegistry",
    "EntityType",
    "IndexDescriptor",
    "IndexDescriptorError",
    "InvalidStateTransitionError",
    "LightningSearchError",
    "PlatformTarget",
    "ProcessEvent",
    "ProcessExited",
    "ProcessFailed",
    "ProcessHandle",
    "ProcessSpawned",
    "ProcessState",
    "ProcessStopError",
    "SearchBackendUnavailableError",
    "SearchMode",
    "SearchOutcome",
    "SearchRequest",
    "StateChanged",
    "StoreError",
    "ToolchainError",
    "default_targets",
    "entity_id_key",
]
