"""Error taxonomy shared by the dispatcher, the store adapters and the supervisor."""

from __future__ import annotations


class LightningSearchError(RuntimeError):
    """Base error for every failure raised by the search core."""


class IndexDescriptorError(LightningSearchError):
    """Raised when an entity type cannot be resolved into a usable descriptor."""


class SearchBackendUnavailableError(LightningSearchError):
    """Raised when the engine cannot answer and no fallback is configured."""

    def __init__(self, table: str, message: str, *, status_code: int | None = None) -> None:
        self.table = table
        self.message = message
        self.status_code = status_code
        status = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"Search engine unavailable for table '{table}'{status}: {message}")


class StoreError(LightningSearchError):
    """Raised when the entity store rejects a query."""

    def __init__(self, table: str, message: str) -> None:
        self.table = table
        self.message = message
        super().__init__(f"Entity store query on '{table}' failed: {message}")


class BinaryNotFoundError(LightningSearchError):
    """Raised when the engine binary for the host platform has not been built."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"Search service binary not found at {path}. Run 'lightning-search install' first.")


class CompileFailureError(LightningSearchError):
    """Raised when building a binary for one platform target fails."""

    def __init__(self, target: object, exit_code: int | None, detail: str = "") -> None:
        self.target = target
        self.exit_code = exit_code
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Failed to compile binary for {target} (exit code {exit_code}){suffix}")


class ToolchainError(LightningSearchError):
    """Raised when the build toolchain is missing or too old."""


class EnvironmentValidationError(LightningSearchError):
    """Raised when required database settings are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")


class EngineStartError(LightningSearchError):
    """Raised when the engine process cannot be spawned."""


class ProcessStopError(LightningSearchError):
    """Raised when stopping the engine fails for a reason other than "not running"."""

    def __init__(self, binary_name: str, exit_code: int | None, detail: str = "") -> None:
        self.binary_name = binary_name
        self.exit_code = exit_code
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Failed to stop '{binary_name}' (exit code {exit_code}){suffix}")


class InvalidStateTransitionError(LightningSearchError):
    """Raised when a process handle is asked to move to a state it cannot reach."""
