"""Runtime helpers for supervising the external engine and streaming its output."""

from lightning_search.runtime.console import LineSplitter, ProgressConsole
from lightning_search.runtime.supervisor import (
    CommandResult,
    EngineHealth,
    EngineSupervisor,
    StartResult,
    StopResult,
    run_command,
    spawn_detached,
)


__all__ = [
    "CommandResult",
    "EngineHealth",
    "EngineSupervisor",
    "LineSplitter",
    "ProgressConsole",
    "StartResult",
    "StopResult",
    "run_command",
    "spawn_detached",
]
