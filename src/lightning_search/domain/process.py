"""Domain model for the external engine process.

``ProcessHandle`` is an aggregate owned by whoever drives the supervisor. It is
passed into every supervisor operation, so several engines (a test instance and
a production one, or the engine and the seeder) can be tracked side by side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
import platform
from typing import Any

from lightning_search.domain.errors import InvalidStateTransitionError


_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
}


class ProcessState(str, Enum):
    """Lifecycle of an engine binary and its OS process."""

    NOT_BUILT = "not_built"
    BUILDING = "building"
    BUILT = "built"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in {ProcessState.STARTING, ProcessState.RUNNING, ProcessState.STOPPING}


_ALLOWED_TRANSITIONS: dict[ProcessState, frozenset[ProcessState]] = {
    ProcessState.NOT_BUILT: frozenset({ProcessState.BUILDING}),
    ProcessState.BUILDING: frozenset({ProcessState.BUILT, ProcessState.FAILED}),
    ProcessState.BUILT: frozenset({ProcessState.BUILDING, ProcessState.STARTING, ProcessState.STOPPING}),
    ProcessState.STARTING: frozenset({ProcessState.RUNNING, ProcessState.FAILED}),
    ProcessState.RUNNING: frozenset({ProcessState.STOPPING, ProcessState.STOPPED, ProcessState.FAILED}),
    ProcessState.STOPPING: frozenset({ProcessState.STOPPED}),
    ProcessState.STOPPED: frozenset({ProcessState.BUILDING, ProcessState.STARTING, ProcessState.STOPPING}),
    ProcessState.FAILED: frozenset({ProcessState.BUILDING, ProcessState.STARTING, ProcessState.STOPPING}),
}


def normalize_os(name: str) -> str:
    lowered = name.strip().lower()
    if lowered.startswith("win"):
        return "windows"
    if lowered == "macos":
        return "darwin"
    return lowered


def normalize_arch(name: str) -> str:
    lowered = name.strip().lower()
    return _ARCH_ALIASES.get(lowered, lowered)


@dataclass(slots=True, frozen=True)
class PlatformTarget:
    """Operating system / architecture pair a binary is compiled for."""

    os: str
    arch: str
    binary_name: str

    @classmethod
    def for_binary(cls, os_name: str, arch: str, base_name: str) -> PlatformTarget:
        os_name = normalize_os(os_name)
        if os_name == "windows":
            binary_name = f"{base_name}.exe"
        elif os_name == "linux":
            binary_name = base_name
        else:
            binary_name = f"{base_name}-{os_name}"
        return cls(os=os_name, arch=normalize_arch(arch), binary_name=binary_name)

    @classmethod
    def host(cls, base_name: str) -> PlatformTarget:
        return cls.for_binary(platform.system(), platform.machine(), base_name)

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


def default_targets(
    base_name: str,
    *,
    deployment_os: str = "linux",
    deployment_arch: str = "amd64",
    host: PlatformTarget | None = None,
) -> tuple[PlatformTarget, ...]:
    """Return the build matrix: the host platform plus the deployment platform."""
    host_target = host or PlatformTarget.host(base_name)
    deployment = PlatformTarget.for_binary(deployment_os, deployment_arch, base_name)
    if deployment == host_target:
        return (host_target,)
    return (host_target, deployment)


# --- Domain events ---


@dataclass(slots=True)
class ProcessEvent:
    binary_name: str
    occurred_at: datetime


@dataclass(slots=True)
class StateChanged(ProcessEvent):
    previous_state: str
    new_state: str


@dataclass(slots=True)
class ProcessSpawned(ProcessEvent):
    pid: int
    daemon: bool


@dataclass(slots=True)
class ProcessExited(ProcessEvent):
    exit_code: int


@dataclass(slots=True)
class ProcessFailed(ProcessEvent):
    reason: str


@dataclass
class ProcessHandle:
    """Aggregate root tracking one engine binary and the process started from it."""

    binary_base_name: str
    binary_dir: Path
    source_dir: Path
    state: ProcessState = ProcessState.NOT_BUILT
    pid: int | None = None
    exit_code: int | None = None
    failure_reason: str | None = None
    events: list[ProcessEvent] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        binary_base_name: str,
        *,
        binary_dir: Path | str,
        source_dir: Path | str,
        host: PlatformTarget | None = None,
    ) -> ProcessHandle:
        handle = cls(
            binary_base_name=binary_base_name,
            binary_dir=Path(binary_dir),
            source_dir=Path(source_dir),
        )
        target = host or PlatformTarget.host(binary_base_name)
        if handle.binary_path(target).exists():
            handle.state = ProcessState.BUILT
        return handle

    def binary_path(self, target: PlatformTarget) -> Path:
        return self.binary_dir / target.binary_name

    def adopt_binary(self, target: PlatformTarget) -> bool:
        """Move a ``not_built`` handle to ``built`` when the binary appeared on disk."""
        if self.state != ProcessState.NOT_BUILT or not self.binary_path(target).exists():
            return False
        self.state = ProcessState.BUILT
        self._record_event(
            StateChanged(
                binary_name=self.binary_base_name,
                occurred_at=_now(),
                previous_state=ProcessState.NOT_BUILT.value,
                new_state=ProcessState.BUILT.value,
            )
        )
        return True

    def mark_building(self) -> None:
        self._transition_to(ProcessState.BUILDING)

    def mark_built(self) -> None:
        self._transition_to(ProcessState.BUILT)

    def mark_starting(self) -> None:
        self.exit_code = None
        self.failure_reason = None
        self._transition_to(ProcessState.STARTING)

    def mark_running(self, pid: int, *, daemon: bool) -> None:
        self.pid = pid
        self._transition_to(ProcessState.RUNNING)
        self._record_event(
            ProcessSpawned(binary_name=self.binary_base_name, occurred_at=_now(), pid=pid, daemon=daemon)
        )

    def mark_exited(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self._record_event(ProcessExited(binary_name=self.binary_base_name, occurred_at=_now(), exit_code=exit_code))
        if exit_code == 0:
            self._transition_to(ProcessState.STOPPED)
        else:
            self.mark_failed(reason=f"process exited with status {exit_code}")
        self.pid = None

    def mark_stopping(self) -> None:
        self._transition_to(ProcessState.STOPPING)

    def abort_stopping(self, previous: ProcessState) -> None:
        """Return a ``stopping`` handle to ``previous`` after a stop attempt failed."""
        if self.state != ProcessState.STOPPING or previous == ProcessState.STOPPING:
            return
        self.state = previous
        self._record_event(
            StateChanged(
                binary_name=self.binary_base_name,
                occurred_at=_now(),
                previous_state=ProcessState.STOPPING.value,
                new_state=previous.value,
            )
        )

    def mark_stopped(self) -> None:
        self._transition_to(ProcessState.STOPPED)
        self.pid = None

    def mark_failed(self, *, reason: str) -> None:
        self.failure_reason = reason
        self._transition_to(ProcessState.FAILED)
        self._record_event(ProcessFailed(binary_name=self.binary_base_name, occurred_at=_now(), reason=reason))

    def can_transition_to(self, new_state: ProcessState) -> bool:
        return new_state == self.state or new_state in _ALLOWED_TRANSITIONS[self.state]

    def to_dict(self) -> dict[str, Any]:
        return {
            "binary": self.binary_base_name,
            "binary_dir": str(self.binary_dir),
            "state": self.state.value,
            "pid": self.pid,
            "exit_code": self.exit_code,
            "failure_reason": self.failure_reason,
        }

    def _transition_to(self, new_state: ProcessState) -> None:
        if self.state == new_state:
            return
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(
                f"Cannot move '{self.binary_base_name}' from {self.state.value} to {new_state.value}"
            )
        previous = self.state
        self.state = new_state
        self._record_event(
            StateChanged(
                binary_name=self.binary_base_name,
                occurred_at=_now(),
                previous_state=previous.value,
                new_state=new_state.value,
            )
        )

    def _record_event(self, event: ProcessEvent) -> None:
        self.events.append(event)


def _now() -> datetime:
    return datetime.now(timezone.utc)
