"""Build, run and stop the external engine binary.

The supervisor never holds process state of its own: every operation takes the
caller's ``ProcessHandle`` and records transitions and events on it.
"""

from __future__ import annotations

import asyncio
from asyncio.subprocess import PIPE
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import asdict, dataclass
import logging
import os
from pathlib import Path
import re
import subprocess
from typing import Any

from lightning_search.adapters.engine_client import EngineClient, EngineRequestError
from lightning_search.config import Settings
from lightning_search.domain.errors import (
    BinaryNotFoundError,
    CompileFailureError,
    EngineStartError,
    ProcessStopError,
    ToolchainError,
)
from lightning_search.domain.process import PlatformTarget, ProcessHandle, ProcessState, default_targets
from lightning_search.observability import ENGINE_PROCESS_EVENTS
from lightning_search.runtime.console import LineSplitter, ProgressConsole


logger = logging.getLogger(__name__)

_READ_CHUNK = 4096

# pkill: 1 means no process matched. taskkill reports 128 for the same case.
_NOT_RUNNING_CODES = {"posix": frozenset({1}), "nt": frozenset({128})}
_ERE_SPECIAL = re.compile(r"[.\[\]()*+?{}|^$\\]")


@dataclass(slots=True)
class CommandResult:
    """Exit status and captured output of a finished command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        return (self.stderr.strip() or self.stdout.strip())


@dataclass(slots=True)
class StartResult:
    pid: int | None
    daemon: bool
    exit_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code in (None, 0)


@dataclass(slots=True)
class StopResult:
    was_running: bool
    detail: str = ""


@dataclass(slots=True)
class EngineHealth:
    healthy: bool
    url: str
    detail: str = ""
    server_info: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


CommandRunner = Callable[..., Awaitable[CommandResult]]
Spawner = Callable[..., int]


async def run_command(
    cmd: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run ``cmd`` to completion and capture its output.

    Raises ``FileNotFoundError`` when the executable does not exist.
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        stdout=PIPE,
        stderr=PIPE,
    )
    stdout, stderr = await process.communicate()
    return CommandResult(
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


def spawn_detached(cmd: Sequence[str], *, env: Mapping[str, str], cwd: Path | None = None) -> int:
    """Start ``cmd`` outside this process's session and return its pid.

    The child keeps running after the interpreter exits.
    """
    kwargs: dict[str, Any] = {
        "env": dict(env),
        "cwd": str(cwd) if cwd is not None else None,
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if os.name == "nt":
        kwargs["creationflags"] = subprocess.CREATE_NEW_CONSOLE | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    process = subprocess.Popen(list(cmd), **kwargs)  # noqa: S603
    return process.pid


class EngineSupervisor:
    """Compile, start, stop and health-check engine binaries."""

    def __init__(
        self,
        settings: Settings,
        *,
        console: ProgressConsole | None = None,
        runner: CommandRunner | None = None,
        spawner: Spawner | None = None,
        engine_client: EngineClient | None = None,
        host: PlatformTarget | None = None,
    ) -> None:
        self.settings = settings
        self.console = console or ProgressConsole(progress_marker=settings.progress_marker)
        self._runner = runner or run_command
        self._spawner = spawner or spawn_detached
        self._engine_client = engine_client
        self._host = host

    def handle_for(self, binary_base_name: str, source_dir: Path) -> ProcessHandle:
        return ProcessHandle.create(
            binary_base_name,
            binary_dir=self.settings.binary_dir,
            source_dir=source_dir,
            host=self.host_target(binary_base_name),
        )

    def engine_handle(self) -> ProcessHandle:
        return self.handle_for(self.settings.engine_binary, self.settings.engine_source_dir)

    def seeder_handle(self) -> ProcessHandle:
        return self.handle_for(self.settings.seeder_binary, self.settings.seeder_source_dir)

    def host_target(self, binary_base_name: str) -> PlatformTarget:
        if self._host is None:
            return PlatformTarget.host(binary_base_name)
        return PlatformTarget.for_binary(self._host.os, self._host.arch, binary_base_name)

    def targets_for(self, handle: ProcessHandle) -> tuple[PlatformTarget, ...]:
        return default_targets(
            handle.binary_base_name,
            deployment_os=self.settings.deployment_os,
            deployment_arch=self.settings.deployment_arch,
            host=self.host_target(handle.binary_base_name),
        )

    # --- compile ---

    async def compile(
        self,
        handle: ProcessHandle,
        targets: Sequence[PlatformTarget] | None = None,
    ) -> list[Path]:
        """Build one binary per target; the first failure aborts the rest.

        Binaries built before the failing target are left in place.
        """
        targets = list(targets) if targets is not None else list(self.targets_for(handle))
        handle.binary_dir.mkdir(parents=True, exist_ok=True)
        handle.mark_building()

        built: list[Path] = []
        for target in targets:
            output = handle.binary_path(target).resolve()
            cmd = ["go", "build", "-o", str(output), "."]
            logger.info("Compiling %s for %s", handle.binary_base_name, target)
            try:
                result = await self._runner(cmd, cwd=handle.source_dir, env=self._compile_env(target))
            except FileNotFoundError as exc:
                handle.mark_failed(reason="go toolchain not found")
                self._record(handle, "compile_failed")
                raise ToolchainError("Go is not installed or not on PATH") from exc

            if result.exit_code != 0:
                detail = result.output
                for line in detail.splitlines():
                    self.console.diagnostic(line)
                handle.mark_failed(reason=f"compile failed for {target}")
                self._record(handle, "compile_failed")
                raise CompileFailureError(target, result.exit_code, detail)

            self.console.info(f"Compiled {output.name} for {target}")
            built.append(output)

        handle.mark_built()
        self._record(handle, "compiled")
        return built

    def _compile_env(self, target: PlatformTarget) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.settings.engine_environment())
        env["GOOS"] = target.os
        env["GOARCH"] = target.arch
        return env

    # --- start ---

    async def start(
        self,
        handle: ProcessHandle,
        *,
        daemon: bool = False,
        args: Sequence[str] = (),
    ) -> StartResult:
        """Start the host binary attached (streamed, blocking) or as a daemon."""
        host = self.host_target(handle.binary_base_name)
        binary = handle.binary_path(host)
        if not binary.is_file():
            raise BinaryNotFoundError(binary)
        handle.adopt_binary(host)

        cmd = [str(binary.resolve()), *args]
        env = self._start_env()
        handle.mark_starting()
        if daemon:
            return self._start_daemon(handle, cmd, env)
        return await self._start_attached(handle, cmd, env)

    def _start_env(self) -> dict[str, str]:
        env = self.settings.engine_environment()
        if os.name == "nt" and "SYSTEMROOT" in os.environ:
            env["SYSTEMROOT"] = os.environ["SYSTEMROOT"]
        return env

    def _start_daemon(self, handle: ProcessHandle, cmd: list[str], env: dict[str, str]) -> StartResult:
        try:
            pid = self._spawner(cmd, env=env, cwd=None)
        except OSError as exc:
            handle.mark_failed(reason=str(exc))
            self._record(handle, "start_failed")
            raise EngineStartError(f"Failed to start {handle.binary_base_name}: {exc}") from exc

        handle.mark_running(pid, daemon=True)
        self._record(handle, "started")
        logger.info("Started %s in background (pid %s)", handle.binary_base_name, pid)
        return StartResult(pid=pid, daemon=True)

    async def _start_attached(self, handle: ProcessHandle, cmd: list[str], env: dict[str, str]) -> StartResult:
        try:
            process = await asyncio.create_subprocess_exec(*cmd, env=env, stdout=PIPE, stderr=PIPE)
        except OSError as exc:
            handle.mark_failed(reason=str(exc))
            self._record(handle, "start_failed")
            raise EngineStartError(f"Failed to start {handle.binary_base_name}: {exc}") from exc

        handle.mark_running(process.pid, daemon=False)
        self._record(handle, "started")
        try:
            await asyncio.gather(
                _pump(process.stdout, self.console.primary),
                _pump(process.stderr, self.console.diagnostic),
            )
            exit_code = await process.wait()
        finally:
            self.console.finish()

        handle.mark_exited(exit_code)
        self._record(handle, "exited" if exit_code == 0 else "failed")
        logger.info("%s exited with status %s", handle.binary_base_name, exit_code)
        return StartResult(pid=process.pid, daemon=False, exit_code=exit_code)

    # --- stop ---

    async def stop(self, handle: ProcessHandle) -> StopResult:
        """Terminate every process running the binary; succeeds when none is running."""
        host = self.host_target(handle.binary_base_name)
        binary_name = host.binary_name
        cmd = _stop_command(handle.binary_path(host).resolve())

        previous = handle.state
        if handle.can_transition_to(ProcessState.STOPPING):
            handle.mark_stopping()
        try:
            result = await self._runner(cmd)
        except FileNotFoundError as exc:
            handle.abort_stopping(previous)
            raise ProcessStopError(binary_name, None, f"{cmd[0]} not available") from exc

        if result.exit_code == 0:
            _settle_stopped(handle)
            self._record(handle, "stopped")
            logger.info("Stopped %s", binary_name)
            return StopResult(was_running=True)

        if result.exit_code in _NOT_RUNNING_CODES.get(os.name, frozenset()):
            _settle_stopped(handle)
            self.console.warning(f"{binary_name} was not running")
            return StopResult(was_running=False, detail="no matching process")

        handle.abort_stopping(previous)
        raise ProcessStopError(binary_name, result.exit_code, result.output)

    # --- health ---

    async def health(self) -> EngineHealth:
        """Ping the engine; failures are reported, never raised."""
        url = self.settings.service_url
        if self._engine_client is None:
            async with EngineClient(url, timeout=self.settings.service_timeout) as client:
                return await _ping(client, url)
        return await _ping(self._engine_client, url)

    def _record(self, handle: ProcessHandle, event: str) -> None:
        ENGINE_PROCESS_EVENTS.labels(binary=handle.binary_base_name, event=event).inc()


def _stop_command(binary: Path) -> list[str]:
    # The console script shares the engine binary name; match by path and exclude this process tree.
    if os.name == "nt":
        return [
            "taskkill",
            "/F",
            "/IM",
            binary.name,
            "/FI",
            f"PID ne {os.getpid()}",
            "/FI",
            f"PID ne {os.getppid()}",
        ]
    return ["pkill", "-f", "^" + _ERE_SPECIAL.sub(r"\\\g<0>", str(binary))]


def _settle_stopped(handle: ProcessHandle) -> None:
    if handle.can_transition_to(ProcessState.STOPPED):
        handle.mark_stopped()


async def _ping(client: EngineClient, url: str) -> EngineHealth:
    try:
        payload = await client.ping()
    except EngineRequestError as exc:
        return EngineHealth(healthy=False, url=url, detail=exc.message)

    status = payload.get("status")
    server_info = payload.get("server_info")
    return EngineHealth(
        healthy=status == "ok",
        url=url,
        detail="" if status == "ok" else f"unexpected status {status!r}",
        server_info=server_info if isinstance(server_info, dict) else None,
    )


async def _pump(stream: asyncio.StreamReader | None, emit: Callable[[str], None]) -> None:
    if stream is None:
        return
    splitter = LineSplitter()
    while chunk := await stream.read(_READ_CHUNK):
        for line in splitter.feed(chunk):
            emit(line)
    for line in splitter.flush():
        emit(line)

