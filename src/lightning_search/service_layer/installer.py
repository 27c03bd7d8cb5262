"""Install and uninstall the engine: toolchain check, environment validation, build."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from pathlib import Path
import re

from lightning_search.config import Settings
from lightning_search.domain.errors import EnvironmentValidationError, ToolchainError
from lightning_search.runtime.supervisor import CommandRunner, EngineSupervisor, run_command


logger = logging.getLogger(__name__)

GO_MIN_VERSION = (1, 21)
_GO_VERSION = re.compile(r"go(\d+)\.(\d+)")

# Written to the env file on install when absent; existing values are never touched.
ENV_FILE_DEFAULTS: dict[str, str] = {
    "LIGHTNING_SEARCH_HOST": "127.0.0.1",
    "LIGHTNING_SEARCH_PORT": "8081",
    "LIGHTNING_SEARCH_DEFAULT_MODE": "engine",
    "LIGHTNING_SEARCH_FALLBACK_MODE": "embedded",
    "LIGHTNING_SEARCH_CPU_CORES": "1",
    "LIGHTNING_SEARCH_MAX_CONNECTIONS": "10",
    "LIGHTNING_SEARCH_CACHE_DURATION": "300",
    "LIGHTNING_SEARCH_RESULT_LIMIT": "1000",
}

NEXT_STEPS = (
    "Register your searchable entity types or list them in LIGHTNING_SEARCH_MODELS",
    "Run 'lightning-search index' to build the search indexes",
    "Run 'lightning-search start --daemon' to start the search service",
)


@dataclass(slots=True)
class InstallReport:
    go_version: tuple[int, int]
    binaries: list[Path] = field(default_factory=list)
    env_keys_added: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    downloaded_modules: bool = False


@dataclass(slots=True)
class UninstallReport:
    cancelled: bool = False
    was_running: bool = False
    removed: list[Path] = field(default_factory=list)


def parse_go_version(output: str) -> tuple[int, int] | None:
    """Extract ``(major, minor)`` from ``go version`` output."""
    match = _GO_VERSION.search(output)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def append_missing_env_defaults(env_file: Path, defaults: dict[str, str] = ENV_FILE_DEFAULTS) -> list[str]:
    """Append ``KEY=value`` lines for keys ``env_file`` does not define yet."""
    existing = env_file.read_text(encoding="utf-8") if env_file.exists() else ""
    defined = {
        line.split("=", 1)[0].strip()
        for line in existing.splitlines()
        if "=" in line and not line.lstrip().startswith("#")
    }
    missing = [key for key in defaults if key not in defined]
    if not missing:
        return []

    lines = [f"{key}={defaults[key]}" for key in missing]
    prefix = "" if not existing or existing.endswith("\n") else "\n"
    with env_file.open("a", encoding="utf-8") as handle:
        handle.write(prefix + "\n".join(lines) + "\n")
    return missing


class Installer:
    """Prepare a machine to run the engine, or remove what ``install`` produced."""

    def __init__(
        self,
        settings: Settings,
        supervisor: EngineSupervisor,
        *,
        runner: CommandRunner | None = None,
        env_file: Path | None = None,
    ) -> None:
        self.settings = settings
        self.supervisor = supervisor
        self.console = supervisor.console
        self._runner = runner or run_command
        self._env_file = env_file

    async def check_toolchain(self) -> tuple[int, int]:
        try:
            result = await self._runner(["go", "version"])
        except FileNotFoundError as exc:
            raise ToolchainError("Go 1.21+ is required but was not found; install it from https://go.dev/dl/") from exc

        version = parse_go_version(result.stdout) if result.exit_code == 0 else None
        if version is None:
            raise ToolchainError(f"Could not determine the Go version: {result.output or 'no output'}")
        if version < GO_MIN_VERSION:
            raise ToolchainError(
                f"Go {GO_MIN_VERSION[0]}.{GO_MIN_VERSION[1]}+ is required, found {version[0]}.{version[1]}"
            )
        return version

    def validate_environment(self) -> list[str]:
        """Raise for missing database settings and return non-fatal warnings."""
        missing = self.settings.missing_database_settings()
        if missing:
            raise EnvironmentValidationError(missing)

        warnings: list[str] = []
        if not self.settings.db_password and not self.settings.is_local_database():
            warnings.append(
                "DB_PASSWORD is not set, but the database host is not local; "
                "this is a security risk outside development"
            )
        return warnings

    async def install(self) -> InstallReport:
        self.console.info("Installing Lightning Search...")
        version = await self.check_toolchain()
        report = InstallReport(go_version=version)

        report.warnings = self.validate_environment()
        for warning in report.warnings:
            self.console.warning(warning)

        if self._env_file is not None:
            report.env_keys_added = append_missing_env_defaults(self._env_file)
            if report.env_keys_added:
                logger.info("Added %s to %s", ", ".join(report.env_keys_added), self._env_file)

        handle = self.supervisor.engine_handle()
        source_dir = handle.source_dir
        if not (source_dir / "go.mod").is_file():
            raise ToolchainError(f"Engine sources not found: {source_dir / 'go.mod'} is missing")

        if not (source_dir / "go.sum").is_file():
            self.console.warning("go.sum not found; downloading Go dependencies")
            await self._download_modules(source_dir)
            report.downloaded_modules = True

        self.console.info("Building the search service...")
        host = self.supervisor.host_target(handle.binary_base_name)
        report.binaries = await self.supervisor.compile(handle, [host])

        self.console.info("Lightning Search has been installed successfully!")
        self.console.info("Next steps:")
        for number, step in enumerate(NEXT_STEPS, start=1):
            self.console.info(f"{number}. {step}")
        return report

    async def _download_modules(self, source_dir: Path) -> None:
        try:
            result = await self._runner(["go", "mod", "download"], cwd=source_dir)
        except FileNotFoundError as exc:
            raise ToolchainError("Go is not installed or not on PATH") from exc
        if result.exit_code != 0:
            raise ToolchainError(f"Failed to download Go dependencies: {result.output}")

    async def uninstall(self, *, force: bool = False, confirm: Callable[[str], bool] | None = None) -> UninstallReport:
        """Stop the engine and delete its binaries for every default target.

        Without ``force`` the ``confirm`` callback must approve the removal.
        Environment files are left untouched.
        """
        if not force and (confirm is None or not confirm("This will remove all Lightning Search binaries. Continue?")):
            self.console.info("Operation cancelled.")
            return UninstallReport(cancelled=True)

        self.console.info("Uninstalling Lightning Search...")
        handle = self.supervisor.engine_handle()
        stopped = await self.supervisor.stop(handle)
        report = UninstallReport(was_running=stopped.was_running)

        for target in self.supervisor.targets_for(handle):
            path = handle.binary_path(target)
            if path.exists():
                path.unlink()
                report.removed.append(path)
                self.console.info(f"Removed {path}")

        self.console.info("Lightning Search has been uninstalled successfully!")
        self.console.info("Note: environment variables in .env have been left intact.")
        return report
