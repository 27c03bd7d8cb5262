"""Command line entry point: ``lightning-search <command>``."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import sys

import orjson
from pydantic import ValidationError

from lightning_search.adapters.engine_client import EngineClient
from lightning_search.adapters.sqlite_entity_store import SqliteEntityStore
from lightning_search.config import Settings
from lightning_search.descriptors import IndexDescriptorResolver, build_registry
from lightning_search.domain.errors import LightningSearchError
from lightning_search.domain.search import SearchMode, SearchRequest
from lightning_search.observability import configure_logging
from lightning_search.runtime.console import ProgressConsole
from lightning_search.runtime.supervisor import EngineSupervisor
from lightning_search.service_layer.dispatcher import SearchDispatcher
from lightning_search.service_layer.indexer import Indexer
from lightning_search.service_layer.installer import Installer
from lightning_search.service_layer.seeder import DEFAULT_SEED_COUNT, Seeder


logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lightning-search",
        description="Build, run and query the Lightning Search engine",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Environment file read for settings and updated by install (default: .env)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("install", help="Check the Go toolchain and build the search service")

    start = subparsers.add_parser("start", help="Start the search service")
    start.add_argument("--daemon", action="store_true", help="Run in the background and return immediately")

    subparsers.add_parser("stop", help="Stop the search service")

    uninstall = subparsers.add_parser("uninstall", help="Stop the service and remove its binaries")
    uninstall.add_argument("--force", action="store_true", help="Do not ask for confirmation")

    index = subparsers.add_parser("index", help="Rebuild full-text indexes")
    index.add_argument("entity_type", nargs="?", help="Only index this entity type")

    seed = subparsers.add_parser("seed", help="Seed the database with generated records")
    seed.add_argument(
        "count",
        nargs="?",
        type=_positive_int,
        default=DEFAULT_SEED_COUNT,
        help=f"Number of records to seed (default: {DEFAULT_SEED_COUNT})",
    )
    seed.add_argument("--skip-compile", action="store_true", help="Reuse the existing seeder binaries")

    search = subparsers.add_parser("search", help="Run one search and print matching rows as JSON lines")
    search.add_argument("entity_type")
    search.add_argument("query")
    search.add_argument("--mode", type=SearchMode.parse, help="engine or embedded (aliases: go, eloquent)")

    subparsers.add_parser("health", help="Ping the search service")
    return parser


def _confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _print_json(payload: object) -> None:
    sys.stdout.write(orjson.dumps(payload, default=str).decode() + "\n")


async def _run_install(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    await Installer(settings, supervisor, env_file=args.env_file).install()
    return 0


async def _run_uninstall(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    await Installer(settings, supervisor).uninstall(force=args.force, confirm=_confirm)
    return 0


async def _run_start(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    handle = supervisor.engine_handle()
    supervisor.console.info(f"Starting search service on {settings.service_url}...")
    result = await supervisor.start(handle, daemon=args.daemon)
    if args.daemon:
        supervisor.console.info(f"Search service started in background (pid {result.pid})")
        return 0
    return result.exit_code or 0


async def _run_stop(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    result = await supervisor.stop(supervisor.engine_handle())
    if result.was_running:
        supervisor.console.info("Search service stopped")
    return 0


async def _run_index(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    resolver = IndexDescriptorResolver(settings, build_registry(settings))
    store = SqliteEntityStore(settings.store_path)
    report = await Indexer(resolver, store, console=supervisor.console).index(
        [args.entity_type] if args.entity_type else None
    )
    return 0 if report.ok else 1


async def _run_seed(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    report = await Seeder(supervisor).seed(args.count, skip_compile=args.skip_compile)
    return 0 if report.ok else 1


async def _run_search(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    resolver = IndexDescriptorResolver(settings, build_registry(settings))
    descriptor = resolver.resolve(args.entity_type)
    request = SearchRequest(entity_type=args.entity_type, query_text=args.query, mode=args.mode)

    async with EngineClient(settings.service_url, timeout=settings.service_timeout) as client:
        dispatcher = SearchDispatcher(settings, client, SqliteEntityStore(settings.store_path))
        outcome = await dispatcher.dispatch(request, descriptor)

    for entity in outcome.unwrap():
        _print_json(entity)
    logger.info(
        "%d result(s) from %s in %.1fms%s",
        len(outcome.entities),
        outcome.backend.value if outcome.backend else "-",
        outcome.elapsed_millis,
        " (fallback)" if outcome.fell_back else "",
    )
    return 0


async def _run_health(settings: Settings, supervisor: EngineSupervisor, args: argparse.Namespace) -> int:
    health = await supervisor.health()
    _print_json(health.to_dict())
    return 0 if health.healthy else 1


_COMMANDS = {
    "install": _run_install,
    "uninstall": _run_uninstall,
    "start": _run_start,
    "stop": _run_stop,
    "index": _run_index,
    "seed": _run_seed,
    "search": _run_search,
    "health": _run_health,
}


def main(
    argv: Sequence[str] | None = None,
    *,
    settings: Settings | None = None,
    supervisor: EngineSupervisor | None = None,
) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    if settings is None:
        try:
            settings = Settings(_env_file=args.env_file)
        except ValidationError as exc:
            sys.stderr.write(f"Invalid configuration:\n{exc}\n")
            return 1

    configure_logging(settings.log_level, settings.log_json)
    if supervisor is None:
        console = ProgressConsole(progress_marker=settings.progress_marker)
        supervisor = EngineSupervisor(settings, console=console)

    try:
        return asyncio.run(_COMMANDS[args.command](settings, supervisor, args))
    except LightningSearchError as exc:
        supervisor.console.error(str(exc))
        logger.debug("Command %s failed", args.command, exc_info=True)
        return 1
    except KeyboardInterrupt:
        supervisor.console.finish()
        return 130


if __name__ == "__main__":
    sys.exit(main())
