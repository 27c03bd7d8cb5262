"""Populate the entity store with generated records using the seeder binary."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from time import perf_counter

from lightning_search.runtime.supervisor import EngineSupervisor


logger = logging.getLogger(__name__)

DEFAULT_SEED_COUNT = 1_000_000


@dataclass(slots=True)
class SeedReport:
    count: int
    exit_code: int | None
    duration_seconds: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def rate(self) -> float:
        """Records per second; zero when nothing measurable happened."""
        if self.duration_seconds <= 0:
            return 0.0
        return self.count / self.duration_seconds


class Seeder:
    def __init__(self, supervisor: EngineSupervisor) -> None:
        self.supervisor = supervisor
        self.console = supervisor.console

    async def seed(self, count: int = DEFAULT_SEED_COUNT, *, skip_compile: bool = False) -> SeedReport:
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")

        handle = self.supervisor.seeder_handle()
        if not skip_compile:
            self.console.info("Compiling seeder binaries...")
            await self.supervisor.compile(handle)

        self.console.info(f"Starting to seed {count} records...")
        start = perf_counter()
        result = await self.supervisor.start(handle, args=[str(count)])
        report = SeedReport(count=count, exit_code=result.exit_code, duration_seconds=perf_counter() - start)

        if not report.ok:
            self.console.error(f"Seeder failed with exit code {report.exit_code}")
            return report

        self.console.info(f"Seeder finished successfully in {report.duration_seconds:.2f} seconds.")
        self.console.info(f"Average rate: {report.rate:.2f} records/second")
        logger.info("Seeded %d records in %.2fs", count, report.duration_seconds)
        return report
