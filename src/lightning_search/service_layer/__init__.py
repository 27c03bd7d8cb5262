"""Service layer - search dispatch and the install/index/seed use cases.

- The dispatcher and reconciler answer search requests
- Installer, Indexer and Seeder drive the engine supervisor and the entity store
"""

from .dispatcher import SearchDispatcher
from .indexer import Indexer, IndexReport
from .installer import Installer, InstallReport, UninstallReport
from .reconciler import ResultReconciler
from .seeder import SeedReport, Seeder


__all__ = [
    "IndexReport",
    "Indexer",
    "InstallReport",
    "Installer",
    "ResultReconciler",
    "SearchDispatcher",
    "SeedReport",
    "Seeder",
    "UninstallReport",
]
