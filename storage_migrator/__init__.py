"""Storage Migrator - Move buckets and objects between object-store instances."""

__version__ = "0.1.0"

from .config import ConfigManager
from .migration.engine import (
    MigrationEngine,
    MigrationMode,
    MigrationRequest,
    MigrationResult,
    MigrationState,
)
from .migration.layout import detect_buckets, infer_layout
from .migration.progress import RunContext, Severity, TransferOutcome
from .clients.archive import read_archive
from .clients.object_store import ObjectStoreClient, StoreCredentials
from .utils.media import resolve_content_type

__all__ = [
    "ConfigManager",
    "MigrationEngine",
    "MigrationMode",
    "MigrationRequest",
    "MigrationResult",
    "MigrationState",
    "detect_buckets",
    "infer_layout",
    "RunContext",
    "Severity",
    "TransferOutcome",
    "read_archive",
    "ObjectStoreClient",
    "StoreCredentials",
    "resolve_content_type",
]
