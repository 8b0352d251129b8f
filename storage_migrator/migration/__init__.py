from .engine import (
    MigrationEngine,
    MigrationMode,
    MigrationRequest,
    MigrationResult,
    MigrationState,
)
from .enumerator import ObjectEnumerator
from .layout import (
    ArchiveLayout,
    InferredLayout,
    analyze_layout,
    detect_buckets,
    infer_layout,
)
from .plan import MigrationPlan, ObjectEntry
from .progress import (
    LogEntry,
    OutcomeKind,
    ProgressCounters,
    RunContext,
    Severity,
    TransferOutcome,
)
from .transfer import BucketStatus, TransferExecutor

__all__ = [
    "MigrationEngine",
    "MigrationMode",
    "MigrationRequest",
    "MigrationResult",
    "MigrationState",
    "ObjectEnumerator",
    "ArchiveLayout",
    "InferredLayout",
    "analyze_layout",
    "detect_buckets",
    "infer_layout",
    "MigrationPlan",
    "ObjectEntry",
    "LogEntry",
    "OutcomeKind",
    "ProgressCounters",
    "RunContext",
    "Severity",
    "TransferOutcome",
    "BucketStatus",
    "TransferExecutor",
]
