import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Severity(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    message: str
    severity: Severity
    timestamp: datetime


class OutcomeKind(Enum):
    MIGRATED = "migrated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferOutcome:
    kind: OutcomeKind
    reason: Optional[str] = None

    @classmethod
    def migrated(cls) -> "TransferOutcome":
        return cls(OutcomeKind.MIGRATED)

    @classmethod
    def skipped(cls, reason: str) -> "TransferOutcome":
        return cls(OutcomeKind.SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> "TransferOutcome":
        return cls(OutcomeKind.FAILED, reason)


@dataclass
class ProgressCounters:
    processed: int = 0
    total: int = 0

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(100 * self.processed / self.total)


@dataclass
class OutcomeSummary:
    migrated: int = 0
    skipped: int = 0
    failed: int = 0


def _log_entry_to_dict(entry: LogEntry) -> Dict[str, Any]:
    return {
        "message": entry.message,
        "severity": entry.severity.value,
        "timestamp": entry.timestamp.isoformat(),
    }


class RunContext:
    """Counters and audit log owned by a single migration run."""

    def __init__(
        self,
        on_progress: Optional[Callable[[ProgressCounters], None]] = None,
        on_log: Optional[Callable[[LogEntry], None]] = None,
    ) -> None:
        self._counters = ProgressCounters()
        self._entries: List[LogEntry] = []
        self._summary = OutcomeSummary()
        self._on_progress = on_progress
        self._on_log = on_log

    @property
    def counters(self) -> ProgressCounters:
        return ProgressCounters(self._counters.processed, self._counters.total)

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def log(self, message: str, severity: Severity = Severity.INFO) -> LogEntry:
        entry = LogEntry(
            message=message,
            severity=severity,
            timestamp=datetime.now(timezone.utc),
        )
        self._entries.append(entry)
        logger.log(_LOG_LEVELS[severity], message)
        if self._on_log:
            self._on_log(entry)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.log(message, Severity.INFO)

    def success(self, message: str) -> LogEntry:
        return self.log(message, Severity.SUCCESS)

    def warning(self, message: str) -> LogEntry:
        return self.log(message, Severity.WARNING)

    def error(self, message: str) -> LogEntry:
        return self.log(message, Severity.ERROR)

    def add_total(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"Cannot add a negative total: {count}")
        self._counters.total += count
        self._notify_progress()

    def record(self, outcome: TransferOutcome) -> None:
        if self._counters.processed >= self._counters.total:
            raise RuntimeError(
                f"Outcome recorded beyond total ({self._counters.total}); "
                "call add_total() before transferring"
            )
        self._counters.processed += 1
        attr = outcome.kind.value
        setattr(self._summary, attr, getattr(self._summary, attr) + 1)
        self._notify_progress()

    def get_summary(self) -> OutcomeSummary:
        return OutcomeSummary(
            migrated=self._summary.migrated,
            skipped=self._summary.skipped,
            failed=self._summary.failed,
        )

    def get_entries_by_severity(self, severity: Severity) -> List[LogEntry]:
        return [e for e in self._entries if e.severity == severity]

    def export_log_to_json(self, output_path: Path) -> int:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "counters": {
                "processed": self._counters.processed,
                "total": self._counters.total,
                "percentage": self._counters.percentage,
            },
            "summary": {
                "migrated": self._summary.migrated,
                "skipped": self._summary.skipped,
                "failed": self._summary.failed,
            },
            "entries": [_log_entry_to_dict(e) for e in self._entries],
        }
        output_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        logger.info("Migration log exported to %s", output_path)
        return len(self._entries)

    def _notify_progress(self) -> None:
        if self._on_progress:
            self._on_progress(self.counters)
