import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..clients.archive import ArchiveEntry, read_archive
from ..clients.object_store import (
    DEFAULT_PAGE_SIZE,
    ObjectStoreClient,
    StoreCredentials,
)
from ..utils.exceptions import (
    ArchiveParseError,
    BucketCreateError,
    CredentialError,
    ListingError,
    MigrationCancelledError,
    MigrationInProgressError,
    MigratorError,
)
from .enumerator import ObjectEnumerator
from .layout import analyze_layout, detect_buckets
from .plan import ObjectEntry, plan_total
from .progress import (
    LogEntry,
    OutcomeSummary,
    ProgressCounters,
    RunContext,
    TransferOutcome,
)
from .transfer import ObjectReader, TransferExecutor

logger = logging.getLogger(__name__)

BUCKET_UNAVAILABLE = "bucket unavailable"

ClientFactory = Callable[[StoreCredentials], ObjectStoreClient]


class MigrationMode(Enum):
    LIVE = "live"
    ARCHIVE = "archive"


class MigrationState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MigrationRequest:
    mode: MigrationMode
    destination: StoreCredentials
    source: Optional[StoreCredentials] = None
    archive: Optional[bytes] = None


@dataclass
class MigrationResult:
    state: MigrationState
    summary: str
    counters: ProgressCounters
    outcomes: OutcomeSummary
    reason: Optional[str] = None
    log: Tuple[LogEntry, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.state == MigrationState.COMPLETED


class MigrationEngine:
    """Drives one migration at a time, either live-to-live or archive-to-live.

    Object and bucket failures are logged and counted; the run still
    completes. Only faults that make the whole plan unusable (bad
    credentials, unreadable archive, source bucket listing) fail the run.
    """

    def __init__(
        self,
        client_factory: ClientFactory = ObjectStoreClient.from_credentials,
        overwrite_existing: bool = True,
        concurrency: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 1,
        default_bucket_public: bool = False,
        wrapping_root: Optional[bool] = None,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        self._client_factory = client_factory
        self._overwrite_existing = overwrite_existing
        self._concurrency = concurrency
        self._page_size = page_size
        self._retry_attempts = retry_attempts
        self._retry_delay_seconds = retry_delay_seconds
        self._default_bucket_public = default_bucket_public
        self._wrapping_root = wrapping_root
        self._state = MigrationState.IDLE
        self._context = RunContext()
        self._cancel_requested = False
        self._on_progress: Optional[Callable[[ProgressCounters], None]] = None
        self._on_log: Optional[Callable[[LogEntry], None]] = None

    @property
    def state(self) -> MigrationState:
        return self._state

    @property
    def context(self) -> RunContext:
        return self._context

    def set_progress_callback(
        self, callback: Callable[[ProgressCounters], None]
    ) -> None:
        self._on_progress = callback

    def set_log_callback(self, callback: Callable[[LogEntry], None]) -> None:
        self._on_log = callback

    def cancel(self) -> None:
        """Stop the active run before its next object transfer."""
        if self._state == MigrationState.RUNNING:
            self._cancel_requested = True

    async def migrate_live(
        self, source: StoreCredentials, destination: StoreCredentials
    ) -> MigrationResult:
        return await self.run(
            MigrationRequest(MigrationMode.LIVE, destination=destination, source=source)
        )

    async def migrate_archive(
        self, archive: bytes, destination: StoreCredentials
    ) -> MigrationResult:
        return await self.run(
            MigrationRequest(
                MigrationMode.ARCHIVE, destination=destination, archive=archive
            )
        )

    async def run(self, request: MigrationRequest) -> MigrationResult:
        if self._state == MigrationState.RUNNING:
            raise MigrationInProgressError("A migration is already running")

        self._state = MigrationState.RUNNING
        self._cancel_requested = False
        self._context = RunContext(on_progress=self._on_progress, on_log=self._on_log)
        self._context.info(f"Starting {request.mode.value} migration")

        try:
            if request.mode == MigrationMode.LIVE:
                summary = await self._run_live(request)
            else:
                summary = await self._run_archive(request)
        except MigratorError as e:
            return self._finish_failed(e.message)
        except Exception:
            self._state = MigrationState.FAILED
            raise

        self._state = MigrationState.COMPLETED
        self._context.success(summary)
        return self._result(summary)

    async def preview_archive(self, archive: bytes) -> List[str]:
        entries = await asyncio.to_thread(read_archive, archive)
        return detect_buckets(entries.keys())

    def _connect(
        self, credentials: Optional[StoreCredentials], role: str
    ) -> ObjectStoreClient:
        if credentials is None:
            raise CredentialError(f"No {role} credentials supplied")
        try:
            return self._client_factory(credentials)
        except CredentialError as e:
            raise CredentialError(
                f"Cannot connect to {role} store: {e.message}", endpoint=e.endpoint
            ) from e

    def _executor(self, destination: ObjectStoreClient) -> TransferExecutor:
        return TransferExecutor(
            destination,
            self._context,
            overwrite_existing=self._overwrite_existing,
            retry_attempts=self._retry_attempts,
            retry_delay_seconds=self._retry_delay_seconds,
        )

    async def _run_live(self, request: MigrationRequest) -> str:
        source = self._connect(request.source, "source")
        destination = self._connect(request.destination, "destination")

        try:
            buckets = await asyncio.to_thread(source.list_buckets)
        except ListingError as e:
            raise ListingError(f"Failed to list source buckets: {e.message}") from e

        if not buckets:
            return "No buckets found in source; nothing to migrate"
        self._context.info(f"Found {len(buckets)} bucket(s) in source")

        executor = self._executor(destination)
        await executor.load_existing_buckets()
        enumerator = ObjectEnumerator(source, self._context, page_size=self._page_size)

        for bucket in buckets:
            self._context.info(f"Processing bucket {bucket.name}")
            try:
                await executor.ensure_bucket(bucket.name, bucket.is_public)
            except BucketCreateError as e:
                self._context.error(
                    f"Could not create bucket {bucket.name}, skipping its objects: {e}"
                )
                continue

            entries = await enumerator.enumerate(bucket.name)
            self._context.add_total(len(entries))
            self._context.info(f"Found {len(entries)} object(s) in {bucket.name}")

            await self._transfer_bucket(
                executor, bucket.name, entries, self._live_reader(source, bucket.name)
            )

        return self._completion_summary()

    async def _run_archive(self, request: MigrationRequest) -> str:
        if request.archive is None:
            raise ArchiveParseError("No archive supplied")
        destination = self._connect(request.destination, "destination")

        entries = await asyncio.to_thread(read_archive, request.archive)
        inferred = analyze_layout(entries, wrapping_root=self._wrapping_root)
        plan = inferred.plan
        if not plan:
            raise ArchiveParseError("No bucket structure found in archive")

        if inferred.root:
            self._context.info(f"Stripped wrapping folder {inferred.root}")
        for path in inferred.skipped:
            self._context.warning(f"Skipped {path}: not inside a bucket")

        self._context.add_total(plan_total(plan))
        self._context.info(
            f"Found {len(plan)} bucket(s) and {plan_total(plan)} object(s) in archive"
        )

        executor = self._executor(destination)
        await executor.load_existing_buckets()

        for bucket_name, objects in plan.items():
            self._context.info(f"Processing bucket {bucket_name}")
            try:
                await executor.ensure_bucket(bucket_name, self._default_bucket_public)
            except BucketCreateError as e:
                self._context.error(
                    f"Could not create bucket {bucket_name}, skipping its objects: {e}"
                )
                self._skip_bucket(objects)
                continue

            await self._transfer_bucket(
                executor, bucket_name, objects, self._archive_reader(entries)
            )

        return self._completion_summary()

    @staticmethod
    def _live_reader(
        source: ObjectStoreClient, bucket: str
    ) -> Callable[[ObjectEntry], ObjectReader]:
        def reader(entry: ObjectEntry) -> ObjectReader:
            async def read() -> Tuple[bytes, Optional[str]]:
                return await asyncio.to_thread(
                    source.download_object, bucket, entry.relative_path
                )

            return read

        return reader

    @staticmethod
    def _archive_reader(
        entries: Dict[str, ArchiveEntry]
    ) -> Callable[[ObjectEntry], ObjectReader]:
        def reader(entry: ObjectEntry) -> ObjectReader:
            async def read() -> Tuple[bytes, Optional[str]]:
                archived = entries[entry.source_path or entry.relative_path]
                data = await asyncio.to_thread(archived.read)
                return data, None

            return read

        return reader

    def _skip_bucket(self, objects: List[ObjectEntry]) -> None:
        for _ in objects:
            self._context.record(TransferOutcome.skipped(BUCKET_UNAVAILABLE))

    async def _transfer_bucket(
        self,
        executor: TransferExecutor,
        bucket: str,
        entries: List[ObjectEntry],
        reader: Callable[[ObjectEntry], ObjectReader],
    ) -> None:
        if self._concurrency == 1:
            for entry in entries:
                self._check_cancelled()
                await executor.transfer_one(bucket, entry, reader(entry))
            return

        semaphore = asyncio.Semaphore(self._concurrency)

        async def transfer(entry: ObjectEntry) -> None:
            async with semaphore:
                if self._cancel_requested:
                    return
                await executor.transfer_one(bucket, entry, reader(entry))

        tasks = [asyncio.ensure_future(transfer(entry)) for entry in entries]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # no outcome may be recorded once the run has failed
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        self._check_cancelled()

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise MigrationCancelledError("Migration cancelled")

    def _completion_summary(self) -> str:
        counters = self._context.counters
        outcomes = self._context.get_summary()
        return (
            f"Migration completed: {counters.processed}/{counters.total} objects "
            f"processed, {outcomes.migrated} migrated, {outcomes.skipped} skipped, "
            f"{outcomes.failed} failed"
        )

    def _finish_failed(self, reason: str) -> MigrationResult:
        self._state = MigrationState.FAILED
        summary = f"Migration failed: {reason}"
        self._context.error(summary)
        return self._result(summary, reason)

    def _result(self, summary: str, reason: Optional[str] = None) -> MigrationResult:
        return MigrationResult(
            state=self._state,
            summary=summary,
            counters=self._context.counters,
            outcomes=self._context.get_summary(),
            reason=reason,
            log=self._context.entries,
        )
