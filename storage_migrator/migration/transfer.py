import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from ..clients.object_store import ObjectStoreClient
from ..utils.exceptions import (
    BucketAlreadyExistsError,
    BucketCreateError,
    CredentialError,
    MigratorError,
    ObjectReadError,
    RateLimitError,
)
from ..utils.media import resolve_content_type
from .plan import ObjectEntry
from .progress import RunContext, TransferOutcome

logger = logging.getLogger(__name__)

GENERIC_CONTENT_TYPES = {"application/octet-stream", "binary/octet-stream"}

ALREADY_PRESENT = "already present"

# Returns the object's bytes and the content type the source declared, if any.
ObjectReader = Callable[[], Awaitable[Tuple[bytes, Optional[str]]]]


class BucketStatus(Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class TransferExecutor:
    def __init__(
        self,
        destination: ObjectStoreClient,
        context: RunContext,
        overwrite_existing: bool = True,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 1,
    ) -> None:
        self._destination = destination
        self._context = context
        self._overwrite_existing = overwrite_existing
        self._retry_attempts = max(retry_attempts, 1)
        self._retry_delay_seconds = retry_delay_seconds
        self._existing_buckets: Set[str] = set()
        self._ensured: Dict[str, BucketStatus] = {}
        self._failed_buckets: Dict[str, BucketCreateError] = {}

    async def load_existing_buckets(self) -> None:
        try:
            buckets = await asyncio.to_thread(self._destination.list_buckets)
        except CredentialError:
            raise
        except MigratorError as e:
            self._context.warning(
                f"Could not list destination buckets, will attempt to create each: {e}"
            )
            return
        self._existing_buckets = {b.name for b in buckets}

    async def ensure_bucket(self, name: str, is_public: bool = False) -> BucketStatus:
        if name in self._ensured:
            return self._ensured[name]
        if name in self._failed_buckets:
            raise self._failed_buckets[name]

        if name in self._existing_buckets:
            status = BucketStatus.ALREADY_EXISTS
        else:
            try:
                await asyncio.to_thread(
                    self._destination.create_bucket, name, is_public
                )
                status = BucketStatus.CREATED
            except BucketAlreadyExistsError:
                status = BucketStatus.ALREADY_EXISTS
            except BucketCreateError as e:
                self._failed_buckets[name] = e
                raise

        self._ensured[name] = status
        self._existing_buckets.add(name)
        if status == BucketStatus.CREATED:
            self._context.success(f"Created bucket {name}")
        else:
            self._context.info(f"Bucket {name} already exists")
        return status

    async def transfer_one(
        self,
        bucket: str,
        entry: ObjectEntry,
        read: ObjectReader,
    ) -> TransferOutcome:
        key = entry.relative_path
        try:
            outcome = await self._transfer(bucket, entry, read)
        except CredentialError:
            raise
        except MigratorError as e:
            outcome = TransferOutcome.failed(str(e))
            self._context.error(f"Failed to migrate {bucket}/{key}: {e}")

        self._context.record(outcome)
        return outcome

    async def _transfer(
        self,
        bucket: str,
        entry: ObjectEntry,
        read: ObjectReader,
    ) -> TransferOutcome:
        key = entry.relative_path

        if not self._overwrite_existing and await self._already_present(bucket, key):
            self._context.info(f"Skipped {bucket}/{key}: {ALREADY_PRESENT}")
            return TransferOutcome.skipped(ALREADY_PRESENT)

        data, declared = await self._read_with_retry(bucket, key, read)
        content_type = self._content_type_for(entry, declared)

        await asyncio.to_thread(
            self._destination.upload_object,
            bucket,
            key,
            data,
            content_type,
            True,
        )
        self._context.success(f"Migrated {bucket}/{key} ({content_type})")
        return TransferOutcome.migrated()

    async def _already_present(self, bucket: str, key: str) -> bool:
        try:
            return await asyncio.to_thread(self._destination.object_exists, bucket, key)
        except CredentialError:
            raise
        except MigratorError as e:
            self._context.warning(
                f"Existence check failed for {bucket}/{key}, uploading anyway: {e}"
            )
            return False

    @staticmethod
    def _content_type_for(entry: ObjectEntry, declared: Optional[str]) -> str:
        for candidate in (entry.declared_content_type, declared):
            if candidate and candidate not in GENERIC_CONTENT_TYPES:
                return candidate
        return resolve_content_type(entry.relative_path)

    async def _read_with_retry(
        self,
        bucket: str,
        key: str,
        read: ObjectReader,
    ) -> Tuple[bytes, Optional[str]]:
        last_error: Optional[MigratorError] = None
        for attempt in range(self._retry_attempts):
            try:
                return await read()
            except (RateLimitError, ObjectReadError) as e:
                if not e.is_retryable:
                    raise
                last_error = e
                if attempt + 1 == self._retry_attempts:
                    break
                delay = self._retry_delay_seconds * (2**attempt)
                if isinstance(e, RateLimitError) and e.retry_after:
                    delay = e.retry_after
                delay += random.uniform(0, 1)
                logger.warning(
                    "Error reading %s/%s (attempt %d/%d): %s, retrying in %.1fs",
                    bucket,
                    key,
                    attempt + 1,
                    self._retry_attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

        raise last_error or ObjectReadError(
            f"Read failed after {self._retry_attempts} attempts",
            bucket=bucket,
            key=key,
        )
