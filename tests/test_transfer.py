import asyncio
from typing import Optional, Tuple
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import EndpointConnectionError

from storage_migrator.clients.object_store import ObjectStoreClient, StoreCredentials
from storage_migrator.migration.plan import ObjectEntry
from storage_migrator.migration.progress import (
    OutcomeKind,
    RunContext,
    Severity,
    TransferOutcome,
)
from storage_migrator.migration.transfer import (
    ALREADY_PRESENT,
    BucketStatus,
    TransferExecutor,
)
from storage_migrator.utils.exceptions import (
    BucketCreateError,
    CredentialError,
    ListingError,
    ObjectReadError,
    RateLimitError,
)

pytestmark = pytest.mark.unit


def _reader(data: bytes = b"bytes", content_type: Optional[str] = None):
    async def read() -> Tuple[bytes, Optional[str]]:
        return data, content_type

    return read


@pytest.fixture
def context() -> RunContext:
    ctx = RunContext()
    ctx.add_total(10)
    return ctx


@pytest.fixture
def executor(destination_store, context: RunContext) -> TransferExecutor:
    return TransferExecutor(
        destination_store, context, retry_attempts=2, retry_delay_seconds=0
    )


class TestEnsureBucket:
    def test_creates_missing_bucket(self, executor, destination_store) -> None:
        status = asyncio.run(executor.ensure_bucket("photos", True))
        assert status == BucketStatus.CREATED
        assert destination_store.buckets == {"photos": True}

    def test_already_exists_is_success(self, executor, destination_store) -> None:
        destination_store.buckets["photos"] = False
        status = asyncio.run(executor.ensure_bucket("photos"))
        assert status == BucketStatus.ALREADY_EXISTS

    def test_idempotent(self, executor, destination_store, context) -> None:
        async def twice() -> Tuple[BucketStatus, BucketStatus]:
            first = await executor.ensure_bucket("photos")
            second = await executor.ensure_bucket("photos")
            return first, second

        first, second = asyncio.run(twice())

        assert first == BucketStatus.CREATED
        assert second == BucketStatus.CREATED
        assert len(destination_store.buckets) == 1
        assert destination_store.create_calls == [("photos", False)]
        assert context.get_entries_by_severity(Severity.ERROR) == []

    def test_second_executor_sees_existing_bucket(
        self, destination_store, context
    ) -> None:
        first = TransferExecutor(destination_store, context)
        asyncio.run(first.ensure_bucket("photos"))
        status = asyncio.run(
            TransferExecutor(destination_store, context).ensure_bucket("photos")
        )
        assert status == BucketStatus.ALREADY_EXISTS
        assert len(destination_store.buckets) == 1

    def test_known_bucket_skips_create_call(
        self, executor, destination_store
    ) -> None:
        destination_store.buckets["photos"] = False

        async def run() -> BucketStatus:
            await executor.load_existing_buckets()
            return await executor.ensure_bucket("photos")

        assert asyncio.run(run()) == BucketStatus.ALREADY_EXISTS
        assert destination_store.create_calls == []

    def test_listing_failure_falls_back_to_create(
        self, executor, destination_store, context
    ) -> None:
        destination_store.fail_list_buckets = True

        async def run() -> BucketStatus:
            await executor.load_existing_buckets()
            return await executor.ensure_bucket("photos")

        assert asyncio.run(run()) == BucketStatus.CREATED
        assert len(context.get_entries_by_severity(Severity.WARNING)) == 1

    def test_create_failure_raises_once(
        self, executor, destination_store
    ) -> None:
        destination_store.fail_create.add("photos")

        async def run() -> None:
            for _ in range(2):
                with pytest.raises(BucketCreateError):
                    await executor.ensure_bucket("photos")

        asyncio.run(run())
        assert destination_store.create_calls == [("photos", False)]


class TestTransferOne:
    def test_uploads_with_resolved_content_type(
        self, executor, destination_store, context
    ) -> None:
        entry = ObjectEntry("albums/cover.JPG")
        outcome = asyncio.run(executor.transfer_one("photos", entry, _reader(b"jpg")))

        assert outcome == TransferOutcome.migrated()
        assert destination_store.uploads == [
            ("photos", "albums/cover.JPG", "image/jpeg")
        ]
        assert destination_store.objects[("photos", "albums/cover.JPG")][0] == b"jpg"
        assert context.counters.processed == 1
        assert context.get_entries_by_severity(Severity.SUCCESS)

    def test_prefers_entry_declared_content_type(
        self, executor, destination_store
    ) -> None:
        entry = ObjectEntry("data.bin", declared_content_type="application/x-custom")
        read = _reader(content_type="text/plain")
        asyncio.run(executor.transfer_one("b", entry, read))
        assert destination_store.uploads[0][2] == "application/x-custom"

    def test_uses_content_type_from_read(
        self, executor, destination_store
    ) -> None:
        entry = ObjectEntry("data")
        asyncio.run(executor.transfer_one("b", entry, _reader(content_type="text/csv")))
        assert destination_store.uploads[0][2] == "text/csv"

    def test_generic_declared_type_falls_back_to_extension(
        self, executor, destination_store
    ) -> None:
        entry = ObjectEntry("report.pdf")
        asyncio.run(
            executor.transfer_one(
                "b", entry, _reader(content_type="binary/octet-stream")
            )
        )
        assert destination_store.uploads[0][2] == "application/pdf"

    def test_write_failure_is_failed_outcome(
        self, executor, destination_store, context
    ) -> None:
        destination_store.fail_uploads.add(("b", "a.png"))
        outcome = asyncio.run(
            executor.transfer_one("b", ObjectEntry("a.png"), _reader())
        )

        assert outcome.kind == OutcomeKind.FAILED
        assert "cannot write" in (outcome.reason or "")
        assert context.counters.processed == 1
        assert context.get_summary().failed == 1
        errors = context.get_entries_by_severity(Severity.ERROR)
        assert len(errors) == 1
        assert "b/a.png" in errors[0].message

    @patch("storage_migrator.migration.transfer.random.uniform", return_value=0)
    def test_read_failure_retries_then_fails(
        self, _uniform, executor, destination_store, context
    ) -> None:
        read = AsyncMock(side_effect=ObjectReadError("gone"))
        outcome = asyncio.run(executor.transfer_one("b", ObjectEntry("a.png"), read))

        assert outcome.kind == OutcomeKind.FAILED
        assert read.await_count == 2
        assert destination_store.uploads == []
        assert context.counters.processed == 1

    @patch("storage_migrator.migration.transfer.asyncio.sleep")
    def test_damaged_member_is_not_retried(
        self, mock_sleep, executor, destination_store, context
    ) -> None:
        read = AsyncMock(
            side_effect=ObjectReadError("bad deflate stream", retryable=False)
        )
        outcome = asyncio.run(executor.transfer_one("b", ObjectEntry("a.png"), read))

        assert outcome.kind == OutcomeKind.FAILED
        assert read.await_count == 1
        mock_sleep.assert_not_called()
        assert context.get_summary().failed == 1

    @patch("storage_migrator.migration.transfer.random.uniform", return_value=0)
    def test_rate_limit_then_success(
        self, _uniform, executor, destination_store
    ) -> None:
        read = AsyncMock(side_effect=[RateLimitError("slow down"), (b"ok", None)])
        outcome = asyncio.run(executor.transfer_one("b", ObjectEntry("a.txt"), read))

        assert outcome == TransferOutcome.migrated()
        assert read.await_count == 2

    def test_credential_error_propagates(self, executor, context) -> None:
        read = AsyncMock(side_effect=CredentialError("expired"))
        with pytest.raises(CredentialError):
            asyncio.run(executor.transfer_one("b", ObjectEntry("a.txt"), read))
        assert context.counters.processed == 0


class TestExistenceCheck:
    @pytest.fixture
    def skipping_executor(self, destination_store, context) -> TransferExecutor:
        return TransferExecutor(destination_store, context, overwrite_existing=False)

    def test_skips_present_object(
        self, skipping_executor, destination_store, context
    ) -> None:
        destination_store.add("b", "a.png", b"old")
        read = AsyncMock()

        outcome = asyncio.run(
            skipping_executor.transfer_one("b", ObjectEntry("a.png"), read)
        )

        assert outcome == TransferOutcome.skipped(ALREADY_PRESENT)
        read.assert_not_awaited()
        assert destination_store.uploads == []
        assert context.counters.processed == 1
        assert context.get_summary().skipped == 1

    def test_uploads_absent_object(
        self, skipping_executor, destination_store
    ) -> None:
        outcome = asyncio.run(
            skipping_executor.transfer_one("b", ObjectEntry("a.png"), _reader())
        )
        assert outcome == TransferOutcome.migrated()
        assert destination_store.exists_calls == [("b", "a.png")]

    def test_existence_check_failure_uploads_anyway(self, context) -> None:
        destination = MagicMock(spec=ObjectStoreClient)
        destination.object_exists.side_effect = ListingError("head request failed")
        executor = TransferExecutor(destination, context, overwrite_existing=False)

        outcome = asyncio.run(
            executor.transfer_one("b", ObjectEntry("a.png"), _reader())
        )

        assert outcome == TransferOutcome.migrated()
        destination.upload_object.assert_called_once_with(
            "b", "a.png", b"bytes", "image/png", True
        )
        assert len(context.get_entries_by_severity(Severity.WARNING)) == 1

    def test_connection_error_during_existence_check(self, context) -> None:
        destination = ObjectStoreClient(
            StoreCredentials("https://dst.example.com", "key", "secret")
        )
        s3 = MagicMock()
        s3.head_object.side_effect = EndpointConnectionError(
            endpoint_url="https://dst.example.com"
        )
        destination._client = s3
        executor = TransferExecutor(destination, context, overwrite_existing=False)

        outcome = asyncio.run(
            executor.transfer_one("b", ObjectEntry("a.png"), _reader())
        )

        assert outcome == TransferOutcome.migrated()
        s3.put_object.assert_called_once()
        warnings = context.get_entries_by_severity(Severity.WARNING)
        assert len(warnings) == 1
        assert "b/a.png" in warnings[0].message

    def test_overwrite_mode_skips_existence_check(
        self, executor, destination_store
    ) -> None:
        destination_store.add("b", "a.png", b"old")
        asyncio.run(executor.transfer_one("b", ObjectEntry("a.png"), _reader(b"new")))
        assert destination_store.exists_calls == []
        assert destination_store.objects[("b", "a.png")][0] == b"new"
