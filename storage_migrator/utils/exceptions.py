"""Custom exception classes for the storage-migrator."""

from typing import Optional


class MigratorError(Exception):
    """Base exception class for all migrator errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(MigratorError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None) -> None:
        self.config_key = config_key
        super().__init__(message)


class CredentialError(MigratorError):
    """Raised when a store client cannot be built or is refused by the endpoint."""

    def __init__(self, message: str, endpoint: Optional[str] = None) -> None:
        self.endpoint = endpoint
        super().__init__(message)


class RateLimitError(MigratorError):
    """Raised when the store throttles requests. This error is retryable."""

    def __init__(
        self, message: str, retry_after: Optional[float] = None
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return True


class ListingError(MigratorError):
    """Raised when listing buckets or objects fails."""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        self.bucket = bucket
        self.path = path
        super().__init__(message)


class BucketCreateError(MigratorError):
    """Raised when a bucket cannot be created at the destination."""

    def __init__(self, message: str, bucket: Optional[str] = None) -> None:
        self.bucket = bucket
        super().__init__(message)


class BucketAlreadyExistsError(BucketCreateError):
    """Raised when the destination already holds a bucket with that name."""


class ObjectReadError(MigratorError):
    """Raised when an object cannot be downloaded or decompressed.

    Network reads are retryable. A damaged archive member fails the same way
    every time, so it is raised with ``retryable=False``.
    """

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        retryable: bool = True,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self._retryable = retryable
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self._retryable


class ObjectWriteError(MigratorError):
    """Raised when an object upload fails."""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(message)


class ArchiveParseError(MigratorError):
    """Raised when an archive is unreadable or holds no bucket structure."""


class MigrationInProgressError(MigratorError):
    """Raised when a run is started while another one is active."""


class MigrationCancelledError(MigratorError):
    """Raised when a caller cancels a run between object transfers."""
