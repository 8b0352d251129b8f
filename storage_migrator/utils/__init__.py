from .media import (
    DEFAULT_CONTENT_TYPE,
    MediaKind,
    get_content_type,
    get_media_kind,
    resolve_content_type,
)
from .logger import (
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FORMAT,
    get_logger,
    run_log_path,
    setup_logging,
)
from .exceptions import (
    MigratorError,
    ConfigurationError,
    CredentialError,
    RateLimitError,
    ListingError,
    BucketCreateError,
    BucketAlreadyExistsError,
    ObjectReadError,
    ObjectWriteError,
    ArchiveParseError,
    MigrationInProgressError,
    MigrationCancelledError,
)

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "MediaKind",
    "get_content_type",
    "get_media_kind",
    "resolve_content_type",
    "setup_logging",
    "get_logger",
    "run_log_path",
    "DEFAULT_LOG_DIR",
    "DEFAULT_LOG_FORMAT",
    "MigratorError",
    "ConfigurationError",
    "CredentialError",
    "RateLimitError",
    "ListingError",
    "BucketCreateError",
    "BucketAlreadyExistsError",
    "ObjectReadError",
    "ObjectWriteError",
    "ArchiveParseError",
    "MigrationInProgressError",
    "MigrationCancelledError",
]
