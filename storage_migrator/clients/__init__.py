from .object_store import (
    DEFAULT_PAGE_SIZE,
    Bucket,
    ObjectInfo,
    ObjectStoreClient,
    StoreCredentials,
)
from .archive import ArchiveEntry, read_archive

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Bucket",
    "ObjectInfo",
    "ObjectStoreClient",
    "StoreCredentials",
    "ArchiveEntry",
    "read_archive",
]
