import io
import zipfile
from typing import Dict, List, Optional, Set, Tuple

import pytest

from storage_migrator.clients.object_store import Bucket, ObjectInfo
from storage_migrator.utils.exceptions import (
    BucketAlreadyExistsError,
    BucketCreateError,
    ListingError,
    ObjectReadError,
    ObjectWriteError,
)


class FakeObjectStore:
    """In-memory stand-in for ObjectStoreClient with injectable failures."""

    def __init__(self, url: str = "https://store.example.com") -> None:
        self.url = url
        self.buckets: Dict[str, bool] = {}
        self.objects: Dict[Tuple[str, str], Tuple[bytes, Optional[str]]] = {}
        self.list_calls: List[Tuple[str, str, int, int]] = []
        self.create_calls: List[Tuple[str, bool]] = []
        self.uploads: List[Tuple[str, str, str]] = []
        self.exists_calls: List[Tuple[str, str]] = []
        self.fail_list_buckets = False
        self.fail_list_paths: Set[Tuple[str, str]] = set()
        self.fail_create: Set[str] = set()
        self.fail_downloads: Set[Tuple[str, str]] = set()
        self.fail_uploads: Set[Tuple[str, str]] = set()

    def add(
        self,
        bucket: str,
        key: str,
        data: bytes = b"data",
        content_type: Optional[str] = None,
        is_public: bool = False,
    ) -> None:
        self.buckets.setdefault(bucket, is_public)
        self.objects[(bucket, key)] = (data, content_type)

    def list_buckets(self) -> List[Bucket]:
        if self.fail_list_buckets:
            raise ListingError("bucket listing refused")
        return [Bucket(name, public) for name, public in self.buckets.items()]

    def list_objects(
        self, bucket: str, path: str = "", limit: int = 1000, offset: int = 0
    ) -> List[ObjectInfo]:
        self.list_calls.append((bucket, path, limit, offset))
        if (bucket, path) in self.fail_list_paths:
            raise ListingError(f"cannot list {bucket}/{path}", bucket=bucket, path=path)

        prefix = f"{path}/" if path else ""
        dirs: Dict[str, None] = {}
        files: List[ObjectInfo] = []
        for (b, key), (data, content_type) in sorted(self.objects.items()):
            if b != bucket or not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if "/" in rest:
                dirs[rest.split("/", 1)[0]] = None
            else:
                files.append(ObjectInfo(rest, False, len(data), content_type))
        items = [ObjectInfo(name, True) for name in dirs] + files
        return items[offset : offset + limit]

    def download_object(self, bucket: str, key: str) -> Tuple[bytes, Optional[str]]:
        if (bucket, key) in self.fail_downloads or (bucket, key) not in self.objects:
            raise ObjectReadError(f"cannot read {bucket}/{key}", bucket=bucket, key=key)
        return self.objects[(bucket, key)]

    def create_bucket(self, name: str, is_public: bool = False) -> None:
        self.create_calls.append((name, is_public))
        if name in self.fail_create:
            raise BucketCreateError(f"cannot create {name}", bucket=name)
        if name in self.buckets:
            raise BucketAlreadyExistsError(f"Bucket {name} already exists", bucket=name)
        self.buckets[name] = is_public

    def upload_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        if (bucket, key) in self.fail_uploads:
            raise ObjectWriteError(
                f"cannot write {bucket}/{key}", bucket=bucket, key=key
            )
        self.uploads.append((bucket, key, content_type))
        self.objects[(bucket, key)] = (data, content_type)

    def object_exists(self, bucket: str, key: str) -> bool:
        self.exists_calls.append((bucket, key))
        return (bucket, key) in self.objects


def make_zip(files: Dict[str, bytes], dirs: Optional[List[str]] = None) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for directory in dirs or []:
            archive.writestr(directory.rstrip("/") + "/", b"")
        for path, data in files.items():
            archive.writestr(path, data)
    return buffer.getvalue()


@pytest.fixture
def source_store() -> FakeObjectStore:
    return FakeObjectStore("https://source.example.com")


@pytest.fixture
def destination_store() -> FakeObjectStore:
    return FakeObjectStore("https://destination.example.com")


@pytest.fixture
def zip_factory():
    return make_zip
