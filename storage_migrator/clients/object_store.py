import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, NoReturn, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..utils.exceptions import (
    BucketAlreadyExistsError,
    BucketCreateError,
    CredentialError,
    ListingError,
    MigratorError,
    ObjectReadError,
    ObjectWriteError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

CREDENTIAL_ERROR_CODES = ("InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken")
THROTTLE_ERROR_CODES = ("SlowDown", "Throttling", "TooManyRequests", "503")
BUCKET_EXISTS_CODES = ("BucketAlreadyExists", "BucketAlreadyOwnedByYou")
NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StoreCredentials:
    url: str
    access_key_id: str
    secret_access_key: str
    region: str = "us-east-1"


@dataclass
class Bucket:
    name: str
    is_public: bool = False


@dataclass
class ObjectInfo:
    name: str
    is_dir: bool
    size: int = 0
    content_type: Optional[str] = None


def _error_code(error: ClientError) -> str:
    code: str = error.response.get("Error", {}).get("Code", "")
    return code


def _prefix_for(path: str) -> str:
    stripped = path.strip("/")
    return f"{stripped}/" if stripped else ""


class ObjectStoreClient:
    """S3-compatible storage endpoint used as a migration source or destination."""

    def __init__(
        self,
        credentials: StoreCredentials,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._credentials = credentials
        self._page_size = page_size
        self._client: Optional[Any] = None
        # (bucket, prefix) -> (offset of the next unread item, live iterator)
        self._cursors: Dict[Tuple[str, str], Tuple[int, Iterator[ObjectInfo]]] = {}

    @classmethod
    def from_credentials(cls, credentials: StoreCredentials) -> "ObjectStoreClient":
        client = cls(credentials)
        client.connect()
        return client

    @property
    def endpoint(self) -> str:
        return self._credentials.url

    def connect(self) -> None:
        creds = self._credentials
        if not creds.url:
            raise CredentialError("Missing object store endpoint URL")
        if not creds.access_key_id or not creds.secret_access_key:
            raise CredentialError(
                f"Missing access key for {creds.url}", endpoint=creds.url
            )

        try:
            self._client = boto3.client(
                "s3",
                endpoint_url=creds.url,
                region_name=creds.region,
                aws_access_key_id=creds.access_key_id,
                aws_secret_access_key=creds.secret_access_key,
                config=BotoConfig(s3={"addressing_style": "path"}),
            )
        except (BotoCoreError, ValueError) as e:
            raise CredentialError(
                f"Failed to create object store client for {creds.url}: {e}",
                endpoint=creds.url,
            ) from e
        logger.info("Connected to object store at %s", creds.url)

    def _ensure_connected(self) -> Any:
        if self._client is None:
            raise CredentialError(
                "Not connected to object store. Call connect() first.",
                endpoint=self.endpoint,
            )
        return self._client

    def _handle_client_error(
        self,
        error: ClientError,
        build: Callable[[str], MigratorError],
    ) -> NoReturn:
        code = _error_code(error)

        if code in CREDENTIAL_ERROR_CODES:
            raise CredentialError(
                f"Object store authentication error ({code}): {error}",
                endpoint=self.endpoint,
            ) from error

        if code in THROTTLE_ERROR_CODES:
            headers = error.response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
            retry_after = headers.get("retry-after")
            raise RateLimitError(
                f"Object store rate limit exceeded ({code}): {error}",
                retry_after=float(retry_after) if retry_after else None,
            ) from error

        raise build(f"Object store error ({code}): {error}") from error

    def list_buckets(self) -> List[Bucket]:
        s3 = self._ensure_connected()
        try:
            response = s3.list_buckets()
        except ClientError as e:
            self._handle_client_error(e, lambda msg: ListingError(msg))
        except BotoCoreError as e:
            raise ListingError(f"Failed to list buckets at {self.endpoint}: {e}") from e

        return [
            Bucket(name=item["Name"], is_public=self._is_public(s3, item["Name"]))
            for item in response.get("Buckets", [])
        ]

    def _is_public(self, s3: Any, bucket: str) -> bool:
        try:
            status = s3.get_bucket_policy_status(Bucket=bucket)
        except ClientError as e:
            if _error_code(e) != "NoSuchBucketPolicy":
                logger.warning(
                    "Could not read policy status of bucket %s, assuming private: %s",
                    bucket,
                    e,
                )
            return False
        return bool(status.get("PolicyStatus", {}).get("IsPublic", False))

    def _iter_objects(self, s3: Any, bucket: str, prefix: str) -> Iterator[ObjectInfo]:
        paginator = s3.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=bucket,
            Prefix=prefix,
            Delimiter="/",
            PaginationConfig={"PageSize": self._page_size},
        )
        for page in pages:
            for common in page.get("CommonPrefixes", []):
                name = common["Prefix"][len(prefix):].rstrip("/")
                if name:
                    yield ObjectInfo(name=name, is_dir=True)
            for item in page.get("Contents", []):
                key = item["Key"]
                # folder placeholder objects
                if key == prefix or key.endswith("/"):
                    continue
                yield ObjectInfo(
                    name=key[len(prefix):],
                    is_dir=False,
                    size=int(item.get("Size", 0)),
                )

    def list_objects(
        self,
        bucket: str,
        path: str = "",
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[ObjectInfo]:
        """List one directory level of ``bucket`` under ``path``.

        Offset paging is emulated on top of S3 continuation tokens: a call
        whose offset continues the previous page of the same directory picks
        up the live iterator, any other offset re-walks the listing.
        """
        s3 = self._ensure_connected()
        prefix = _prefix_for(path)
        cursor_key = (bucket, prefix)

        cursor = self._cursors.pop(cursor_key, None)
        if cursor is not None and cursor[0] == offset:
            items, skip = cursor[1], 0
        else:
            items, skip = self._iter_objects(s3, bucket, prefix), offset

        try:
            page = list(itertools.islice(items, skip, skip + limit))
        except ClientError as e:
            self._handle_client_error(
                e, lambda msg: ListingError(msg, bucket=bucket, path=path)
            )
        except BotoCoreError as e:
            raise ListingError(
                f"Failed to list {bucket}/{prefix}: {e}", bucket=bucket, path=path
            ) from e

        if len(page) == limit:
            self._cursors[cursor_key] = (offset + limit, items)
        return page

    def download_object(self, bucket: str, key: str) -> Tuple[bytes, Optional[str]]:
        s3 = self._ensure_connected()
        try:
            response = s3.get_object(Bucket=bucket, Key=key)
            data: bytes = response["Body"].read()
        except ClientError as e:
            self._handle_client_error(
                e, lambda msg: ObjectReadError(msg, bucket=bucket, key=key)
            )
        except BotoCoreError as e:
            raise ObjectReadError(
                f"Failed to download {bucket}/{key}: {e}", bucket=bucket, key=key
            ) from e

        logger.debug("Downloaded %s/%s (%d bytes)", bucket, key, len(data))
        return data, response.get("ContentType")

    def create_bucket(self, name: str, is_public: bool = False) -> None:
        s3 = self._ensure_connected()
        kwargs: Dict[str, Any] = {
            "Bucket": name,
            "ACL": "public-read" if is_public else "private",
        }
        if self._credentials.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self._credentials.region
            }

        try:
            s3.create_bucket(**kwargs)
        except ClientError as e:
            if _error_code(e) in BUCKET_EXISTS_CODES:
                raise BucketAlreadyExistsError(
                    f"Bucket {name} already exists", bucket=name
                ) from e
            self._handle_client_error(
                e, lambda msg: BucketCreateError(msg, bucket=name)
            )
        except BotoCoreError as e:
            raise BucketCreateError(
                f"Failed to create bucket {name}: {e}", bucket=name
            ) from e
        logger.info("Created bucket %s (public=%s)", name, is_public)

    def upload_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        s3 = self._ensure_connected()
        kwargs: Dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if not overwrite:
            kwargs["IfNoneMatch"] = "*"

        try:
            s3.put_object(**kwargs)
        except ClientError as e:
            self._handle_client_error(
                e, lambda msg: ObjectWriteError(msg, bucket=bucket, key=key)
            )
        except BotoCoreError as e:
            raise ObjectWriteError(
                f"Failed to upload {bucket}/{key}: {e}", bucket=bucket, key=key
            ) from e
        logger.debug("Uploaded %s/%s as %s", bucket, key, content_type)

    def object_exists(self, bucket: str, key: str) -> bool:
        s3 = self._ensure_connected()
        try:
            s3.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            self._handle_client_error(
                e, lambda msg: ListingError(msg, bucket=bucket, path=key)
            )
        except BotoCoreError as e:
            raise ListingError(
                f"Failed to check {bucket}/{key}: {e}", bucket=bucket, path=key
            ) from e
