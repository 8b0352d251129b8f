import asyncio
import logging
from typing import List

from ..clients.object_store import DEFAULT_PAGE_SIZE, ObjectStoreClient
from ..utils.exceptions import CredentialError, MigratorError
from .plan import ObjectEntry
from .progress import RunContext

logger = logging.getLogger(__name__)


def _join(path: str, name: str) -> str:
    return f"{path}/{name}" if path else name


class ObjectEnumerator:
    """Walks a live bucket's directory tree depth-first.

    The walk keeps an explicit stack of directory paths. A listing failure
    abandons only the directory that failed and everything below it.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        context: RunContext,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self._client = client
        self._context = context
        self._page_size = page_size

    async def enumerate(self, bucket: str) -> List[ObjectEntry]:
        entries: List[ObjectEntry] = []
        stack: List[str] = [""]

        while stack:
            path = stack.pop()
            subdirs: List[str] = []
            try:
                await self._list_directory(bucket, path, entries, subdirs)
            except CredentialError:
                raise
            except MigratorError as e:
                location = f"{bucket}/{path}" if path else bucket
                self._context.error(f"Failed to list {location}: {e}")
                continue
            # reversed so siblings are walked in listing order
            stack.extend(reversed(subdirs))

        logger.debug("Enumerated %d objects in bucket %s", len(entries), bucket)
        return entries

    async def _list_directory(
        self,
        bucket: str,
        path: str,
        entries: List[ObjectEntry],
        subdirs: List[str],
    ) -> None:
        offset = 0
        while True:
            page = await asyncio.to_thread(
                self._client.list_objects, bucket, path, self._page_size, offset
            )
            for item in page:
                item_path = _join(path, item.name)
                if item.is_dir:
                    subdirs.append(item_path)
                else:
                    entries.append(
                        ObjectEntry(
                            relative_path=item_path,
                            size_hint=item.size,
                            declared_content_type=item.content_type,
                        )
                    )
            if len(page) < self._page_size:
                return
            offset += len(page)
