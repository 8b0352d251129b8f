import io
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..utils.exceptions import ArchiveParseError, ObjectReadError

logger = logging.getLogger(__name__)

# zlib.error: corrupt deflate stream, EOFError: truncated member
_DECOMPRESS_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    OSError,
    RuntimeError,
    KeyError,
    NotImplementedError,
)


@dataclass
class ArchiveEntry:
    path: str
    is_dir: bool
    size: int = 0
    _archive: Optional[zipfile.ZipFile] = field(default=None, repr=False, compare=False)
    _member: Optional[str] = field(default=None, repr=False, compare=False)

    def read(self) -> bytes:
        """Decompress the entry's bytes."""
        if self.is_dir:
            raise ObjectReadError(
                f"{self.path} is a directory", key=self.path, retryable=False
            )
        if self._archive is None or self._member is None:
            raise ObjectReadError(
                f"{self.path} is not backed by an archive",
                key=self.path,
                retryable=False,
            )
        try:
            return self._archive.read(self._member)
        except _DECOMPRESS_ERRORS as e:
            raise ObjectReadError(
                f"Failed to decompress {self.path}: {e}",
                key=self.path,
                retryable=False,
            ) from e


def read_archive(blob: bytes) -> Dict[str, ArchiveEntry]:
    """Open a ZIP export and map each slash-delimited path to its entry."""
    if not blob:
        raise ArchiveParseError("Archive is empty")

    try:
        archive = zipfile.ZipFile(io.BytesIO(blob))
        infos = archive.infolist()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
        raise ArchiveParseError(f"Unreadable archive: {e}") from e

    entries: Dict[str, ArchiveEntry] = {}
    for info in infos:
        path = info.filename.replace("\\", "/").strip("/")
        if not path:
            continue
        entries[path] = ArchiveEntry(
            path=path,
            is_dir=info.is_dir(),
            size=info.file_size,
            _archive=archive,
            _member=info.filename,
        )

    logger.info("Read archive with %d entries", len(entries))
    return entries
