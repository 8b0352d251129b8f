"""Bucket/path inference for exported storage archives.

Exports come in three shapes:

* ``bucket/path/to/file``
* ``<project-id>/bucket/path/to/file`` where the export tool wrapped every
  bucket in a folder named after an opaque project identifier
* files at the archive root, which belong to no bucket and are skipped

There is no manifest, so the wrapping folder is recognised by its shape
(lower-case alphanumeric, at least 20 characters) when it is the only first
segment in the archive. Callers that know better pass ``wrapping_root``.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Set

from ..clients.archive import ArchiveEntry
from .plan import MigrationPlan, ObjectEntry

OPAQUE_ID_MIN_LENGTH = 20

_OPAQUE_ID_RE = re.compile(r"^[a-z0-9]{%d,}$" % OPAQUE_ID_MIN_LENGTH)


class ArchiveLayout(Enum):
    DIRECT = "direct"
    WRAPPED = "wrapped"


@dataclass
class InferredLayout:
    layout: ArchiveLayout
    plan: MigrationPlan
    root: Optional[str] = None
    skipped: List[str] = field(default_factory=list)


def is_opaque_identifier(segment: str) -> bool:
    return bool(_OPAQUE_ID_RE.match(segment))


def _segments(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


def analyze_layout(
    entries: Mapping[str, ArchiveEntry],
    wrapping_root: Optional[bool] = None,
) -> InferredLayout:
    files = [
        (path, _segments(path))
        for path, entry in entries.items()
        if not entry.is_dir and _segments(path)
    ]

    first_segments = {segments[0] for _, segments in files}
    if wrapping_root is None:
        wrapped = len(first_segments) == 1 and is_opaque_identifier(
            next(iter(first_segments))
        )
    else:
        wrapped = wrapping_root

    offset = 1 if wrapped else 0
    plan: MigrationPlan = {}
    skipped: List[str] = []

    for path, segments in files:
        if len(segments) < offset + 2:
            skipped.append(path)
            continue
        bucket = segments[offset]
        entry = entries[path]
        plan.setdefault(bucket, []).append(
            ObjectEntry(
                relative_path="/".join(segments[offset + 1 :]),
                size_hint=entry.size,
                source_path=path,
            )
        )

    root = next(iter(first_segments)) if wrapped and len(first_segments) == 1 else None
    return InferredLayout(
        layout=ArchiveLayout.WRAPPED if wrapped else ArchiveLayout.DIRECT,
        plan=plan,
        root=root,
        skipped=skipped,
    )


def infer_layout(
    entries: Mapping[str, ArchiveEntry],
    wrapping_root: Optional[bool] = None,
) -> MigrationPlan:
    return analyze_layout(entries, wrapping_root).plan


def detect_buckets(paths: Iterable[str]) -> List[str]:
    """Advisory list of bucket names for previewing an archive.

    Looser than :func:`analyze_layout` and may disagree with it when bucket
    names are themselves long alphanumeric strings. Never build a plan from it.
    """
    candidates: Set[str] = set()
    for path in paths:
        segments = _segments(path)
        if not segments:
            continue
        candidates.add(segments[0])
        if len(segments) >= 3:
            candidates.add(segments[1])
    return sorted(c for c in candidates if not is_opaque_identifier(c))
