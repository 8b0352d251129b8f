from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ObjectEntry:
    relative_path: str
    size_hint: Optional[int] = None
    declared_content_type: Optional[str] = None
    source_path: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.relative_path.strip("/"):
            raise ValueError("ObjectEntry.relative_path must be non-empty")


# Ordered bucket name -> objects destined for that bucket.
MigrationPlan = Dict[str, List[ObjectEntry]]


def plan_total(plan: MigrationPlan) -> int:
    return sum(len(entries) for entries in plan.values())
