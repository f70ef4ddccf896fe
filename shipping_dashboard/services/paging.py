from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


class PageFailurePolicy(str, Enum):
    """What a range fetch does when a page after the first one fails."""

    SKIP = "skip"
    RETRY = "retry"
    ABORT = "abort"


@dataclass
class PagedResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total_reported: Optional[int] = None
    failed_offsets: List[int] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.failed_offsets) or self.stopped_early

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.items)
