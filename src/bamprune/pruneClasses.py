from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import ConfigurationError

# BAM uses -1 for "no reference"
UNMAPPED = -1


# One @SQ entry; position in the dictionary is its identifier
@dataclass
class RefEntry:
    name: str
    length: int
    extra: Dict[str, object] = field(default_factory=dict)

    def to_sq(self) -> Dict[str, object]:
        sq = {"SN": self.name, "LN": self.length}
        sq.update(self.extra)
        return sq

    @classmethod
    def from_sq(cls, sq: Dict[str, object]) -> "RefEntry":
        extra = {k: v for k, v in sq.items() if k not in ("SN", "LN")}
        return cls(name=str(sq["SN"]), length=int(sq["LN"]), extra=extra)


@dataclass(frozen=True)
class ForgetConfig:
    """Options recognised by the forget engine."""
    keep_mate_only: bool = True
    progress_interval: int = 100000  # 0 disables progress

    def __post_init__(self):
        if self.progress_interval < 0:
            raise ConfigurationError(f"progress interval must be >= 0, got {self.progress_interval}")


@dataclass
class ForgetResult:
    original_reference_count: int
    new_reference_count: int
    records_processed: int


@dataclass
class ContentsSummary:
    """What `contents` found, kept for callers and tests."""
    header_line: Optional[Dict[str, str]]
    references: List[RefEntry]
    read_groups: List[Dict[str, str]]
    programs: List[Dict[str, str]]
    comments: List[str]
    reads_examined: int
