import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Any, Tuple, Iterator

# --- Closed enumerations ---

class SafetyTier(Enum):
    """Risk hint shown next to a matched item. Never a security control."""
    SAFE = "safe"
    CAUTION = "caution"
    DANGEROUS = "dangerous"


class MatchKind(Enum):
    """How a PatternRule's pattern string is compared against a path."""
    EXACT = "exact"           # whole file name, e.g. ".DS_Store"
    EXTENSION = "extension"   # file name suffix starting with '.', e.g. ".pyc"
    DIRNAME = "dirname"       # directory name or trailing components, e.g. ".cache/pip"
    PREFIX = "prefix"         # name starts with pattern
    SUFFIX = "suffix"         # name ends with pattern, e.g. "~"


class IssueKind(Enum):
    """Per-path, non-fatal problems collected alongside results."""
    IO_ERROR = "io_error"
    PERMISSION_DENIED = "permission_denied"
    PATH_REJECTED = "path_rejected"
    HASHING_FAILED = "hashing_failed"


class ScanOutcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CleanupState(Enum):
    REQUESTED = "requested"
    VALIDATING = "validating"
    EXECUTING = "executing"
    REJECTED = "rejected"
    COMPLETED = "completed"

# --- Scan records ---

@dataclass
class FileRecord:
    """Metadata for a single file seen by the walker. Never persisted."""
    path: Path
    size_bytes: int
    modified_time: float
    is_symlink: bool = False
    # (st_dev, st_ino) of the file itself; identifies hard links and files reached twice via symlinks
    inode_key: Optional[Tuple[int, int]] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class PatternRule:
    """A single entry of the static bloat/junk rule table."""
    id: str
    match_kind: MatchKind
    pattern: str
    category_id: str
    display_name: str
    safety_tier: SafetyTier
    description: str = ""


@dataclass
class BloatEntry:
    path: Path
    size_bytes: int
    file_count: int = 0
    rule_id: str = ""


@dataclass
class BloatCategory:
    """All bloat entries of one category, with their summed size."""
    category_id: str
    display_name: str
    safety_tier: SafetyTier
    total_size_bytes: int = 0
    entries: List[BloatEntry] = field(default_factory=list)


@dataclass
class DuplicateEntry:
    path: Path
    size_bytes: int
    modified_time: float


@dataclass
class DuplicateGroup:
    """Files with identical size and identical content hash (at least two)."""
    content_hash: str
    size_bytes: int
    entries: List[DuplicateEntry]
    savable_space_bytes: int = 0

    def __post_init__(self):
        # Keeping one copy frees every other one
        self.savable_space_bytes = self.size_bytes * max(len(self.entries) - 1, 0)


@dataclass
class ScanIssue:
    """A per-path problem recorded during a scan or cleanup."""
    path: str
    kind: IssueKind
    reason: str


@dataclass
class ScanResult:
    """Items produced by a scan, plus how it ended and what went wrong on the way."""
    root: Path
    items: List[Any] = field(default_factory=list)
    outcome: ScanOutcome = ScanOutcome.COMPLETED
    issues: List[ScanIssue] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def cancelled(self) -> bool:
        return self.outcome is ScanOutcome.CANCELLED

    @property
    def error_count(self) -> int:
        return len(self.issues)

# --- Cleanup ---

@dataclass
class CleanupRequest:
    paths: List[str]
    scan_root: str
    dry_run: bool = False
    use_trash: bool = True
    confirm_root: bool = False # Required to delete the scan root itself
    category: Optional[str] = None # Bloat category the paths were picked from, recorded in the audit log


@dataclass
class CleanupResult:
    """Outcome of a cleanup batch. Partial failure never aborts the batch."""
    deleted: List[str] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list) # (path, reason)
    errors: List[ScanIssue] = field(default_factory=list)
    audit_failures: List[ScanIssue] = field(default_factory=list) # Removed, but the audit record could not be written
    state: CleanupState = CleanupState.REQUESTED
    dry_run: bool = False
    bytes_freed: int = 0
    rejection_reason: Optional[str] = None

    @property
    def rejected(self) -> bool:
        return self.state is CleanupState.REJECTED


@dataclass
class AuditRecord:
    """One executed deletion, as written to the audit log."""
    path: str
    outcome: str # "trashed", "deleted" or "failed"
    timestamp: str
    size_bytes: int = 0
    method: str = "trash"
    detail: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def now(cls, path: str, outcome: str, size_bytes: int = 0, method: str = "trash", detail: Optional[str] = None,
            category: Optional[str] = None) -> "AuditRecord":
        stamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        return cls(path=path, outcome=outcome, timestamp=stamp, size_bytes=size_bytes, method=method, detail=detail, category=category)
