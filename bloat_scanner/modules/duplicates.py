import logging
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, Future, wait, FIRST_COMPLETED
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

# Project imports
from ..core.cancellation import CancellationToken
from ..core.errors import ConfigError, HashingFailed
from ..core.models import DuplicateEntry, DuplicateGroup, FileRecord, IssueKind, ScanIssue, ScanOutcome
from ..utils.helpers import calculate_hash
from .walker import default_worker_count

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZE = 1024 # 1 KiB; tiny files rarely matter and are numerous
DEFAULT_MAX_SIZE = 100 * 1024 * 1024 # 100 MiB hashing ceiling, tunable
DEFAULT_ALGORITHM = "sha256"

# Only collision-resistant digests: a false duplicate would delete unique data
STRONG_ALGORITHMS = {"sha256", "sha384", "sha512", "sha3_256", "sha3_384", "sha3_512", "blake2b", "blake2s"}


class DuplicateDetector:
    """
    Two-phase duplicate finder: bucket by exact size, then hash same-size files.

    Files that cannot be hashed are left out and recorded; a missed duplicate
    is acceptable, a wrong one is not.
    """

    def __init__(self, min_size: int = DEFAULT_MIN_SIZE, max_size: Optional[int] = DEFAULT_MAX_SIZE,
                 max_workers: Optional[int] = None, cancel_token: Optional[CancellationToken] = None,
                 algorithm: str = DEFAULT_ALGORITHM):
        if algorithm not in STRONG_ALGORITHMS:
            raise ConfigError(f"Hash algorithm '{algorithm}' is not allowed for duplicate detection (use one of {sorted(STRONG_ALGORITHMS)})")
        if max_size is not None and max_size < min_size:
            raise ConfigError(f"Duplicate size range is empty: min {min_size} > max {max_size}")
        self.min_size = min_size
        self.max_size = max_size
        self.max_workers = max_workers or default_worker_count()
        self.cancel_token = cancel_token or CancellationToken()
        self.algorithm = algorithm

        self.outcome = ScanOutcome.COMPLETED
        self.files_hashed = 0
        self._issues: List[ScanIssue] = []
        self._issues_lock = threading.Lock()

    @property
    def issues(self) -> List[ScanIssue]:
        with self._issues_lock:
            return list(self._issues)

    def _in_range(self, size: int) -> bool:
        if size < self.min_size:
            return False
        return self.max_size is None or size <= self.max_size

    def bucket_by_size(self, records: Iterable[FileRecord]) -> Dict[int, List[FileRecord]]:
        """Phase 1: exact-size buckets with at least two distinct files."""
        buckets: Dict[int, List[FileRecord]] = defaultdict(list)
        seen_inodes: Set[Tuple[int, int]] = set()
        for record in records:
            if not self._in_range(record.size_bytes):
                continue
            # Hard links and followed symlinks are the same bytes on disk, not copies
            if record.inode_key is not None:
                if record.inode_key in seen_inodes:
                    logger.debug(f"Ignoring second link to the same file: {record.path}")
                    continue
                seen_inodes.add(record.inode_key)
            buckets[record.size_bytes].append(record)

        survivors = {size: members for size, members in buckets.items() if len(members) > 1}
        logger.info(f"{len(buckets)} size buckets, {len(survivors)} with more than one file")
        return survivors

    def _hash(self, record: FileRecord) -> Tuple[FileRecord, Optional[str]]:
        try:
            return record, calculate_hash(record.path, self.algorithm)
        except HashingFailed as e:
            logger.warning(str(e))
            with self._issues_lock:
                self._issues.append(ScanIssue(path=str(record.path), kind=IssueKind.HASHING_FAILED, reason=str(e.cause)))
            return record, None

    def _hash_all(self, candidates: Iterator[FileRecord]) -> Iterator[Tuple[FileRecord, Optional[str]]]:
        """Phase 2 worker fan-out, with a bounded number of files queued."""
        max_in_flight = self.max_workers * 4
        in_flight: Set[Future] = set()
        exhausted = False
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="hasher") as pool:
            try:
                while in_flight or not exhausted:
                    if self.cancel_token.is_cancelled:
                        if self.outcome is not ScanOutcome.CANCELLED:
                            logger.info(f"Hashing cancelled after {self.files_hashed} files")
                        self.outcome = ScanOutcome.CANCELLED
                        exhausted = True
                        in_flight = {f for f in in_flight if not f.cancel()}
                        if not in_flight:
                            break
                    while not exhausted and len(in_flight) < max_in_flight:
                        record = next(candidates, None)
                        if record is None:
                            exhausted = True
                            break
                        in_flight.add(pool.submit(self._hash, record))
                    if not in_flight:
                        break
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        self.files_hashed += 1
                        yield future.result()
            finally:
                for future in in_flight:
                    future.cancel()

    def find_duplicates(self, records: Iterable[FileRecord]) -> List[DuplicateGroup]:
        """
        Groups byte-identical files.

        Args:
            records: FileRecords from a walk; consumed once.

        Returns:
            DuplicateGroups sorted by savable space, largest first. Each group
            has at least two entries of identical size and hash.
        """
        buckets = self.bucket_by_size(records)
        candidates = (record for members in buckets.values() for record in members)

        by_content: Dict[Tuple[int, str], List[FileRecord]] = defaultdict(list)
        for record, digest in self._hash_all(candidates):
            if digest is not None:
                by_content[(record.size_bytes, digest)].append(record)

        groups: List[DuplicateGroup] = []
        for (size, digest), members in by_content.items():
            if len(members) < 2:
                continue
            entries = sorted(
                (DuplicateEntry(path=m.path, size_bytes=m.size_bytes, modified_time=m.modified_time) for m in members),
                key=lambda e: str(e.path),
            )
            groups.append(DuplicateGroup(content_hash=digest, size_bytes=size, entries=entries))

        groups.sort(key=lambda g: (-g.savable_space_bytes, g.content_hash))
        logger.info(f"Found {len(groups)} duplicate groups after hashing {self.files_hashed} files")
        return groups
