import os
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, Future, wait, FIRST_COMPLETED
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

# Project imports
from ..core.cancellation import CancellationToken
from ..core.models import FileRecord, ScanIssue, ScanOutcome
from ..utils.helpers import is_path_excluded, issue_kind_for

logger = logging.getLogger(__name__)

InodeKey = Tuple[int, int]


def default_worker_count() -> int:
    """Worker pool size matching the CPUs this process may run on."""
    try:
        return max(len(os.sched_getaffinity(0)), 1)
    except AttributeError: # Not available on macOS/Windows
        return os.cpu_count() or 4


class DirectoryWalker:
    """
    Parallel traversal of a directory tree, producing FileRecords lazily.

    Each work unit lists one directory on a fixed-size thread pool. Only a
    bounded number of listings is in flight at once and records are handed
    out directory by directory, so memory stays flat on very large trees.
    Output order is not defined.
    """

    def __init__(self, root: Union[str, Path], follow_symlinks: bool = False, min_size: int = 0,
                 max_workers: Optional[int] = None, exclude_patterns: Sequence[str] = (),
                 cancel_token: Optional[CancellationToken] = None):
        self.root = Path(root)
        self.follow_symlinks = follow_symlinks
        self.min_size = max(min_size or 0, 0)
        self.max_workers = max_workers or default_worker_count()
        self.exclude_patterns = list(exclude_patterns)
        self.cancel_token = cancel_token or CancellationToken()

        self.outcome = ScanOutcome.COMPLETED
        self.files_seen = 0
        self.dirs_seen = 0
        self._issues: List[ScanIssue] = []
        self._issues_lock = threading.Lock()

    @property
    def issues(self) -> List[ScanIssue]:
        with self._issues_lock:
            return list(self._issues)

    def _record_issue(self, path: Union[str, Path], error: OSError):
        kind = issue_kind_for(error)
        reason = error.strerror or str(error)
        logger.warning(f"Skipping {path}: {reason}")
        with self._issues_lock:
            self._issues.append(ScanIssue(path=str(path), kind=kind, reason=reason))

    def _cancelled(self) -> bool:
        return self.cancel_token.is_cancelled

    def _list_directory(self, directory: Path) -> Tuple[List[FileRecord], List[Tuple[Path, Optional[InodeKey]]]]:
        """Runs on a worker thread. Returns the directory's files and its subdirectories."""
        records: List[FileRecord] = []
        subdirs: List[Tuple[Path, Optional[InodeKey]]] = []
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            self._record_issue(directory, e)
            return records, subdirs

        for entry in entries:
            path = Path(entry.path)
            if self.exclude_patterns and is_path_excluded(path, self.exclude_patterns):
                continue
            try:
                is_link = entry.is_symlink()
                if is_link and not self.follow_symlinks:
                    continue
                if entry.is_dir(follow_symlinks=self.follow_symlinks):
                    key = None
                    if self.follow_symlinks:
                        st = entry.stat(follow_symlinks=True)
                        key = (st.st_dev, st.st_ino)
                    subdirs.append((path, key))
                    continue
                if not entry.is_file(follow_symlinks=self.follow_symlinks):
                    # Sockets, FIFOs, devices and dangling links carry no reclaimable data
                    logger.debug(f"Ignoring non-regular entry: {path}")
                    continue
                st = entry.stat(follow_symlinks=self.follow_symlinks)
            except OSError as e:
                self._record_issue(path, e)
                continue

            if st.st_size < self.min_size:
                continue
            records.append(FileRecord(
                path=path,
                size_bytes=st.st_size,
                modified_time=st.st_mtime,
                is_symlink=is_link,
                inode_key=(st.st_dev, st.st_ino),
            ))
        return records, subdirs

    def walk(self) -> Iterator[FileRecord]:
        """
        Yields a FileRecord for every regular file at or above min_size.

        Unreadable entries are recorded in `issues` and skipped. If the
        cancellation token fires, no new directories are listed, listings
        already running are still drained and `outcome` becomes CANCELLED.
        """
        logger.info(f"Walking {self.root} (follow_symlinks={self.follow_symlinks}, workers={self.max_workers})")
        pending: Deque[Path] = deque([self.root])
        visited: Set[InodeKey] = set()
        if self.follow_symlinks:
            st = self.root.stat()
            visited.add((st.st_dev, st.st_ino))

        max_in_flight = self.max_workers * 2
        in_flight: Dict[Future, Path] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="walker") as pool:
            try:
                while pending or in_flight:
                    if self._cancelled():
                        if self.outcome is not ScanOutcome.CANCELLED:
                            logger.info(f"Walk of {self.root} cancelled after {self.files_seen} files")
                        self.outcome = ScanOutcome.CANCELLED
                        pending.clear()
                        for future in [f for f in in_flight if f.cancel()]:
                            del in_flight[future]
                        if not in_flight:
                            break

                    # Depth-first keeps the frontier small
                    while pending and len(in_flight) < max_in_flight:
                        directory = pending.pop()
                        in_flight[pool.submit(self._list_directory, directory)] = directory

                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in done:
                        directory = in_flight.pop(future)
                        records, subdirs = future.result()
                        self.dirs_seen += 1
                        if not self._cancelled():
                            for subdir, key in subdirs:
                                if key is not None:
                                    if key in visited:
                                        logger.debug(f"Not re-entering already visited directory: {subdir}")
                                        continue
                                    visited.add(key)
                                pending.append(subdir)
                        for record in records:
                            self.files_seen += 1
                            yield record
            finally:
                # Consumer stopped early or something failed: drop work that never started
                for future in in_flight:
                    future.cancel()

        # Cancelled while the last listings were running: their subdirectories were dropped
        if self._cancelled() and self.outcome is ScanOutcome.COMPLETED:
            logger.info(f"Walk of {self.root} cancelled after {self.files_seen} files")
            self.outcome = ScanOutcome.CANCELLED

        if self.outcome is ScanOutcome.COMPLETED:
            logger.info(f"Walk of {self.root} finished: {self.files_seen} files in {self.dirs_seen} directories, {len(self._issues)} issues")
