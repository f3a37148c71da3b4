import time
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Union

# Project imports
from ..core.cancellation import CancellationToken
from ..core.models import AuditRecord, CleanupRequest, CleanupResult, ScanOutcome, ScanResult
from ..modules.config_manager import ConfigManager
from ..db.audit_log import AuditLog
from ..modules.bloat import BloatClassifier
from ..modules.duplicates import DuplicateDetector, DEFAULT_ALGORITHM, DEFAULT_MAX_SIZE, DEFAULT_MIN_SIZE
from ..modules.execution import CleanupExecutor, MAX_BATCH_DELETE_COUNT, MAX_BATCH_DELETE_SIZE
from ..modules.large_files import find_large_files, DEFAULT_LARGE_FILE_SIZE
from ..modules.path_validator import PathValidator, validate_scan_root
from ..modules.walker import DirectoryWalker
from ..utils.helpers import human_readable_size

logger = logging.getLogger(__name__)

DEFAULT_BLOAT_MIN_SIZE = 1024 * 1024 # Entries under 1 MB are not worth listing


class CoreController:
    """Orchestrates scans and cleanups for the UI layer."""

    def __init__(self, config_manager: ConfigManager, audit_log: AuditLog, validator: Optional[PathValidator] = None,
                 trash_func: Optional[Callable[[str], None]] = None):
        self.config = config_manager
        self.audit_log = audit_log
        self.validator = validator or PathValidator()

        max_batch_bytes = self.config.get_size('cleanup.max_batch_size', MAX_BATCH_DELETE_SIZE)
        executor_kwargs: Dict[str, Any] = {
            "validator": self.validator,
            "max_batch_count": self.config.get('cleanup.max_batch_count', MAX_BATCH_DELETE_COUNT),
            "max_batch_bytes": max_batch_bytes or None, # 0 disables the byte cap
            "max_workers": self.config.get_max_workers(),
        }
        if trash_func is not None:
            executor_kwargs["trash_func"] = trash_func
        self.executor = CleanupExecutor(self.audit_log, **executor_kwargs)

        self._active_tokens: Set[CancellationToken] = set()
        self._tokens_lock = threading.Lock()

    # --- Cancellation ---

    def _register(self, cancel_token: Optional[CancellationToken]) -> CancellationToken:
        token = cancel_token or CancellationToken()
        with self._tokens_lock:
            self._active_tokens.add(token)
        return token

    def _unregister(self, token: CancellationToken):
        with self._tokens_lock:
            self._active_tokens.discard(token)

    def cancel(self):
        """Asks every running scan to stop. Their results come back marked CANCELLED."""
        with self._tokens_lock:
            tokens = list(self._active_tokens)
        logger.info(f"Cancelling {len(tokens)} running scan(s)")
        for token in tokens:
            token.cancel()

    # --- Scans ---

    def _walker(self, root: Path, min_size: int, follow_symlinks: Optional[bool], token: CancellationToken) -> DirectoryWalker:
        if follow_symlinks is None:
            follow_symlinks = self.config.get_bool('scan.follow_symlinks', False)
        return DirectoryWalker(
            root,
            follow_symlinks=follow_symlinks,
            min_size=min_size,
            max_workers=self.config.get_max_workers(),
            exclude_patterns=self.config.get_exclude_patterns(),
            cancel_token=token,
        )

    def scan_large_files(self, root: Union[str, Path], min_size: Optional[int] = None, follow_symlinks: Optional[bool] = None,
                         cancel_token: Optional[CancellationToken] = None) -> ScanResult:
        """
        Lists files of at least `min_size` bytes under `root`, largest first.

        Raises:
            ScanRootError: if `root` cannot be scanned at all.
        """
        resolved = validate_scan_root(root, self.validator)
        if min_size is None:
            min_size = self.config.get_size('large_files.min_size', DEFAULT_LARGE_FILE_SIZE)
        logger.info(f"Large-file scan of {resolved} (threshold {human_readable_size(min_size)})")

        token = self._register(cancel_token)
        started = time.monotonic()
        try:
            walker = self._walker(resolved, min_size, follow_symlinks, token)
            files = find_large_files(walker.walk(), min_size)
        finally:
            self._unregister(token)

        result = ScanResult(root=resolved, items=files, outcome=walker.outcome, issues=walker.issues,
                            elapsed_seconds=time.monotonic() - started)
        logger.info(f"Found {len(files)} large files in {result.elapsed_seconds:.2f}s ({result.outcome.value})")
        return result

    def scan_bloat(self, root: Union[str, Path], min_size: Optional[int] = None, follow_symlinks: Optional[bool] = None,
                   cancel_token: Optional[CancellationToken] = None) -> ScanResult:
        """
        Groups known-regenerable content under `root` into bloat categories.

        `min_size` filters reported entries, not walked files: every file has
        to be seen to get directory totals right.
        """
        resolved = validate_scan_root(root, self.validator)
        if min_size is None:
            min_size = self.config.get_size('bloat.min_size', DEFAULT_BLOAT_MIN_SIZE)
        logger.info(f"Bloat scan of {resolved} (entries from {human_readable_size(min_size)})")

        token = self._register(cancel_token)
        started = time.monotonic()
        try:
            walker = self._walker(resolved, 0, follow_symlinks, token)
            categories = BloatClassifier(min_size=min_size).classify_records(walker.walk(), resolved)
        finally:
            self._unregister(token)

        result = ScanResult(root=resolved, items=categories, outcome=walker.outcome, issues=walker.issues,
                            elapsed_seconds=time.monotonic() - started)
        total = sum(c.total_size_bytes for c in categories)
        logger.info(f"Found {human_readable_size(total)} of bloat in {len(categories)} categories ({result.outcome.value})")
        return result

    def scan_duplicates(self, root: Union[str, Path], min_size: Optional[int] = None, follow_symlinks: Optional[bool] = None,
                        cancel_token: Optional[CancellationToken] = None) -> ScanResult:
        """
        Finds groups of byte-identical files under `root`.

        Raises:
            ScanRootError: if `root` cannot be scanned at all.
            ConfigError: if the configured hash algorithm or size range is unusable.
        """
        resolved = validate_scan_root(root, self.validator)
        if min_size is None:
            min_size = self.config.get_size('duplicates.min_size', DEFAULT_MIN_SIZE)
        max_size = self.config.get_size('duplicates.max_size', DEFAULT_MAX_SIZE)
        algorithm = self.config.get('duplicates.algorithm', DEFAULT_ALGORITHM)
        logger.info(f"Duplicate scan of {resolved} ({algorithm}, sizes {human_readable_size(min_size)} to {human_readable_size(max_size) if max_size else 'unlimited'})")

        token = self._register(cancel_token)
        started = time.monotonic()
        try:
            detector = DuplicateDetector(min_size=min_size, max_size=max_size or None, max_workers=self.config.get_max_workers(),
                                         cancel_token=token, algorithm=algorithm)
            walker = self._walker(resolved, min_size, follow_symlinks, token)
            groups = detector.find_duplicates(walker.walk())
        finally:
            self._unregister(token)

        outcome = ScanOutcome.CANCELLED if ScanOutcome.CANCELLED in (walker.outcome, detector.outcome) else ScanOutcome.COMPLETED
        result = ScanResult(root=resolved, items=groups, outcome=outcome, issues=walker.issues + detector.issues,
                            elapsed_seconds=time.monotonic() - started)
        logger.info(f"Found {len(groups)} duplicate groups in {result.elapsed_seconds:.2f}s ({result.outcome.value})")
        return result

    # --- Cleanup ---

    def cleanup(self, paths: List[str], scan_root: Union[str, Path], dry_run: bool = False, use_trash: Optional[bool] = None,
                confirm_root: bool = False, category: Optional[str] = None) -> CleanupResult:
        """
        Removes user-selected paths that came from a scan of `scan_root`.

        Args:
            paths: Paths picked from a scan result.
            scan_root: Root of that scan; nothing outside it is touched.
            dry_run: Report what would happen without touching the disk.
            use_trash: Move to the trash instead of deleting. None uses the configured default.
            confirm_root: Allow the scan root itself to be removed.
            category: Bloat category the paths were picked from, kept in the audit log.
        """
        if use_trash is None:
            use_trash = self.config.get_bool('cleanup.use_trash', True)
        request = CleanupRequest(paths=[str(p) for p in paths], scan_root=str(scan_root), dry_run=dry_run,
                                 use_trash=use_trash, confirm_root=confirm_root, category=category)
        return self.executor.execute(request)

    # --- History ---

    def deletion_history(self, limit: Optional[int] = None) -> List[AuditRecord]:
        return self.audit_log.read_history(limit)

    def deletion_summary(self) -> Dict[str, Dict[str, int]]:
        return self.audit_log.summary()

    def deletion_category_summary(self) -> Dict[str, Dict[str, int]]:
        return self.audit_log.category_summary()

    def clear_history(self):
        self.audit_log.clear()
