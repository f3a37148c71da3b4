import os
import shutil
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from send2trash import send2trash

# Project imports
from ..core.errors import AuditLogError
from ..core.models import AuditRecord, CleanupRequest, CleanupResult, CleanupState, IssueKind, ScanIssue
from ..db.audit_log import AuditLog
from ..utils.helpers import human_readable_size, issue_kind_for
from .path_validator import PathValidator
from .walker import default_worker_count

logger = logging.getLogger(__name__)

# Safety limits for a single cleanup batch
MAX_BATCH_DELETE_COUNT = 10_000
MAX_BATCH_DELETE_SIZE = 100 * 1024 ** 3 # 100 GiB


@dataclass
class _Candidate:
    index: int # position in the request, keeps result order stable
    path: Path # as requested (absolute, not resolved)
    resolved: Path
    size_bytes: int


def _disk_usage(path: Path) -> int:
    """Apparent size of a file, or of everything below a directory. Links are not followed."""
    try:
        st = path.lstat()
    except OSError:
        return 0
    if not path.is_dir() or path.is_symlink():
        return st.st_size
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=lambda e: logger.debug(f"Size estimate skipped {e.filename}: {e.strerror}")):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError:
                pass
    return total


class CleanupExecutor:
    """
    Validates and executes cleanup batches.

    Every path is checked by the PathValidator twice: once while the batch
    is validated and again right before it is removed. Removals of
    independent paths run concurrently; audit records are written by the
    calling thread only, one per executed removal, before execute() returns.
    """

    def __init__(self, audit_log: AuditLog, validator: Optional[PathValidator] = None,
                 max_batch_count: int = MAX_BATCH_DELETE_COUNT, max_batch_bytes: Optional[int] = MAX_BATCH_DELETE_SIZE,
                 max_workers: Optional[int] = None, trash_func: Callable[[str], None] = send2trash):
        self.audit_log = audit_log
        self.validator = validator or PathValidator()
        self.max_batch_count = max_batch_count
        self.max_batch_bytes = max_batch_bytes
        self.max_workers = max_workers or default_worker_count()
        self.trash_func = trash_func

    def execute(self, request: CleanupRequest) -> CleanupResult:
        """
        Runs a cleanup request through Requested -> Validating -> Executing -> Completed.

        Args:
            request: Paths to remove, the scan root they were selected under, and flags.

        Returns:
            A CleanupResult. Its state is REJECTED only when the batch as a
            whole is unacceptable; single bad paths end up in `errors` or
            `skipped` and the rest of the batch still runs.
        """
        result = CleanupResult(dry_run=request.dry_run, state=CleanupState.REQUESTED)
        method = "trash" if request.use_trash else "permanent"
        logger.info(f"{'[DRY RUN] ' if request.dry_run else ''}Cleanup of {len(request.paths)} paths under {request.scan_root} (method={method})")

        if not request.paths:
            return self._reject(result, "no paths given")
        if len(request.paths) > self.max_batch_count:
            return self._reject(result, f"cannot delete {len(request.paths)} paths at once (maximum: {self.max_batch_count})")

        result.state = CleanupState.VALIDATING
        candidates = self._validate(request, result)
        if not candidates:
            if result.errors:
                return self._reject(result, "none of the requested paths passed validation")
            result.state = CleanupState.COMPLETED
            return result

        total_size = sum(c.size_bytes for c in candidates)
        if self.max_batch_bytes is not None and total_size > self.max_batch_bytes:
            return self._reject(result, f"cannot delete {human_readable_size(total_size)} at once (maximum: {human_readable_size(self.max_batch_bytes)})")

        if request.dry_run:
            for candidate in candidates:
                logger.info(f"[DRY RUN] Would {'trash' if request.use_trash else 'delete'} {candidate.path}")
            result.deleted = [str(c.path) for c in candidates]
            result.bytes_freed = total_size
            result.state = CleanupState.COMPLETED
            return result

        try:
            self.audit_log.check_writable()
        except AuditLogError as e:
            logger.error(str(e))
            return self._reject(result, str(e))

        result.state = CleanupState.EXECUTING
        self._execute(candidates, request, result)
        result.state = CleanupState.COMPLETED
        logger.info(f"Cleanup complete: deleted={len(result.deleted)}, skipped={len(result.skipped)}, errors={len(result.errors)}, unaudited={len(result.audit_failures)}, freed={human_readable_size(result.bytes_freed)}")
        return result

    def _reject(self, result: CleanupResult, reason: str) -> CleanupResult:
        logger.warning(f"Cleanup request rejected: {reason}")
        result.state = CleanupState.REJECTED
        result.rejection_reason = reason
        result.deleted = []
        result.bytes_freed = 0
        return result

    def _validate(self, request: CleanupRequest, result: CleanupResult) -> List[_Candidate]:
        """Selection-time checks. Produces the ordered list of paths that would be removed."""
        accepted: List[_Candidate] = []
        seen: Dict[Path, str] = {}
        for index, raw in enumerate(request.paths):
            path = Path(os.path.abspath(os.path.expanduser(str(raw))))
            verdict = self.validator.validate(path, request.scan_root, request.confirm_root)
            if not verdict.allowed:
                logger.warning(f"Rejected {path}: {verdict.reason}")
                result.errors.append(ScanIssue(path=str(path), kind=IssueKind.PATH_REJECTED, reason=verdict.reason or "denied"))
                continue
            if not os.path.lexists(path):
                result.skipped.append((str(path), "does not exist"))
                continue
            if verdict.resolved in seen:
                result.skipped.append((str(path), f"same as {seen[verdict.resolved]}"))
                continue
            seen[verdict.resolved] = str(path)
            accepted.append(_Candidate(index=index, path=path, resolved=verdict.resolved, size_bytes=0))

        # Removing a directory already removes everything below it
        kept: List[_Candidate] = []
        for candidate in sorted(accepted, key=lambda c: len(c.resolved.parts)):
            outer = next((k for k in kept if k.resolved in candidate.resolved.parents), None)
            if outer is not None:
                result.skipped.append((str(candidate.path), f"inside {outer.path}, which is also being removed"))
                continue
            kept.append(candidate)

        kept.sort(key=lambda c: c.index)
        for candidate in kept:
            candidate.size_bytes = _disk_usage(candidate.path)
        return kept

    def _remove(self, candidate: _Candidate, request: CleanupRequest) -> Tuple[bool, Optional[ScanIssue]]:
        """Runs on a worker thread: re-validate, remove, verify."""
        path = candidate.path
        # Re-check right before acting: the path may have been replaced since validation
        verdict = self.validator.validate(path, request.scan_root, request.confirm_root)
        if not verdict.allowed:
            logger.warning(f"Rejected {path} at execution time: {verdict.reason}")
            return False, ScanIssue(path=str(path), kind=IssueKind.PATH_REJECTED, reason=verdict.reason or "denied")

        try:
            if request.use_trash:
                logger.debug(f"Moving to trash: {path}")
                self.trash_func(str(path))
            elif path.is_dir() and not path.is_symlink():
                logger.warning(f"Permanently deleting directory: {path}")
                shutil.rmtree(path)
            else:
                logger.warning(f"Permanently deleting: {path}")
                path.unlink()
        except OSError as e:
            logger.error(f"Error deleting {path}: {e}")
            return True, ScanIssue(path=str(path), kind=issue_kind_for(e), reason=e.strerror or str(e))

        if os.path.lexists(path):
            logger.warning(f"Path still exists after deletion: {path}")
            return True, ScanIssue(path=str(path), kind=IssueKind.IO_ERROR, reason="still exists after deletion")
        return True, None

    def _execute(self, candidates: List[_Candidate], request: CleanupRequest, result: CleanupResult):
        method = "trash" if request.use_trash else "permanent"
        done: List[_Candidate] = []
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="cleanup") as pool:
            futures = {pool.submit(self._remove, c, request): c for c in candidates}
            for future in as_completed(futures):
                candidate = futures[future]
                attempted, issue = future.result()
                if issue is not None:
                    result.errors.append(issue)
                else:
                    done.append(candidate)
                    result.bytes_freed += candidate.size_bytes
                if not attempted:
                    continue
                # Only this thread writes the audit log
                if issue is None:
                    outcome = "trashed" if request.use_trash else "deleted"
                else:
                    outcome = "failed"
                record = AuditRecord.now(str(candidate.path), outcome, size_bytes=candidate.size_bytes,
                                         method=method, detail=issue.reason if issue else None,
                                         category=request.category)
                try:
                    self.audit_log.append(record)
                except AuditLogError as e:
                    logger.critical(f"Deletion of {candidate.path} could not be audited: {e}")
                    result.audit_failures.append(ScanIssue(path=str(candidate.path), kind=IssueKind.IO_ERROR, reason=f"audit log write failed: {e}"))

        done.sort(key=lambda c: c.index)
        result.deleted = [str(c.path) for c in done]
