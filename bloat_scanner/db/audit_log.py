import os
import json
import logging
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional

# Project imports
from ..core.errors import AuditLogError
from ..core.models import AuditRecord

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Append-only, line-delimited JSON record of every executed deletion.

    One instance is created per application run and handed to whoever
    deletes things. All writes go through a single lock, so lines are never
    interleaved, and each write is flushed to disk before append() returns.
    """

    def __init__(self, log_path: Path):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create audit log directory {self.log_path.parent}: {e}", exc_info=True)
            raise AuditLogError(f"Cannot create audit log directory {self.log_path.parent}: {e}") from e
        logger.debug(f"Audit log at {self.log_path}")

    def append(self, record: AuditRecord):
        """Writes one record. Raises AuditLogError if it cannot be persisted."""
        self.append_many([record])

    def append_many(self, records: Iterable[AuditRecord]):
        lines = [json.dumps(asdict(r), sort_keys=True) + "\n" for r in records]
        if not lines:
            return
        with self._lock:
            try:
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.writelines(lines)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                logger.error(f"Failed to write audit log {self.log_path}: {e}", exc_info=True)
                raise AuditLogError(f"Failed to write audit log {self.log_path}: {e}") from e
        logger.debug(f"Appended {len(lines)} audit record(s)")

    def check_writable(self):
        """Raises AuditLogError unless the log can be opened for appending."""
        with self._lock:
            try:
                with open(self.log_path, "a", encoding="utf-8"):
                    pass
            except OSError as e:
                raise AuditLogError(f"Audit log {self.log_path} is not writable: {e}") from e

    def read_history(self, limit: Optional[int] = None) -> List[AuditRecord]:
        """
        Returns records oldest first; with `limit`, only the newest `limit` ones.
        Lines that fail to parse are skipped with a warning.
        """
        if not self.log_path.exists():
            return []

        records: List[AuditRecord] = []
        with self._lock:
            with open(self.log_path, "r", encoding="utf-8") as f:
                lines = f.readlines()

        for line_no, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                records.append(AuditRecord(**data))
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(f"Skipping malformed audit log line {line_no}: {e}")

        if limit is not None and limit >= 0:
            return records[-limit:] if limit else []
        return records

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Count and total bytes per outcome ("trashed", "deleted", "failed")."""
        stats: Dict[str, Dict[str, int]] = {}
        for record in self.read_history():
            entry = stats.setdefault(record.outcome, {"count": 0, "size_bytes": 0})
            entry["count"] += 1
            entry["size_bytes"] += record.size_bytes
        return stats

    def category_summary(self) -> Dict[str, Dict[str, int]]:
        """Count and bytes freed per bloat category, for successful removals only."""
        stats: Dict[str, Dict[str, int]] = {}
        for record in self.read_history():
            if record.outcome == "failed":
                continue
            entry = stats.setdefault(record.category or "uncategorized", {"count": 0, "size_bytes": 0})
            entry["count"] += 1
            entry["size_bytes"] += record.size_bytes
        return stats

    def clear(self):
        """Removes the log file. Irreversible; only on explicit user request."""
        with self._lock:
            if self.log_path.exists():
                self.log_path.unlink()
                logger.warning(f"Audit log {self.log_path} cleared by user request")
