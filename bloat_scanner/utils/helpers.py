import re
import errno
import hashlib
import logging
import fnmatch
from pathlib import Path
from typing import Optional, Union, Iterable

from ..core.errors import HashingFailed
from ..core.models import IssueKind

logger = logging.getLogger(__name__)

SIZE_UNITS = {
    "B": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
}

HASH_CHUNK_SIZE = 1024 * 1024

def parse_size(size_str: Union[str, int]) -> Optional[int]:
    """
    Parses a human-readable size string (e.g., "500M", "2G", "1024") into bytes.
    Returns None if parsing fails.
    """
    if isinstance(size_str, int):
        return size_str if size_str >= 0 else None
    size_str = str(size_str).strip().upper()
    match = re.match(r'^(\d+(\.\d+)?)\s*([BKMGT])?I?B?$', size_str)
    if not match:
        logger.warning(f"Could not parse size string: '{size_str}'")
        return None

    value = float(match.group(1))
    unit = match.group(3)

    if unit:
        multiplier = SIZE_UNITS[unit]
    elif '.' not in match.group(1):
        multiplier = 1
    else:
        # Fractional byte counts make no sense without a unit
        logger.warning(f"Could not parse size string without unit: '{size_str}'")
        return None

    return int(value * multiplier)

def human_readable_size(size_bytes: int) -> str:
    """Converts bytes to a human-readable string (KB, MB, GB)."""
    if size_bytes < 0: return "N/A"
    if size_bytes < SIZE_UNITS["K"]:
        return f"{size_bytes} B"
    elif size_bytes < SIZE_UNITS["M"]:
        return f"{size_bytes / SIZE_UNITS['K']:.1f} KB"
    elif size_bytes < SIZE_UNITS["G"]:
        return f"{size_bytes / SIZE_UNITS['M']:.1f} MB"
    elif size_bytes < SIZE_UNITS["T"]:
        return f"{size_bytes / SIZE_UNITS['G']:.1f} GB"
    else:
        return f"{size_bytes / SIZE_UNITS['T']:.1f} TB"

def is_path_excluded(path: Union[str, Path], exclude_patterns: Iterable[str]) -> bool:
    """
    Checks if a given path matches any of the exclusion glob patterns.

    Patterns are matched against the path as given (the walker hands out
    absolute paths below the scan root), so no resolution happens here.

    Args:
        path: The path to check.
        exclude_patterns: Glob patterns (e.g., ["*.tmp", "*/.Trash", "*/lost+found"]).

    Returns:
        True if the path matches any pattern, False otherwise.
    """
    path_str = str(path)
    name = Path(path_str).name
    for pattern in exclude_patterns:
        # Bare names ("lost+found") match the final component only
        target = path_str if ('/' in pattern or '\\' in pattern) else name
        if fnmatch.fnmatch(target, pattern):
            logger.debug(f"Path '{path_str}' excluded by pattern '{pattern}'")
            return True
    return False

def calculate_hash(path: Union[str, Path], algorithm: str = 'sha256') -> str:
    """
    Calculates the hash of a whole file.

    Raises:
        HashingFailed: if the file cannot be opened or read.
    """
    hasher = hashlib.new(algorithm)
    try:
        with open(path, 'rb') as file:
            while True:
                chunk = file.read(HASH_CHUNK_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as e:
        raise HashingFailed(path, e) from e
    return hasher.hexdigest()

def issue_kind_for(error: BaseException) -> IssueKind:
    """Maps an OS error onto the per-path issue taxonomy."""
    if isinstance(error, PermissionError):
        return IssueKind.PERMISSION_DENIED
    if isinstance(error, OSError) and error.errno in (errno.EACCES, errno.EPERM):
        return IssueKind.PERMISSION_DENIED
    return IssueKind.IO_ERROR
