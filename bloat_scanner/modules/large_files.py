import logging
from typing import Iterable, List

from ..core.models import FileRecord

logger = logging.getLogger(__name__)

DEFAULT_LARGE_FILE_SIZE = 1024 ** 3 # 1 GiB


def find_large_files(records: Iterable[FileRecord], min_size: int = DEFAULT_LARGE_FILE_SIZE) -> List[FileRecord]:
    """Keeps records of at least `min_size` bytes, largest first (ties by path)."""
    large = [r for r in records if r.size_bytes >= min_size]
    large.sort(key=lambda r: (-r.size_bytes, str(r.path)))
    logger.debug(f"{len(large)} files at or above {min_size} bytes")
    return large
