import os
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePath, PureWindowsPath
from typing import Iterable, Optional, Tuple, Union

from ..core.errors import PathRejected, ScanRootError

logger = logging.getLogger(__name__)

# Protected together with everything below them
SYSTEM_DENYLIST_POSIX = (
    "/bin",
    "/sbin",
    "/boot",
    "/dev",
    "/etc",
    "/lib",
    "/lib64",
    "/proc",
    "/sys",
    "/usr",
    "/var",
    "/System",
    "/Library/LaunchDaemons",
    "/Library/LaunchAgents",
    "/private/etc",
    "/private/var",
)

SYSTEM_DENYLIST_WINDOWS = (
    "C:\\Windows",
    "C:\\Program Files",
    "C:\\Program Files (x86)",
    "C:\\ProgramData\\Microsoft",
)

# These hold user data: they may not be deleted whole, but their contents may
CONTAINER_PATHS_POSIX = (
    "/",
    "/Library",
    "/Applications",
)

CONTAINER_PATHS_WINDOWS = (
    "C:\\",
    "C:\\ProgramData",
    "C:\\Users",
)


def default_denylist() -> Tuple[str, ...]:
    """System paths for the running platform, protected along with everything below them."""
    return SYSTEM_DENYLIST_WINDOWS if os.name == "nt" else SYSTEM_DENYLIST_POSIX


def default_containers() -> Tuple[str, ...]:
    """Filesystem root and user-data containers for the running platform, plus the home directory."""
    base = CONTAINER_PATHS_WINDOWS if os.name == "nt" else CONTAINER_PATHS_POSIX
    return base + (str(Path.home()),)


def _temp_dir() -> Path:
    # macOS puts per-user temp directories under /private/var/folders
    return Path(os.path.realpath(tempfile.gettempdir()))


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    resolved: Path
    reason: Optional[str] = None

    @classmethod
    def allow(cls, resolved: Path) -> "Verdict":
        return cls(True, resolved)

    @classmethod
    def deny(cls, resolved: Path, reason: str) -> "Verdict":
        return cls(False, resolved, reason)


def _resolve(path: Union[str, Path]) -> Path:
    # realpath resolves every symlink along the way, even for paths that no longer exist
    return Path(os.path.realpath(os.path.expanduser(str(path))))


def _is_relative_to(path: PurePath, other: PurePath) -> bool:
    try:
        path.relative_to(other)
        return True
    except ValueError:
        return False


class PathValidator:
    """
    Guards every destructive operation.

    validate() is pure: it only resolves paths and compares them. Callers must
    call it again right before the delete syscall, since a path that was fine
    when selected may have been swapped for a symlink since.

    `denylist` entries are protected together with their whole subtree;
    `containers` only may not be deleted whole (nor any directory above them).
    """

    def __init__(self, denylist: Optional[Iterable[str]] = None, containers: Optional[Iterable[str]] = None):
        raw = tuple(denylist) if denylist is not None else default_denylist()
        raw_containers = tuple(containers) if containers is not None else default_containers()
        self.denylist = self._normalise_all(raw)
        self.containers = self._normalise_all(raw_containers)
        self.temp_dir = self._as_comparable(_temp_dir())

    @classmethod
    def _normalise_all(cls, entries: Tuple[str, ...]) -> Tuple[PurePath, ...]:
        return tuple(p for p in (cls._normalise(e) for e in entries) if p is not None)

    @staticmethod
    def _normalise(entry: str) -> Optional[PurePath]:
        windows_style = "\\" in entry or PureWindowsPath(entry).drive != ""
        if os.name == "nt":
            return PureWindowsPath(os.path.normcase(entry))
        if windows_style:
            return None # Not meaningful on this platform
        return _resolve(entry)

    @staticmethod
    def _as_comparable(resolved: Path) -> PurePath:
        return PureWindowsPath(os.path.normcase(str(resolved))) if os.name == "nt" else resolved

    def _in_temp_dir(self, candidate: PurePath, protected: PurePath) -> bool:
        # Only exempts the platform temp dir when it lives inside a protected tree
        return (self.temp_dir != protected and _is_relative_to(self.temp_dir, protected)
                and candidate != self.temp_dir and _is_relative_to(candidate, self.temp_dir))

    def protected_path_for(self, resolved: Path) -> Optional[PurePath]:
        """Returns the denylist or container entry that forbids deleting `resolved`, if any."""
        candidate = self._as_comparable(resolved)
        for protected in self.denylist:
            if candidate == protected or _is_relative_to(protected, candidate):
                return protected
            if _is_relative_to(candidate, protected) and not self._in_temp_dir(candidate, protected):
                return protected
        for container in self.containers:
            if candidate == container or _is_relative_to(container, candidate):
                return container
        return None

    def system_tree_for(self, resolved: Path) -> Optional[PurePath]:
        """Returns the denylist entry `resolved` lies in (or is), ignoring containers."""
        candidate = self._as_comparable(resolved)
        for protected in self.denylist:
            if not _is_relative_to(candidate, protected):
                continue
            # The temp dir itself may be scanned, just not deleted
            if (candidate == self.temp_dir and candidate != protected) or self._in_temp_dir(candidate, protected):
                continue
            return protected
        return None

    def validate(self, path: Union[str, Path], scan_root: Union[str, Path], confirm_root: bool = False) -> Verdict:
        """
        Judges whether `path` may be deleted as part of a scan of `scan_root`.

        Args:
            path: Candidate path as selected by the user.
            scan_root: The declared root of the scan the path came from.
            confirm_root: Allow deleting the scan root itself.

        Returns:
            Verdict.allow(resolved) or Verdict.deny(resolved, reason).
        """
        resolved = _resolve(path)
        root = _resolve(scan_root)

        protected = self.protected_path_for(resolved)
        if protected is not None:
            return Verdict.deny(resolved, f"protected system path ({protected})")

        if not _is_relative_to(resolved, root):
            return Verdict.deny(resolved, f"resolves outside scan root {root}")

        if resolved == root and not confirm_root:
            return Verdict.deny(resolved, "is the scan root itself (confirmation required)")

        return Verdict.allow(resolved)

    def ensure_allowed(self, path: Union[str, Path], scan_root: Union[str, Path], confirm_root: bool = False) -> Path:
        """Like validate(), but raises PathRejected on denial."""
        verdict = self.validate(path, scan_root, confirm_root)
        if not verdict.allowed:
            raise PathRejected(path, verdict.reason or "denied")
        return verdict.resolved


def validate_scan_root(root: Union[str, Path], validator: Optional[PathValidator] = None) -> Path:
    """
    Resolves a scan root and checks that it can actually be listed.

    Raises:
        ScanRootError: if the root does not exist, is not a directory, is
            unreadable or lies in a protected system directory.
    """
    resolved = _resolve(root)
    if not resolved.exists():
        raise ScanRootError(root, "path does not exist")
    if not resolved.is_dir():
        raise ScanRootError(root, "not a directory")
    protected = (validator or PathValidator()).system_tree_for(resolved)
    if protected is not None:
        raise ScanRootError(root, f"protected system directory ({protected})")
    try:
        with os.scandir(resolved) as it:
            next(it, None)
    except OSError as e:
        raise ScanRootError(root, e.strerror or str(e)) from e
    logger.debug(f"Scan root validated: {resolved}")
    return resolved
