from pathlib import Path
from typing import Union


class ScannerError(Exception):
    """Base class for all scanner errors."""


class ConfigError(ScannerError):
    """Configuration value present but unusable."""


class ScanRootError(ScannerError):
    """The scan root itself cannot be accessed. Fatal for the whole scan."""

    def __init__(self, root: Union[str, Path], reason: str):
        self.root = str(root)
        self.reason = reason
        super().__init__(f"Cannot scan '{self.root}': {reason}")


class PathRejected(ScannerError):
    """The path safety validator refused a path. Fatal for that path only."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Refusing to touch '{self.path}': {reason}")


class HashingFailed(ScannerError):
    """A file could not be read for hashing and is left out of duplicate detection."""

    def __init__(self, path: Union[str, Path], cause: BaseException):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"Could not hash '{self.path}': {cause}")


class AuditLogError(ScannerError):
    """The audit log could not be written."""
