from __future__ import annotations

import errno
import hashlib
from pathlib import Path

import pytest

from bloat_scanner.core.errors import HashingFailed
from bloat_scanner.core.models import IssueKind
from bloat_scanner.utils.helpers import (
    calculate_hash,
    human_readable_size,
    is_path_excluded,
    issue_kind_for,
    parse_size,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1024", 1024),
        ("100M", 100 * 1024 ** 2),
        ("2G", 2 * 1024 ** 3),
        ("1.5K", 1536),
        ("10 KB", 10 * 1024),
        ("1gib", 1024 ** 3),
        (4096, 4096),
    ],
)
def test_parse_size_accepts_human_sizes(text, expected) -> None:
    assert parse_size(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "10X", "-5", "1.5", -1])
def test_parse_size_rejects_garbage(text) -> None:
    assert parse_size(text) is None


def test_human_readable_size() -> None:
    assert human_readable_size(0) == "0 B"
    assert human_readable_size(1536) == "1.5 KB"
    assert human_readable_size(150 * 1024 ** 2) == "150.0 MB"
    assert human_readable_size(-1) == "N/A"


def test_bare_exclude_pattern_matches_final_component() -> None:
    assert is_path_excluded("/data/lost+found", ["lost+found"])
    assert not is_path_excluded("/data/lost+found/inner.txt", ["lost+found"])
    assert is_path_excluded("/data/tmp/file.tmp", ["*.tmp"])


def test_exclude_pattern_with_slash_matches_full_path() -> None:
    assert is_path_excluded("/home/me/.Trash", ["*/.Trash"])
    assert not is_path_excluded("/home/me/.Trash-1000", ["*/.Trash"])


def test_calculate_hash_matches_hashlib(tmp_path: Path) -> None:
    target = tmp_path / "blob.bin"
    data = b"x" * (3 * 1024 * 1024 + 7) # spans several read chunks
    target.write_bytes(data)

    assert calculate_hash(target) == hashlib.sha256(data).hexdigest()
    assert calculate_hash(target, "sha512") == hashlib.sha512(data).hexdigest()


def test_calculate_hash_wraps_os_errors(tmp_path: Path) -> None:
    with pytest.raises(HashingFailed) as excinfo:
        calculate_hash(tmp_path / "missing.bin")
    assert isinstance(excinfo.value.cause, FileNotFoundError)
    assert "missing.bin" in str(excinfo.value)


def test_issue_kind_for() -> None:
    assert issue_kind_for(PermissionError("nope")) is IssueKind.PERMISSION_DENIED
    assert issue_kind_for(OSError(errno.EPERM, "not permitted")) is IssueKind.PERMISSION_DENIED
    assert issue_kind_for(OSError(errno.EIO, "i/o error")) is IssueKind.IO_ERROR
