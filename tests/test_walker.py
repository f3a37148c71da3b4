from __future__ import annotations

import os
from pathlib import Path

import pytest

from bloat_scanner.core.cancellation import CancellationToken
from bloat_scanner.core.models import IssueKind, ScanOutcome
from bloat_scanner.modules import walker as walker_module
from bloat_scanner.modules.walker import DirectoryWalker


def _write(path: Path, content: str = "data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _paths(records) -> set:
    return {r.path for r in records}


def test_walk_yields_every_regular_file(scan_root: Path) -> None:
    expected = {
        _write(scan_root / "a.txt"),
        _write(scan_root / "sub" / "b.txt"),
        _write(scan_root / "sub" / "deeper" / "c.txt", "longer content"),
    }
    walker = DirectoryWalker(scan_root, max_workers=2)
    records = list(walker.walk())

    assert _paths(records) == expected
    assert walker.outcome is ScanOutcome.COMPLETED
    assert walker.files_seen == 3
    assert walker.dirs_seen == 3
    by_name = {r.path.name: r for r in records}
    assert by_name["c.txt"].size_bytes == len("longer content")
    assert by_name["a.txt"].inode_key == (os.stat(scan_root / "a.txt").st_dev, os.stat(scan_root / "a.txt").st_ino)


def test_min_size_filters_small_files(scan_root: Path) -> None:
    _write(scan_root / "small.txt", "x")
    big = _write(scan_root / "big.txt", "x" * 100)
    records = list(DirectoryWalker(scan_root, min_size=50).walk())
    assert _paths(records) == {big}


def test_excluded_paths_are_neither_yielded_nor_descended(scan_root: Path) -> None:
    keep = _write(scan_root / "keep.txt")
    _write(scan_root / "lost+found" / "orphan.txt")
    _write(scan_root / "scratch.tmp")
    walker = DirectoryWalker(scan_root, exclude_patterns=["lost+found", "*.tmp"])
    assert _paths(walker.walk()) == {keep}


def test_symlinks_are_ignored_by_default(scan_root: Path, tmp_path: Path) -> None:
    real = _write(scan_root / "real.txt")
    outside = _write(tmp_path / "outside" / "elsewhere.txt")
    (scan_root / "file-link").symlink_to(real)
    (scan_root / "dir-link").symlink_to(outside.parent, target_is_directory=True)

    records = list(DirectoryWalker(scan_root).walk())
    assert _paths(records) == {real}
    assert not any(r.is_symlink for r in records)


def test_following_symlinks_survives_cycles(scan_root: Path) -> None:
    inner = _write(scan_root / "a" / "file.txt")
    # a/loop -> a: following it naively never terminates
    (scan_root / "a" / "loop").symlink_to(scan_root / "a", target_is_directory=True)
    (scan_root / "a" / "up").symlink_to(scan_root, target_is_directory=True)

    walker = DirectoryWalker(scan_root, follow_symlinks=True, max_workers=2)
    records = list(walker.walk())

    assert [r.path for r in records] == [inner]
    assert walker.outcome is ScanOutcome.COMPLETED


def test_unreadable_directory_is_recorded_not_fatal(scan_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ok = _write(scan_root / "ok" / "file.txt")
    locked = scan_root / "locked"
    _write(locked / "hidden.txt")
    real_scandir = os.scandir

    def fake_scandir(path):
        if Path(path) == locked:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(walker_module.os, "scandir", fake_scandir)
    walker = DirectoryWalker(scan_root)
    records = list(walker.walk())

    assert _paths(records) == {ok}
    assert walker.outcome is ScanOutcome.COMPLETED
    assert len(walker.issues) == 1
    issue = walker.issues[0]
    assert issue.kind is IssueKind.PERMISSION_DENIED
    assert issue.path == str(locked)


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root ignores directory permissions")
def test_chmod_protected_directory_is_skipped(scan_root: Path) -> None:
    ok = _write(scan_root / "ok.txt")
    locked = scan_root / "locked"
    _write(locked / "hidden.txt")
    locked.chmod(0)
    try:
        walker = DirectoryWalker(scan_root)
        assert _paths(walker.walk()) == {ok}
        assert [i.kind for i in walker.issues] == [IssueKind.PERMISSION_DENIED]
    finally:
        locked.chmod(0o755)


def test_cancellation_mid_walk_returns_partial_results(scan_root: Path) -> None:
    for i in range(60):
        _write(scan_root / f"dir{i:02d}" / "file.txt")

    token = CancellationToken()
    walker = DirectoryWalker(scan_root, max_workers=1, cancel_token=token)
    records = []
    for record in walker.walk():
        records.append(record)
        token.cancel()

    assert walker.outcome is ScanOutcome.CANCELLED
    assert 1 <= len(records) < 60


def test_cancelled_before_start_yields_nothing(scan_root: Path) -> None:
    _write(scan_root / "file.txt")
    token = CancellationToken()
    token.cancel()
    walker = DirectoryWalker(scan_root, cancel_token=token)
    assert list(walker.walk()) == []
    assert walker.outcome is ScanOutcome.CANCELLED
