from __future__ import annotations

import json
from pathlib import Path

import pytest
from rich.console import Console

import main
from bloat_scanner.ui import cli

MB = 1024 * 1024


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _sparse(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    log_path = tmp_path / "state" / "deletion_log.jsonl"
    return _write(tmp_path / "config.toml", f'[audit]\nlog_path = "{log_path}"\n')


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep long tmp paths on one line
    monkeypatch.setattr(cli, "console", Console(width=400))


def _run(config_path: Path, *argv: str) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--config", str(config_path), *argv])
    return excinfo.value.code


def test_help_exits_zero() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--help"])
    assert excinfo.value.code == 0


def test_large_lists_files_over_threshold(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _sparse(scan_root / "huge.iso", 3 * MB)
    _sparse(scan_root / "small.txt", 10)

    assert _run(config_path, "large", str(scan_root), "--min-size", "1M") == 0
    out = capsys.readouterr().out
    assert "huge.iso" in out
    assert "small.txt" not in out
    assert "3.0 MB" in out


def test_large_json_output(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _sparse(scan_root / "huge.iso", 2 * MB)

    assert _run(config_path, "large", str(scan_root), "-m", "1M", "--json") == 0
    out = capsys.readouterr().out
    assert '"size_bytes": 2097152' in out
    assert "huge.iso" in out


def test_bloat_and_rules(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _sparse(scan_root / "app" / "node_modules" / "x" / "index.js", 2 * MB)

    assert _run(config_path, "bloat", str(scan_root), "--details") == 0
    out = capsys.readouterr().out
    assert "node_modules" in out
    assert "2.0 MB" in out

    assert _run(config_path, "rules", "--category", "python_venv") == 0
    assert "__pycache__" in capsys.readouterr().out


def test_dupes(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(scan_root / "one.txt", "same" * 600)
    _write(scan_root / "two.txt", "same" * 600)

    assert _run(config_path, "dupes", str(scan_root)) == 0
    out = capsys.readouterr().out
    assert "one.txt" in out and "two.txt" in out


def test_missing_root_is_an_error(config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(config_path, "large", str(tmp_path / "nope")) == 1
    assert "does not exist" in capsys.readouterr().out


def test_clean_dry_run_changes_nothing(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = _write(scan_root / "debug.log", "log")

    assert _run(config_path, "clean", "--root", str(scan_root), "--dry-run", str(target)) == 0
    assert target.exists()
    assert "DRY RUN" in capsys.readouterr().out


def test_clean_asks_before_deleting(config_path: Path, scan_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = _write(scan_root / "debug.log", "log")
    monkeypatch.setattr(cli.Confirm, "ask", lambda *args, **kwargs: False)

    assert _run(config_path, "clean", "--root", str(scan_root), "--permanent", str(target)) == 0
    assert target.exists()


def test_clean_permanent_with_yes_and_history(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = _write(scan_root / "debug.log", "log")

    assert _run(config_path, "clean", "--root", str(scan_root), "--permanent", "--yes", str(target)) == 0
    assert not target.exists()

    capsys.readouterr()
    assert _run(config_path, "history") == 0
    out = capsys.readouterr().out
    assert "debug.log" in out
    assert "deleted" in out

    assert _run(config_path, "history", "--summary") == 0
    assert "Deletion Summary" in capsys.readouterr().out


def test_clean_category(config_path: Path, scan_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    modules = scan_root / "web" / "node_modules"
    _write(modules / "pkg" / "index.js", "module.exports = 1")
    source = _write(scan_root / "web" / "index.js", "require('pkg')")

    assert _run(config_path, "clean", "--root", str(scan_root), "--category", "node_modules", "--permanent", "--yes") == 0
    assert not modules.exists()
    assert source.exists()

    capsys.readouterr()
    assert _run(config_path, "history", "--summary") == 0
    out = capsys.readouterr().out
    assert "Freed by Category" in out
    assert "node_modules" in out


def test_clean_outside_root_is_rejected(config_path: Path, scan_root: Path, tmp_path: Path) -> None:
    outside = _write(tmp_path / "elsewhere" / "keep.txt", "keep")

    assert _run(config_path, "clean", "--root", str(scan_root), "--permanent", "--yes", str(outside)) == 1
    assert outside.exists()


def test_config_show(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(config_path, "config", "duplicates.algorithm") == 0
    assert "sha256" in capsys.readouterr().out

    assert _run(config_path, "config", "--list") == 0
    out = capsys.readouterr().out
    data = json.loads(out[out.index("{"):])
    assert data["cleanup"]["use_trash"] is True
