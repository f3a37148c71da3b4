from __future__ import annotations

import os
from pathlib import Path

import pytest

from bloat_scanner.core.errors import PathRejected, ScanRootError
from bloat_scanner.modules.path_validator import PathValidator, default_containers, default_denylist, validate_scan_root


def _write(path: Path, content: str = "data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_filesystem_root_is_denied(scan_root: Path) -> None:
    verdict = PathValidator().validate("/", scan_root)
    assert not verdict.allowed
    assert "protected" in verdict.reason


def test_system_directories_are_denied(scan_root: Path) -> None:
    validator = PathValidator()
    for path in ("/usr", "/etc", "/bin"):
        assert not validator.validate(path, scan_root).allowed


def test_home_directory_is_protected_as_a_container() -> None:
    assert str(Path.home()) in default_containers()
    assert str(Path.home()) not in default_denylist()


def test_ancestors_of_scan_root_are_denied(scan_root: Path) -> None:
    validator = PathValidator()
    verdict = validator.validate(scan_root.parent, scan_root)
    assert not verdict.allowed
    assert "outside scan root" in verdict.reason


def test_denylist_entry_and_its_ancestors_are_denied(tmp_path: Path) -> None:
    protected = tmp_path / "keep" / "precious"
    protected.mkdir(parents=True)
    validator = PathValidator(denylist=[str(protected)])

    assert not validator.validate(protected, tmp_path).allowed
    assert not validator.validate(tmp_path / "keep", tmp_path).allowed
    assert validator.validate(tmp_path / "elsewhere", tmp_path).allowed


def test_path_inside_scan_root_is_allowed(scan_root: Path) -> None:
    target = _write(scan_root / "project" / "node_modules" / "pkg.js")
    verdict = PathValidator().validate(target, scan_root)
    assert verdict.allowed
    assert verdict.resolved == Path(os.path.realpath(target))


def test_traversal_out_of_scan_root_is_denied(scan_root: Path, tmp_path: Path) -> None:
    _write(tmp_path / "outside.txt")
    verdict = PathValidator().validate(str(scan_root) + "/../outside.txt", scan_root)
    assert not verdict.allowed


def test_symlink_escaping_scan_root_is_denied(scan_root: Path, tmp_path: Path) -> None:
    outside = _write(tmp_path / "outside" / "secret.txt")
    link = scan_root / "innocent"
    link.symlink_to(outside.parent, target_is_directory=True)

    verdict = PathValidator().validate(link / "secret.txt", scan_root)
    assert not verdict.allowed
    assert verdict.resolved == Path(os.path.realpath(outside))


def test_scan_root_itself_needs_confirmation(scan_root: Path) -> None:
    validator = PathValidator()
    denied = validator.validate(scan_root, scan_root)
    assert not denied.allowed
    assert "scan root" in denied.reason
    assert validator.validate(scan_root, scan_root, confirm_root=True).allowed


def test_ensure_allowed_raises(scan_root: Path) -> None:
    with pytest.raises(PathRejected) as excinfo:
        PathValidator().ensure_allowed("/", scan_root)
    assert excinfo.value.path == "/"


def test_validate_does_not_touch_the_disk(scan_root: Path) -> None:
    target = _write(scan_root / "file.txt")
    PathValidator().validate(target, scan_root)
    assert target.read_text() == "data"


def test_validate_scan_root(scan_root: Path, tmp_path: Path) -> None:
    assert validate_scan_root(scan_root) == Path(os.path.realpath(scan_root))

    with pytest.raises(ScanRootError, match="does not exist"):
        validate_scan_root(tmp_path / "nope")

    plain_file = _write(tmp_path / "plain.txt")
    with pytest.raises(ScanRootError, match="not a directory"):
        validate_scan_root(plain_file)


def test_paths_inside_system_directories_are_denied() -> None:
    validator = PathValidator()
    for path in ("/etc/hostname", "/usr/bin/env"):
        verdict = validator.validate(path, "/")
        assert not verdict.allowed, path
        assert "protected" in verdict.reason


def test_everything_below_a_denylist_entry_is_denied(tmp_path: Path) -> None:
    system = tmp_path / "sys"
    library = _write(system / "lib" / "x.so")
    validator = PathValidator(denylist=[str(system)], containers=[])

    assert not validator.validate(library, tmp_path).allowed
    assert not validator.validate(library.parent, tmp_path).allowed
    assert validator.validate(tmp_path / "other", tmp_path).allowed


def test_containers_protect_only_themselves(tmp_path: Path) -> None:
    home = tmp_path / "home"
    cache = _write(home / ".cache" / "blob")
    validator = PathValidator(denylist=[], containers=[str(home)])

    assert not validator.validate(home, tmp_path).allowed
    assert not validator.validate(tmp_path, tmp_path, confirm_root=True).allowed
    assert validator.validate(cache, tmp_path).allowed


def test_temp_dir_below_a_system_directory_stays_usable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import bloat_scanner.modules.path_validator as path_validator

    system = tmp_path / "var"
    temp = system / "folders" / "T"
    junk = _write(temp / "build" / "junk.o")
    monkeypatch.setattr(path_validator, "_temp_dir", lambda: Path(os.path.realpath(temp)))
    validator = PathValidator(denylist=[str(system)], containers=[])

    assert validator.validate(junk, temp).allowed
    assert not validator.validate(temp, tmp_path, confirm_root=True).allowed
    assert not validator.validate(system / "log" / "syslog", tmp_path).allowed


def test_system_directories_cannot_be_scanned(tmp_path: Path) -> None:
    system = tmp_path / "usr"
    (system / "share").mkdir(parents=True)
    validator = PathValidator(denylist=[str(system)], containers=[])

    with pytest.raises(ScanRootError, match="protected"):
        validate_scan_root(system / "share", validator)
    assert validate_scan_root(tmp_path, validator) == Path(os.path.realpath(tmp_path))

    if os.path.isdir("/etc"):
        with pytest.raises(ScanRootError, match="protected"):
            validate_scan_root("/etc")
