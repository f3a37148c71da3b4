from __future__ import annotations

from pathlib import PurePath

import pytest

from bloat_scanner.core.models import MatchKind, PatternRule, SafetyTier
from bloat_scanner.modules.patterns import RULES, classify, matches, rules_for_category


def _id(path: str, is_dir: bool = False):
    rule = classify(path, is_dir)
    return rule.id if rule else None


def test_rule_ids_are_unique() -> None:
    ids = [r.id for r in RULES]
    assert len(ids) == len(set(ids))


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/src/app/node_modules", "node_modules"),
        ("/src/crate/target", "rust_target"),
        ("/src/proj/.venv", "python_dotvenv"),
        ("/src/proj/pkg/__pycache__", "python_pycache"),
        ("/src/proj/.git", "git"),
        ("/home/me/.cache/pip", "pip_cache"),
        ("/home/me/.m2/repository", "maven_repo"),
        ("/home/me/.local/share/Trash-dir", None),
        ("/home/me/.Trash-1000", "trash_dir"),
    ],
)
def test_directory_rules(path: str, expected) -> None:
    assert _id(path, is_dir=True) == expected


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/src/.DS_Store", "ds_store"),
        ("/src/mod.pyc", "pyc"),
        ("/src/Main.class", "java_class"),
        ("/src/notes.txt~", "tilde_backup"),
        ("/src/.#draft.org", "emacs_lock"),
        ("/var/app/server.log", "log_file"),
        ("/src/main.py", None),
    ],
)
def test_file_rules(path: str, expected) -> None:
    assert _id(path) == expected


def test_directory_rules_do_not_match_files() -> None:
    # A file that happens to be called "target" is not a Cargo build directory
    assert classify("/src/target", is_dir=False) is None
    assert classify("/src/mod.pyc", is_dir=True) is None


def test_multi_component_pattern_needs_all_components() -> None:
    assert classify("/home/me/pip", is_dir=True) is None
    assert _id("/home/me/.cache/go-build", is_dir=True) == "go_build_cache"


def test_extension_needs_a_stem() -> None:
    assert classify("/src/.o") is None
    assert _id("/src/x.o") == "object_o"


def test_prefix_and_suffix_need_more_than_the_pattern() -> None:
    assert classify("/src/~") is None
    assert classify("/src/.#") is None


def test_extension_beats_prefix() -> None:
    # Matches both ".#" (prefix) and ".swp" (extension)
    assert _id("/src/.#draft.swp") == "vim_swp"


def test_rules_for_category() -> None:
    python_rules = {r.id for r in rules_for_category("python_venv")}
    assert {"python_venv", "python_dotvenv", "python_pycache"} <= python_rules
    assert rules_for_category("no-such-category") == []


def test_git_is_dangerous() -> None:
    assert classify("/src/.git", is_dir=True).safety_tier is SafetyTier.DANGEROUS


def test_matches_single_rule() -> None:
    rule = PatternRule(id="t", match_kind=MatchKind.SUFFIX, pattern=".orig", category_id="c",
                       display_name="C", safety_tier=SafetyTier.SAFE)
    assert matches(rule, PurePath("/a/b.orig"), is_dir=False)
    assert matches(rule, PurePath("/a/b.orig"), is_dir=True)
    assert not matches(rule, PurePath("/a/.orig"), is_dir=False)


def test_unknown_match_kind_raises() -> None:
    rule = PatternRule(id="bogus", match_kind="glob", pattern="*", category_id="c",
                       display_name="C", safety_tier=SafetyTier.SAFE)
    with pytest.raises(ValueError):
        matches(rule, "/a/b", is_dir=False)
