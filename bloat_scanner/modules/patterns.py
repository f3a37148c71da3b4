import logging
from pathlib import PurePath
from typing import Dict, List, Optional, Tuple, Union

from ..core.models import MatchKind, PatternRule, SafetyTier

logger = logging.getLogger(__name__)

SAFE = SafetyTier.SAFE
CAUTION = SafetyTier.CAUTION
DANGEROUS = SafetyTier.DANGEROUS

def _rule(rule_id: str, kind: MatchKind, pattern: str, category_id: str, display_name: str,
          tier: SafetyTier, description: str = "") -> PatternRule:
    return PatternRule(id=rule_id, match_kind=kind, pattern=pattern, category_id=category_id,
                       display_name=display_name, safety_tier=tier, description=description)

# Declaration order is the tie-break inside a precedence level: keep more specific rules first.
RULES: Tuple[PatternRule, ...] = (
    # --- Dependency trees and build outputs (directories) ---
    _rule("node_modules", MatchKind.DIRNAME, "node_modules", "node_modules", "Node.js", SAFE,
          "npm/yarn/pnpm dependency tree, restored by a package install"),
    _rule("rust_target", MatchKind.DIRNAME, "target", "rust_target", "Rust", SAFE,
          "Cargo build output"),
    _rule("python_venv", MatchKind.DIRNAME, "venv", "python_venv", "Python", CAUTION,
          "Virtual environment; recreate from requirements"),
    _rule("python_dotvenv", MatchKind.DIRNAME, ".venv", "python_venv", "Python", CAUTION,
          "Virtual environment; recreate from requirements"),
    _rule("python_pycache", MatchKind.DIRNAME, "__pycache__", "python_venv", "Python", SAFE,
          "Bytecode cache"),
    _rule("pytest_cache", MatchKind.DIRNAME, ".pytest_cache", "python_venv", "Python", SAFE),
    _rule("mypy_cache", MatchKind.DIRNAME, ".mypy_cache", "python_venv", "Python", SAFE),
    _rule("tox", MatchKind.DIRNAME, ".tox", "python_venv", "Python", SAFE),
    _rule("git", MatchKind.DIRNAME, ".git", "git", ".git", DANGEROUS,
          "Repository history; deleting it loses unpushed work"),
    _rule("build_dist", MatchKind.DIRNAME, "dist", "build_artifacts", "Build Artifacts", CAUTION),
    _rule("build_build", MatchKind.DIRNAME, "build", "build_artifacts", "Build Artifacts", CAUTION),
    _rule("build_next", MatchKind.DIRNAME, ".next", "build_artifacts", "Build Artifacts", SAFE),
    _rule("build_nuxt", MatchKind.DIRNAME, ".nuxt", "build_artifacts", "Build Artifacts", SAFE),
    _rule("build_output", MatchKind.DIRNAME, ".output", "build_artifacts", "Build Artifacts", SAFE),
    _rule("build_out", MatchKind.DIRNAME, "out", "build_artifacts", "Build Artifacts", CAUTION),
    _rule("vendor", MatchKind.DIRNAME, "vendor", "vendor", "Vendor", CAUTION,
          "Vendored dependencies; may be committed on purpose"),
    _rule("gradle", MatchKind.DIRNAME, ".gradle", "java_gradle", "Java/Gradle", CAUTION),
    _rule("maven_repo", MatchKind.DIRNAME, ".m2/repository", "java_gradle", "Java/Gradle", CAUTION),
    # --- Tool caches (directories) ---
    _rule("npm_cache", MatchKind.DIRNAME, ".npm", "npm_cache", "npm Cache", SAFE),
    _rule("yarn_cache", MatchKind.DIRNAME, ".yarn/cache", "yarn_cache", "Yarn Cache", SAFE),
    _rule("pip_cache", MatchKind.DIRNAME, ".cache/pip", "pip_cache", "Python pip Cache", SAFE),
    _rule("go_build_cache", MatchKind.DIRNAME, ".cache/go-build", "go_cache", "Go Build Cache", SAFE),
    _rule("macos_caches", MatchKind.DIRNAME, "Library/Caches", "system_cache", "System Cache", DANGEROUS),
    _rule("windows_cache", MatchKind.DIRNAME, "AppData/Local/Cache", "system_cache", "System Cache", DANGEROUS),
    # --- OS junk (exact names) ---
    _rule("ds_store", MatchKind.EXACT, ".DS_Store", "system", "System Files", SAFE),
    _rule("thumbs_db", MatchKind.EXACT, "Thumbs.db", "system", "System Files", SAFE),
    _rule("desktop_ini", MatchKind.EXACT, "desktop.ini", "system", "System Files", SAFE),
    _rule("localized", MatchKind.EXACT, ".localized", "system", "System Files", SAFE),
    # --- Compiled artifacts (extensions) ---
    _rule("pyc", MatchKind.EXTENSION, ".pyc", "build", "Build Artifacts", SAFE),
    _rule("pyo", MatchKind.EXTENSION, ".pyo", "build", "Build Artifacts", SAFE),
    _rule("java_class", MatchKind.EXTENSION, ".class", "build", "Build Artifacts", SAFE),
    _rule("object_o", MatchKind.EXTENSION, ".o", "build", "Build Artifacts", SAFE),
    _rule("object_obj", MatchKind.EXTENSION, ".obj", "build", "Build Artifacts", SAFE),
    # --- Editor leftovers ---
    _rule("vim_swp", MatchKind.EXTENSION, ".swp", "editor", "Editor Files", SAFE),
    _rule("vim_swo", MatchKind.EXTENSION, ".swo", "editor", "Editor Files", SAFE),
    _rule("vim_swn", MatchKind.EXTENSION, ".swn", "editor", "Editor Files", SAFE),
    _rule("bak", MatchKind.EXTENSION, ".bak", "editor", "Editor Files", SAFE),
    _rule("backup", MatchKind.EXTENSION, ".backup", "editor", "Editor Files", SAFE),
    _rule("tilde_backup", MatchKind.SUFFIX, "~", "editor", "Editor Files", SAFE),
    _rule("emacs_lock", MatchKind.PREFIX, ".#", "editor", "Editor Files", SAFE),
    # --- Logs and trash ---
    _rule("log_file", MatchKind.EXTENSION, ".log", "logs", "Log Files", CAUTION),
    _rule("trash_dir", MatchKind.PREFIX, ".Trash-", "trash", "Trash", CAUTION),
)

# Lower value wins
_PRECEDENCE: Dict[MatchKind, int] = {
    MatchKind.EXACT: 0,
    MatchKind.EXTENSION: 1,
    MatchKind.DIRNAME: 2,
    MatchKind.PREFIX: 3,
    MatchKind.SUFFIX: 3,
}


def _applies(rule: PatternRule, is_dir: bool) -> bool:
    kind = rule.match_kind
    if kind is MatchKind.EXACT or kind is MatchKind.EXTENSION:
        return not is_dir
    if kind is MatchKind.DIRNAME:
        return is_dir
    if kind is MatchKind.PREFIX or kind is MatchKind.SUFFIX:
        return True
    raise ValueError(f"Unknown match kind: {kind!r}")


def matches(rule: PatternRule, path: Union[str, PurePath], is_dir: bool) -> bool:
    """Tests a single rule against a path, ignoring precedence."""
    if not _applies(rule, is_dir):
        return False
    path = PurePath(path)
    name = path.name
    kind = rule.match_kind
    if kind is MatchKind.EXACT:
        return name == rule.pattern
    if kind is MatchKind.EXTENSION:
        # "*.o" must not match a file literally called ".o"
        return name.endswith(rule.pattern) and len(name) > len(rule.pattern)
    if kind is MatchKind.DIRNAME:
        wanted = tuple(part for part in rule.pattern.split("/") if part)
        return len(path.parts) >= len(wanted) and tuple(path.parts[-len(wanted):]) == wanted
    if kind is MatchKind.PREFIX:
        return name.startswith(rule.pattern) and name != rule.pattern
    if kind is MatchKind.SUFFIX:
        return name.endswith(rule.pattern) and name != rule.pattern
    raise ValueError(f"Unknown match kind: {kind!r}")


# Stable sort keeps declaration order inside each precedence level
_ORDERED_RULES: Tuple[PatternRule, ...] = tuple(sorted(RULES, key=lambda r: _PRECEDENCE[r.match_kind]))


def classify(path: Union[str, PurePath], is_dir: bool = False) -> Optional[PatternRule]:
    """
    Returns the rule matching `path`, or None.

    Precedence is exact name > extension > directory name > prefix/suffix;
    within a level the first rule in RULES wins.
    """
    for rule in _ORDERED_RULES:
        if matches(rule, path, is_dir):
            return rule
    return None


def rules_for_category(category_id: str) -> List[PatternRule]:
    return [r for r in RULES if r.category_id == category_id]

