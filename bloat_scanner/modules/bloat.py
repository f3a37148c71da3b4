import logging
from functools import lru_cache
from pathlib import Path, PurePath
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

# Project imports
from ..core.models import BloatCategory, BloatEntry, FileRecord, PatternRule, SafetyTier
from .patterns import classify

logger = logging.getLogger(__name__)

Classifier = Callable[[Union[str, PurePath], bool], Optional[PatternRule]]

_TIER_RANK = {SafetyTier.SAFE: 0, SafetyTier.CAUTION: 1, SafetyTier.DANGEROUS: 2}


class _Aggregate:
    __slots__ = ("rule", "size_bytes", "file_count")

    def __init__(self, rule: PatternRule):
        self.rule = rule
        self.size_bytes = 0
        self.file_count = 0


class BloatClassifier:
    """
    Turns walker output into bloat categories.

    A file below a matched directory (node_modules, target, ...) only adds its
    size to that directory's single aggregate entry; the outermost match wins,
    so node_modules/.cache stays part of node_modules. Files outside any
    matched directory are checked against the file rules and reported one by
    one. Sizes come from the records themselves, nothing is walked again.
    """

    def __init__(self, classifier: Classifier = classify, min_size: int = 0, cache_size: int = 65536):
        self.classifier = classifier
        self.min_size = max(min_size or 0, 0)
        self.cache_size = cache_size

    def classify_records(self, records: Iterable[FileRecord], root: Union[str, Path]) -> List[BloatCategory]:
        root = Path(root)

        @lru_cache(maxsize=self.cache_size)
        def matched_ancestor(parts: Tuple[str, ...]) -> Optional[Tuple[int, PatternRule]]:
            # (depth below root, rule) of the outermost matching directory
            if not parts:
                return None
            outer = matched_ancestor(parts[:-1])
            if outer is not None:
                return outer
            rule = self.classifier(root.joinpath(*parts), True)
            return (len(parts), rule) if rule is not None else None

        directories: Dict[Path, _Aggregate] = {}
        files: List[Tuple[Path, int, PatternRule]] = []
        seen = 0

        for record in records:
            seen += 1
            try:
                rel = record.path.relative_to(root)
            except ValueError:
                logger.debug(f"Record outside scan root ignored: {record.path}")
                continue
            hit = matched_ancestor(tuple(rel.parts[:-1]))
            if hit is not None:
                depth, rule = hit
                dir_path = root.joinpath(*rel.parts[:depth])
                agg = directories.get(dir_path)
                if agg is None:
                    agg = directories[dir_path] = _Aggregate(rule)
                agg.size_bytes += record.size_bytes
                agg.file_count += 1
                continue
            rule = self.classifier(record.path, False)
            if rule is not None:
                files.append((record.path, record.size_bytes, rule))

        logger.debug(f"matched_ancestor cache: {matched_ancestor.cache_info()}")

        entries: List[Tuple[BloatEntry, PatternRule]] = []
        for dir_path, agg in directories.items():
            entries.append((BloatEntry(path=dir_path, size_bytes=agg.size_bytes, file_count=agg.file_count, rule_id=agg.rule.id), agg.rule))
        for path, size, rule in files:
            entries.append((BloatEntry(path=path, size_bytes=size, file_count=1, rule_id=rule.id), rule))

        categories = self._build_categories(entries)
        logger.info(f"Classified {seen} files into {len(categories)} bloat categories ({len(directories)} directories, {len(files)} loose files)")
        return categories

    def _build_categories(self, entries: List[Tuple[BloatEntry, PatternRule]]) -> List[BloatCategory]:
        categories: Dict[str, BloatCategory] = {}
        for entry, rule in entries:
            if entry.size_bytes < self.min_size:
                continue
            category = categories.get(rule.category_id)
            if category is None:
                category = categories[rule.category_id] = BloatCategory(
                    category_id=rule.category_id,
                    display_name=rule.display_name,
                    safety_tier=rule.safety_tier,
                )
            elif _TIER_RANK[rule.safety_tier] > _TIER_RANK[category.safety_tier]:
                category.safety_tier = rule.safety_tier
            category.entries.append(entry)

        for category in categories.values():
            category.entries.sort(key=lambda e: (-e.size_bytes, str(e.path)))
            category.total_size_bytes = sum(e.size_bytes for e in category.entries)

        return sorted(categories.values(), key=lambda c: (-c.total_size_bytes, c.category_id))
