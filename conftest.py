from __future__ import annotations

from pathlib import Path

import pytest

from bloat_scanner.db.audit_log import AuditLog
from bloat_scanner.modules.config_manager import ConfigManager


@pytest.fixture
def audit_log(tmp_path: Path) -> AuditLog:
    return AuditLog(tmp_path / "state" / "deletion_log.jsonl")


@pytest.fixture
def scan_root(tmp_path: Path) -> Path:
    root = tmp_path / "scan"
    root.mkdir()
    return root


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    # No file on disk: built-in defaults only
    return ConfigManager(tmp_path / "missing-config.toml")
