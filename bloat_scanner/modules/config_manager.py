import toml
import sys
import copy
from pathlib import Path
from typing import Dict, Any, List, Optional
import os
import logging

# Project imports
from ..utils.helpers import parse_size

logger = logging.getLogger(__name__)

# Define default configuration structure and values
DEFAULT_CONFIG = {
    "scan": {
        "follow_symlinks": False,
        "max_workers": 0, # 0 means one worker per available CPU
    },
    "paths": {
        "exclude": [
            "lost+found",
            "*/.Trash",
        ],
    },
    "large_files": {
        "min_size": "1G",
    },
    "bloat": {
        "min_size": "1M",
    },
    "duplicates": {
        "min_size": "1K",
        "max_size": "100M", # "0" disables the ceiling
        "algorithm": "sha256",
    },
    "cleanup": {
        "use_trash": True,
        "max_batch_count": 10000,
        "max_batch_size": "100G",
    },
    "audit": {
        "log_path": "", # Empty means the default location under XDG_DATA_HOME
    },
}

class ConfigManager:
    """Manages loading and accessing the application configuration."""

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)
        self.config: Dict[str, Any] = self._load_config()
        self._expand_paths()

    def _load_config(self) -> Dict[str, Any]:
        """Loads configuration from the TOML file, merging with defaults."""
        return self._deep_merge_dicts(copy.deepcopy(DEFAULT_CONFIG), self._read_toml_file())

    def _read_toml_file(self) -> Dict[str, Any]:
        """Reads the TOML configuration file."""
        if not self.config_path.exists():
            logger.warning(f"Configuration file not found at {self.config_path}. Using default settings.")
            return {}
        try:
            with open(self.config_path, 'r') as f:
                loaded_config = toml.load(f)
                logger.info(f"Successfully loaded configuration from {self.config_path}")
                return loaded_config
        except toml.TomlDecodeError as e:
            logger.error(f"Error decoding TOML file {self.config_path}: {e}")
            print(f"Error: Invalid configuration file format in {self.config_path}. Please check the syntax.", file=sys.stderr)
            sys.exit(1)
        except IOError as e:
            logger.error(f"Error reading configuration file {self.config_path}: {e}")
            print(f"Error: Could not read configuration file {self.config_path}.", file=sys.stderr)
            sys.exit(1)

    def _deep_merge_dicts(self, base: Dict, overlay: Dict) -> Dict:
        """Recursively merges two dictionaries. Overlay values take precedence."""
        merged = base.copy()
        for key, value in overlay.items():
            if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
                merged[key] = self._deep_merge_dicts(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _expand_paths(self):
        """Expands ~ and environment variables in exclusion patterns and the audit log path."""
        excludes = self.config.get('paths', {}).get('exclude', [])
        self.config['paths']['exclude'] = [
            os.path.expanduser(os.path.expandvars(p)) if isinstance(p, str) else p
            for p in excludes
        ]
        log_path = self.get('audit.log_path')
        if isinstance(log_path, str) and log_path:
            self.config['audit']['log_path'] = os.path.expanduser(os.path.expandvars(log_path))

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Gets a configuration value using a dot-separated key path.
        Example: get('duplicates.algorithm')
        """
        keys = key_path.split('.')
        value = self.config
        try:
            for key in keys:
                if isinstance(value, dict):
                    value = value[key]
                else:
                    logger.warning(f"Config key path '{key_path}' intermediate key '{key}' is not a dictionary.")
                    return default
            return value
        except KeyError:
            logger.debug(f"Config key '{key_path}' not found, returning default: {default}")
            return default

    def get_size(self, key_path: str, default: Optional[int] = None) -> Optional[int]:
        """
        Gets a size setting in bytes. Accepts integers or strings like "500M".
        Unparseable values fall back to `default` with a warning.
        """
        raw = self.get(key_path)
        if raw is None or raw == "":
            return default
        size = parse_size(raw)
        if size is None:
            logger.warning(f"Invalid size '{raw}' for '{key_path}', using {default}")
            return default
        return size

    def get_bool(self, key_path: str, default: bool = False) -> bool:
        value = self.get(key_path, default)
        if isinstance(value, bool):
            return value
        logger.warning(f"Config key '{key_path}' should be true or false, got {value!r}; using {default}")
        return default

    def get_max_workers(self) -> Optional[int]:
        """Configured pool size, or None to size pools by CPU count."""
        value = self.get('scan.max_workers', 0)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            logger.warning(f"Invalid scan.max_workers {value!r}; using CPU count")
            return None
        return value or None

    def get_exclude_patterns(self) -> List[str]:
        """Gets the list of exclusion glob patterns."""
        return [p for p in self.get('paths.exclude', []) if isinstance(p, str)]

    def get_audit_log_path(self) -> Optional[Path]:
        """Configured audit log location, or None for the default."""
        raw = self.get('audit.log_path')
        return Path(raw) if raw else None

    def reload(self):
        """Reloads the configuration from the file."""
        logger.info(f"Reloading configuration from {self.config_path}")
        self.config = self._load_config()
        self._expand_paths()
