#!/usr/bin/env python3
"""
Configuration loader for ImageToFit.

Loads settings from config.yaml with environment variable overrides.
"""

import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Set

import yaml

from imagetofit.constants import (
    DEFAULT_POWER_FRACTION,
    FALLBACK_DURATION_SECONDS,
    IMPLAUSIBLE_POWER_FRACTION,
    MAX_REPEAT_COUNT,
    MAX_TOTAL_SECONDS,
    PLACEHOLDER_DURATION_SECONDS,
    WARNING_PENALTIES,
)


# Allowlist of environment variables that can be substituted
ALLOWED_ENV_VARS: Set[str] = {
    'ITF_LOG_LEVEL',
    'ITF_LOG_FORMAT',
    'ITF_MAX_CONTENT_LENGTH',
    'PORT',
}

_ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


class Config:
    """ImageToFit configuration manager."""

    _instance = None
    _config = None
    _source = None
    _lock = threading.Lock()  # Thread-safe singleton

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                # Double-check locking pattern
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self._load_config()

    def _load_config(self, config_path: Optional[Path] = None):
        """Load configuration from config.yaml, or defaults when none is found."""
        if config_path is None:
            possible_paths = [
                Path(__file__).parent.parent / 'config.yaml',  # project root
                Path.cwd() / 'config.yaml',
                Path.home() / '.imagetofit' / 'config.yaml',
            ]
            for path in possible_paths:
                if path.exists():
                    config_path = path
                    break

        if config_path is None:
            self._config = self._get_defaults()
            self._source = None
            return

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        self._config = _deep_merge(self._get_defaults(), self._process_env_vars(raw_config))
        self._source = Path(config_path)

    def reload(self, config_path: Optional[Path] = None):
        """Re-read configuration, optionally from an explicit file."""
        with self._lock:
            self._load_config(Path(config_path) if config_path else None)

    def _process_env_vars(self, obj: Any) -> Any:
        """
        Recursively process environment variable substitutions.

        SECURITY: Only allowlisted environment variables can be substituted.
        """
        if isinstance(obj, str):
            # Pattern: ${VAR_NAME:-default_value} or ${VAR_NAME}
            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ''

                if var_name not in ALLOWED_ENV_VARS:
                    return default

                return os.environ.get(var_name, default)

            return _ENV_PATTERN.sub(replace, obj)

        elif isinstance(obj, dict):
            return {k: self._process_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [self._process_env_vars(item) for item in obj]

        return obj

    def _get_defaults(self) -> Dict:
        """Return default configuration."""
        return {
            'logging': {
                'level': os.environ.get('ITF_LOG_LEVEL', 'INFO'),
                'format': os.environ.get('ITF_LOG_FORMAT', 'human'),
            },
            'normalization': {
                'fallback_duration_seconds': FALLBACK_DURATION_SECONDS,
                'default_power_fraction': DEFAULT_POWER_FRACTION,
                'placeholder_duration_seconds': PLACEHOLDER_DURATION_SECONDS,
                'max_total_seconds': MAX_TOTAL_SECONDS,
                'implausible_power_fraction': IMPLAUSIBLE_POWER_FRACTION,
                'max_repeat_count': MAX_REPEAT_COUNT,
                'penalties': dict(WARNING_PENALTIES),
            },
            'webapp': {
                'max_content_length': 1024 * 1024,
            },
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example: config.get('normalization.fallback_duration_seconds', 60)
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @property
    def source(self) -> Optional[Path]:
        """Path of the loaded config file, None when running on defaults."""
        return self._source

    @property
    def all(self) -> Dict:
        """Return the full configuration dictionary."""
        return self._config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Merge override into base, recursing into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


_config_lock = threading.Lock()
_config = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = Config()
    return _config
