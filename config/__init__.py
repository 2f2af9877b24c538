"""
Configuration Module for the Bill Review Pipeline.

Budgets, thresholds and timeouts live in settings.yaml; every service
reads its defaults through get_config() and still accepts explicit
overrides in its constructor.

Resolution order for the settings file:
    1. Path passed to the first ConfigurationManager() call
    2. BILL_REVIEW_CONFIG environment variable
    3. config/settings.yaml next to this module

Values can be overridden at runtime with dotted keys, e.g. from the
command line: --set review.session_timeout_minutes=45
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

CONFIG_ENV_VAR = "BILL_REVIEW_CONFIG"


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def parse_override(assignment: str) -> Dict[str, Any]:
    """
    Turn "a.b.c=value" into {"a": {"b": {"c": value}}}.

    The value is parsed as YAML, so numbers, booleans and lists keep
    their types.

    Raises:
        ValueError: If the assignment has no "=" or an empty key.

    Example:
        >>> parse_override("budget.max_passes_per_zone=3")
        {'budget': {'max_passes_per_zone': 3}}
    """
    key, sep, raw_value = assignment.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"Invalid configuration override: {assignment!r} (expected key=value)")

    value: Any = yaml.safe_load(raw_value) if raw_value.strip() else None
    for part in reversed(key.split('.')):
        value = {part: value}
    return value


class ConfigurationManager:
    """
    Centralized configuration for the pipeline.

    Loads settings.yaml once, checks the review and budget sections for
    impossible values, and serves values by dotted key.

    Attributes:
        config_path (Path): Path to the configuration file.

    Example:
        >>> config = ConfigurationManager()
        >>> config.get("budget.early_stop_confidence_threshold")
        95
        >>> config.section("review")["hard_confidence_floor"]
        50
    """

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        """
        Initialize the configuration manager.

        Only the first call loads a file; later calls return the same
        instance unchanged.

        Args:
            config_path: Optional path to configuration file.
        """
        if self._initialized:
            return

        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR)
        if config_path is None:
            self.config_path = Path(__file__).parent / "settings.yaml"
        else:
            self.config_path = Path(config_path)

        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """
        Load, resolve and validate the configuration file.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            yaml.YAMLError: If configuration file is invalid YAML.
            ValueError: If a threshold or budget is out of range.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = yaml.safe_load(f) or {}

        self._resolve_paths()
        self._validate()

    def _resolve_paths(self) -> None:
        """Make relative entries under `paths` absolute against the project root."""
        project_root = Path(__file__).parent.parent

        for key, value in self._config.get('paths', {}).items():
            if value and not Path(value).is_absolute():
                self._config['paths'][key] = str(project_root / value)

    def _validate(self) -> None:
        """
        Reject settings the services cannot work with.

        Raises:
            ValueError: Naming the offending key.
        """
        hard_floor = self.get("review.hard_confidence_floor", 50)
        soft_floor = self.get("review.soft_confidence_floor", 70)
        if not 0 <= hard_floor <= soft_floor <= 100:
            raise ValueError(
                "review.hard_confidence_floor and review.soft_confidence_floor must satisfy "
                f"0 <= hard <= soft <= 100 (got {hard_floor}, {soft_floor})"
            )

        for key in ("review.session_timeout_minutes", "review.default_per_page",
                    "budget.max_time_per_page_ms", "budget.max_time_per_document_ms",
                    "budget.max_passes_per_zone", "calibration.min_samples_for_calibration"):
            value = self.get(key)
            if value is not None and value <= 0:
                raise ValueError(f"{key} must be positive (got {value})")

        threshold = self.get("budget.early_stop_confidence_threshold", 95)
        if not 0 <= threshold <= 100:
            raise ValueError(f"budget.early_stop_confidence_threshold must be 0-100 (got {threshold})")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            >>> config.get("calibration.min_samples_for_calibration")
            100
            >>> config.get("nonexistent.key", "default_value")
            'default_value'
        """
        value = self._config
        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def section(self, name: str) -> Dict[str, Any]:
        """Copy of one top-level section; empty when the section is absent."""
        return copy.deepcopy(self._config.get(name) or {})

    def override(self, overrides: Mapping[str, Any]) -> None:
        """
        Deep-merge overrides into the loaded settings and re-validate.

        Raises:
            ValueError: If the merged settings are invalid; the previous
                settings are kept.
        """
        previous = self._config
        self._config = _deep_merge(self._config, overrides)
        try:
            self._validate()
        except ValueError:
            self._config = previous
            raise

    def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def reload(self) -> None:
        """Reload configuration from file, dropping runtime overrides."""
        self._load_config()

    @classmethod
    def reset(cls) -> None:
        """Forget the singleton so the next call loads afresh (tests, CLI --config)."""
        cls._instance = None


def get_config(key: str, default: Any = None) -> Any:
    """Shortcut for ConfigurationManager().get(key, default)."""
    return ConfigurationManager().get(key, default)


__all__ = ['ConfigurationManager', 'get_config', 'parse_override', 'CONFIG_ENV_VAR']
