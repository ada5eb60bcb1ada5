"""
Configuration Loader for Pattern Scanner
Loads scanner settings from a JSON rules file
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from .pattern_scanner import ScannerConfig
from .return_calculator import ReturnConfig

logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = 'scan_rules.json'


def _value(section: Dict[str, Any], key: str, default: Any) -> Any:
    """Read `key` as a plain value or as a {"value": ...} entry."""
    entry = section.get(key, default)
    if isinstance(entry, dict):
        return entry.get('value', default)
    return entry


class ConfigLoader:
    """Load scanner configuration from a rules file"""

    def __init__(self, path: Optional[str] = None):
        if path is None:
            path = os.path.join(os.getcwd(), DEFAULT_RULES_FILE)
        self.path = path
        self._cache: Optional[Dict[str, Any]] = None

    def _load_json(self) -> Dict[str, Any]:
        """Load JSON file with caching"""
        if self._cache is not None:
            return self._cache

        if not os.path.exists(self.path):
            logger.warning("Config file not found: %s; using defaults.", self.path)
            self._cache = {}
            return self._cache

        with open(self.path, 'r') as f:
            self._cache = json.load(f)
        return self._cache

    def load_section(self, name: str) -> Dict[str, Any]:
        section = self._load_json().get(name, {})
        if not isinstance(section, dict):
            logger.warning("Config section %r is not an object; ignoring it.", name)
            return {}
        return section

    def get_config(self) -> ScannerConfig:
        """Get consolidated config from all sections"""
        config = ScannerConfig()
        returns = ReturnConfig()

        geometry = self.load_section('geometry')
        if geometry:
            config.epsilon = float(_value(geometry, 'epsilon', config.epsilon))

        trend = self.load_section('trend')
        if trend:
            config.following_trend_threshold = int(
                _value(trend, 'following_trend_threshold', config.following_trend_threshold))
            walk_limit = _value(trend, 'walk_limit', config.trend_walk_limit)
            config.trend_walk_limit = int(walk_limit) if walk_limit is not None else None

        rules = self.load_section('returns')
        if rules:
            returns.fixed_windows = tuple(_value(rules, 'fixed_windows', returns.fixed_windows))
            returns.relative_multipliers = tuple(
                _value(rules, 'relative_multipliers', returns.relative_multipliers))
            returns.first_window_log = bool(_value(rules, 'first_window_log', returns.first_window_log))
            returns.invert_bullish = bool(_value(rules, 'invert_bullish', returns.invert_bullish))
            returns.min_pattern_length = float(
                _value(rules, 'min_pattern_length', returns.min_pattern_length))
        config.returns = returns

        execution = self.load_section('execution')
        if execution:
            config.parallel = bool(_value(execution, 'parallel', config.parallel))
            max_workers = _value(execution, 'max_workers', config.max_workers)
            config.max_workers = int(max_workers) if max_workers is not None else None
            config.progress_every = int(_value(execution, 'progress_every', config.progress_every))

        return config


def load_config(path: Optional[str] = None) -> ScannerConfig:
    """Convenience function to load config"""
    loader = ConfigLoader(path)
    return loader.get_config()
