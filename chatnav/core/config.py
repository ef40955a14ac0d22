"""
Configuration management for ChatNav
"""

import os
import yaml
from typing import Dict, Any, Optional
from pathlib import Path
from .exceptions import ConfigurationError


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Configuration manager with environment-specific settings"""

    def __init__(self, config_path: Optional[str] = None, environment: str = "default"):
        self.environment = environment
        self._config = self._load_config(config_path)

    def _load_config(self, config_path: Optional[str] = None) -> Dict[str, Any]:
        """Load configuration from YAML files"""

        # Default configuration
        default_config = {
            'ollama': {
                'base_url': os.getenv('OLLAMA_BASE_URL', 'http://localhost:11434'),
                'default_model': os.getenv('OLLAMA_DEFAULT_MODEL', 'gemma:2b'),
                'request_timeout': 30
            },
            'bridge': {
                'enabled': _env_flag('CHATNAV_BRIDGE_ENABLED', True),
                'timeout_seconds': float(os.getenv('CHATNAV_BRIDGE_TIMEOUT', '2.0')),
                'min_select_confidence': 0.6
            },
            # Options decay fastest, opened-panel context slowest
            'decay': {
                'options_seconds': 60,
                'list_preview_seconds': 90,
                'opened_panel_seconds': 180
            },
            'selection': {
                'pending_grace_seconds': 60,
                'reshow_window_seconds': 120,
                'latch_idle_ttl_seconds': 0  # 0 disables the idle exit
            },
            'fuzzy': {
                'floor': 0.5,
                'high': 0.90,
                'medium': 0.60,
                'close_gap': 0.08,
                'relaxed_floor': 0.45
            },
            'history': {
                'max_entries': 50
            },
            'context': {
                'message_window': 20,
                'expanded_window': 60
            },
            'ui': {
                'max_visible_widgets': 10,
                'max_open_items': 5
            },
            'logging': {
                'level': 'WARNING',
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            }
        }

        # Try to load from file if provided
        if config_path:
            config_file = Path(config_path)
            if not config_file.exists():
                raise ConfigurationError(f"Config file not found: {config_file}")
        else:
            # Look for config files in standard locations
            possible_paths = [
                Path('config') / f'{self.environment}.yaml',
                Path('config') / 'default.yaml',
                Path('../config') / f'{self.environment}.yaml',
                Path('../config') / 'default.yaml'
            ]

            config_file = None
            for path in possible_paths:
                if path.exists():
                    config_file = path
                    break

        if config_file and config_file.exists():
            try:
                with open(config_file, 'r') as f:
                    file_config = yaml.safe_load(f)
                    if file_config:
                        default_config = self._deep_merge(default_config, file_config)
            except Exception as e:
                raise ConfigurationError(f"Failed to load config from {config_file}: {e}")

        return default_config

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value using dot notation (e.g., 'decay.options_seconds')"""
        keys = path.split('.')
        value = self._config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, path: str, value: Any) -> None:
        """Set config value using dot notation"""
        keys = path.split('.')
        config = self._config

        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    @property
    def ollama(self) -> Dict[str, Any]:
        """Ollama configuration"""
        return self.get('ollama', {})

    @property
    def bridge(self) -> Dict[str, Any]:
        """Constrained LLM bridge configuration"""
        return self.get('bridge', {})

    @property
    def decay(self) -> Dict[str, Any]:
        """Per-field decay windows for chat context"""
        return self.get('decay', {})

    @property
    def selection(self) -> Dict[str, Any]:
        """Grace windows and latch settings"""
        return self.get('selection', {})

    @property
    def fuzzy(self) -> Dict[str, Any]:
        """Fuzzy matcher thresholds"""
        return self.get('fuzzy', {})

    def to_dict(self) -> Dict[str, Any]:
        """Return full configuration as dictionary"""
        return self._config.copy()
