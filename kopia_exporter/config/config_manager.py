"""Configuration management for the kopia exporter."""

import copy
import os
from typing import Any, Dict, Optional

import yaml

from .config_validator import ConfigValidator

DEFAULTS = {
    'kopia': {
        'bin': 'kopia',
        'args': ['snapshot', 'list', '--json'],
        'extra_args': [],
        'timeout_seconds': 15,
    },
    'cache': {
        'seconds': 30,
    },
    'server': {
        'bind': '127.0.0.1:9090',
        'max_bind_retries': 5,
    },
    'logging': {
        'level': 'INFO',
        'file': None,
    },
}


class ConfigManager:
    """Manages configuration loading and validation for the exporter."""

    DEFAULT_CONFIG_LOCATIONS = [
        "config.yaml",
        "config.yml",
        os.path.expanduser("~/.kopia-exporter/config.yaml"),
        os.path.expanduser("~/.kopia-exporter/config.yml"),
        "/etc/kopia-exporter/config.yaml",
        "/etc/kopia-exporter/config.yml"
    ]

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional path to config file. If not provided,
                        will search in default locations.
        """
        self.config_path = config_path
        self.config_file: Optional[str] = None
        self.config_data: Dict[str, Any] = {}
        self.validator = ConfigValidator()

    def load_config(self, overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Load configuration from defaults, the config file and overrides.

        Args:
            overrides: Section/key values taking precedence over the file,
                typically from command-line options. None values are ignored.

        Returns:
            Dictionary containing configuration data.

        Raises:
            FileNotFoundError: If an explicitly given config file is missing.
            ValueError: If config file or resulting configuration is invalid.
        """
        self.config_file = self._find_config_file()
        file_data: Dict[str, Any] = {}

        if self.config_file:
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in config file {self.config_file}: {e}")
            except OSError as e:
                raise ValueError(f"Error reading config file {self.config_file}: {e}")

            if not isinstance(file_data, dict):
                raise ValueError(f"Config file {self.config_file} must contain a mapping")

        self.config_data = copy.deepcopy(file_data)
        self._apply_overrides(overrides or {})

        # Validate before defaults so errors point at user-supplied values
        self.validator.validate(self.config_data)

        self._set_defaults()

        return self.config_data

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in default locations.

        Returns:
            Path to configuration file, or None to run on defaults.

        Raises:
            FileNotFoundError: If an explicit config path does not exist.
        """
        if self.config_path:
            if os.path.exists(self.config_path):
                return self.config_path
            else:
                raise FileNotFoundError(f"Config file not found: {self.config_path}")

        for location in self.DEFAULT_CONFIG_LOCATIONS:
            if os.path.exists(location):
                return location

        return None

    def _apply_overrides(self, overrides: Dict[str, Dict[str, Any]]):
        for section, values in overrides.items():
            for key, value in values.items():
                if value is None:
                    continue
                if not isinstance(self.config_data.get(section), dict):
                    self.config_data[section] = {}
                self.config_data[section][key] = value

    def _set_defaults(self):
        """Set default values for optional configuration parameters."""
        for section, section_defaults in DEFAULTS.items():
            if section not in self.config_data:
                self.config_data[section] = {}
            for key, value in section_defaults.items():
                if key not in self.config_data[section]:
                    self.config_data[section][key] = copy.deepcopy(value)

    def get_kopia_config(self) -> Dict[str, Any]:
        """Get kopia command configuration."""
        return self.config_data.get('kopia', {})

    def get_cache_config(self) -> Dict[str, Any]:
        """Get cache configuration."""
        return self.config_data.get('cache', {})

    def get_server_config(self) -> Dict[str, Any]:
        """Get HTTP server configuration."""
        return self.config_data.get('server', {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.config_data.get('logging', {})
