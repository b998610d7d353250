# tracefs_eventer/utils/config.py - Configuration management
"""
Configuration management for the eventer.
Loads and validates configuration from YAML files.
"""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from tracefs_eventer.errors import ConfigError


OUTPUT_FORMATS = ('stdout', 'json', 'prometheus')


class Config:
    """
    Configuration manager for the eventer.

    Loads configuration from YAML files and provides access to settings.
    """

    DEFAULT_CONFIG = {
        'tracefs': {
            'mountpoint': None,
            'mounts_file': '/proc/mounts',
            'automount_paths': ['/sys/kernel/debug/tracing', '/sys/kernel/tracing'],
        },
        'instance': {
            'prefix': 'tcp-audit-',
        },
        'output': {
            'format': 'stdout',
            'prometheus_port': 9090,
            'json_file': None,
        },
        'logging': {
            'level': 'INFO',
        },
    }

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML configuration file
        """
        self.logger = logging.getLogger(__name__)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str):
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML file

        Raises:
            ConfigError: The file is not valid YAML or not a mapping
        """
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.warning(f"Config file not found: {config_file}, using defaults")
            return

        try:
            with open(config_path, 'r') as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"parsing config file {config_file}: {e}") from e

        if loaded_config is None:
            loaded_config = {}
        if not isinstance(loaded_config, dict):
            raise ConfigError(f"config file {config_file} must contain a mapping")

        # Merge with defaults
        self._merge_config(self.config, loaded_config)
        self.logger.info(f"Loaded configuration from {config_file}")

    def _merge_config(self, base: Dict, override: Dict):
        """
        Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'output.format')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'output.prometheus_port')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def validate(self):
        """
        Check configuration values.

        Raises:
            ConfigError: A value is invalid
        """
        output_format = self.get('output.format')
        if output_format not in OUTPUT_FORMATS:
            raise ConfigError(f"unknown output format {output_format!r}, "
                              f"expected one of {', '.join(OUTPUT_FORMATS)}")

        port = self.get('output.prometheus_port')
        if not isinstance(port, int) or isinstance(port, bool) or not 0 < port <= 0xFFFF:
            raise ConfigError(f"invalid prometheus port {port!r}")

        if not self.get('instance.prefix'):
            raise ConfigError("instance prefix must not be empty")

    def to_dict(self) -> Dict:
        """
        Get full configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return copy.deepcopy(self.config)

    def save_to_file(self, config_file: str):
        """
        Save current configuration to YAML file.

        Args:
            config_file: Path to output YAML file
        """
        config_path = Path(config_file)

        with open(config_path, 'w') as f:
            yaml.dump(self.config, f, default_flow_style=False)

        self.logger.info(f"Saved configuration to {config_file}")
