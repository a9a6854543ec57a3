"""
Configuration Loader

Utilities for loading YAML configuration files with validation.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional
import os

CONFIG_PATH_ENV = "FLIPPER_TOTP_CONFIG"


class ConfigLoader:
    """
    Load and validate YAML configuration files.
    """

    @staticmethod
    def load(config_path: str, required_keys: Optional[list] = None) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            config_path: Path to YAML file
            required_keys: List of keys that must be present in config

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If required keys are missing or the root is not a mapping
            yaml.YAMLError: If YAML is invalid
        """
        path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        if config is None:
            config = {}

        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping: {config_path}")

        # Validate required keys
        if required_keys:
            missing = [key for key in required_keys if key not in config]
            if missing:
                raise ValueError(f"Missing required configuration keys: {missing}")

        return config

    @staticmethod
    def load_with_env_override(config_path: str, env_prefix: str = "FLIPPER_TOTP_") -> Dict[str, Any]:
        """
        Load config and override with environment variables.

        Environment variables matching env_prefix override config values.
        A double underscore selects a key inside a section, so
        FLIPPER_TOTP_SERIAL__BAUDRATE overrides config['serial']['baudrate'].
        Values are parsed as YAML scalars, so numbers and booleans keep
        their types. Empty values and CONFIG_PATH_ENV are ignored.

        Args:
            config_path: Path to YAML file
            env_prefix: Prefix for environment variables

        Returns:
            Configuration dictionary with env overrides applied
        """
        config = ConfigLoader.load(config_path)

        for key, value in os.environ.items():
            if not key.startswith(env_prefix) or key == CONFIG_PATH_ENV:
                continue
            if not value.strip():
                continue

            parts = key[len(env_prefix):].lower().split('__')
            target = config
            for section in parts[:-1]:
                if not isinstance(target.get(section), dict):
                    target[section] = {}
                target = target[section]
            target[parts[-1]] = yaml.safe_load(value)

        return config
