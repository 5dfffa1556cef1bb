"""
Configuration management module for the expense tracker.

This module handles loading and saving configuration values from
config.yaml, merging user settings over the defaults below.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'data_dir': 'data',
        'path': 'expenses.db',
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
    'notifications': {
        'dedup_window_hours': 24,
        'approaching_threshold': 80,
        'dedup_mode': 'substring',
    },
    'advice': {
        'provider': 'openrouter',
        'timeout_seconds': 30,
    },
    'ocr': {
        'timeout_seconds': 10,
        'delay_seconds': 2,
    },
    'user': {
        'monthly_budget': 2000.0,
    },
}

CONFIG_FILE = 'config.yaml'


def _merge_defaults(config: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Fill keys missing from ``config`` with ``defaults``, descending into nested dicts."""
    for key, value in defaults.items():
        if key not in config or config[key] is None:
            config[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(config[key], dict):
            _merge_defaults(config[key], value)
    return config


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    A missing file is not an error: the defaults are returned instead.

    Args:
        config_path: Path to the YAML file (defaults to config.yaml)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file exists but is not valid YAML mapping
    """
    path = Path(config_path or CONFIG_FILE)
    config: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, 'r') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML in configuration file: {e}",
                details={"config_path": str(path)},
                original_error=e
            ) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(
                "Configuration file must contain a mapping at the top level",
                details={"config_path": str(path)}
            )
        config = loaded or {}
    else:
        logger.debug("Config file %s not found; using defaults", path)

    _merge_defaults(config, DEFAULT_CONFIG)
    logger.info("Configuration loaded successfully")
    return config


def save_config(config: Dict[str, Any], config_path: Optional[Union[str, Path]] = None) -> bool:
    """
    Save configuration to a YAML file, preserving keys not present in ``config``.

    Args:
        config: Configuration dictionary to save
        config_path: Destination path (defaults to config.yaml)

    Returns:
        True if successful, False otherwise
    """
    path = Path(config_path or CONFIG_FILE)
    try:
        existing_config: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r') as f:
                existing_config = yaml.safe_load(f) or {}

        existing_config.update(config)

        with open(path, 'w') as f:
            yaml.dump(existing_config, f, default_flow_style=False)

        logger.info("Configuration saved successfully")
        return True

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error saving configuration: {e}", exc_info=True)
        return False


def get_section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a configuration section, falling back to its defaults."""
    section = config.get(name)
    if isinstance(section, dict):
        return section
    return copy.deepcopy(DEFAULT_CONFIG.get(name, {}))
