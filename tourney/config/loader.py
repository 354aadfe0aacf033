"""Configuration loading and parsing."""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

DEFAULT_CONFIG: Dict[str, Any] = {
    'dashboard': {
        'fast_refresh_interval': 0.2,
        'slow_refresh_interval': 1.0,
        'render_tick': 0.05,
        'monitor_poll_interval': 0.1,
        'max_events': 100,
        'events_displayed': 10,
        'system_info': True,
    },
    'input': {
        'mode': 'auto',
        'poll_interval': 0.01,
    },
    'auto_train': {
        'enabled': True,
        'required_artifacts': ['train.parquet', 'validation.parquet', 'live.parquet'],
    },
    'simulation': {
        'step_delay': 0.1,
        'steps': 20,
        'fail_rate': 0.0,
        'models': ['example_model'],
    },
    'logging': {
        'level': 'INFO',
        'console': True,
        'file': None,
    },
}


class ConfigError(Exception):
    """Configuration-related errors."""
    pass


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base; nested dicts merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and parse configuration file.

    Args:
        config_path: Path to config.yaml file. If None, uses ./config.yaml when
            present and the built-in defaults otherwise.

    Returns:
        Configuration dictionary with user values merged over DEFAULT_CONFIG

    Raises:
        ConfigError: If config file cannot be loaded or parsed
    """
    if config_path is None:
        path = Path.cwd() / "config.yaml"
        if not path.exists():
            return copy.deepcopy(DEFAULT_CONFIG)
    else:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(
                f"Configuration file not found: {path}\n"
                f"Copy config.yaml.example to config.yaml and configure it."
            )

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {e}") from e

    # An empty file means "all defaults"
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    return _deep_merge(DEFAULT_CONFIG, config)


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get a nested configuration value using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., 'dashboard.max_events')
        default: Default value if path not found

    Returns:
        Configuration value or default

    Example:
        >>> get_config_value(config, 'auto_train.required_artifacts')
        ['train.parquet', 'validation.parquet', 'live.parquet']
    """
    value = config
    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value
