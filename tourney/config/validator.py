"""Configuration validation."""

import logging
from typing import Dict, Any, List

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']
VALID_INPUT_MODES = ['auto', 'raw', 'line']


class ValidationError(Exception):
    """Configuration validation errors."""
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    Args:
        config: Configuration dictionary from loader

    Raises:
        ValidationError: If configuration is invalid
    """
    errors = []

    errors.extend(_validate_dashboard(config.get('dashboard', {})))
    errors.extend(_validate_input(config.get('input', {})))
    errors.extend(_validate_auto_train(config.get('auto_train', {})))
    errors.extend(_validate_simulation(config.get('simulation', {})))
    errors.extend(_validate_logging(config.get('logging', {})))

    if errors:
        raise ValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )


def _validate_dashboard(section: Dict[str, Any]) -> List[str]:
    """Validate dashboard timing and event log options."""
    errors = []

    for key in ('fast_refresh_interval', 'slow_refresh_interval', 'render_tick', 'monitor_poll_interval'):
        if key in section:
            value = section[key]
            if not _is_number(value) or value <= 0:
                errors.append(f"dashboard.{key} must be a positive number")

    fast = section.get('fast_refresh_interval')
    slow = section.get('slow_refresh_interval')
    if _is_number(fast) and _is_number(slow) and fast > slow:
        errors.append("dashboard.fast_refresh_interval must not exceed slow_refresh_interval")

    for key in ('max_events', 'events_displayed'):
        if key in section:
            value = section[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"dashboard.{key} must be a positive integer")

    if 'system_info' in section and not isinstance(section['system_info'], bool):
        errors.append("dashboard.system_info must be a boolean")

    return errors


def _validate_input(section: Dict[str, Any]) -> List[str]:
    """Validate keyboard input options."""
    errors = []

    mode = section.get('mode', 'auto')
    if mode not in VALID_INPUT_MODES:
        errors.append(f"input.mode must be one of: {', '.join(VALID_INPUT_MODES)}")

    if 'poll_interval' in section:
        value = section['poll_interval']
        if not _is_number(value) or value <= 0 or value > 1.0:
            errors.append("input.poll_interval must be between 0 and 1.0 seconds")

    return errors


def _validate_auto_train(section: Dict[str, Any]) -> List[str]:
    """Validate auto-train options."""
    errors = []

    enabled = section.get('enabled', True)
    if not isinstance(enabled, bool):
        errors.append("auto_train.enabled must be a boolean")

    artifacts = section.get('required_artifacts', [])
    if not isinstance(artifacts, list):
        errors.append("auto_train.required_artifacts must be a list")
    elif any(not isinstance(a, str) or not a for a in artifacts):
        errors.append("auto_train.required_artifacts entries must be non-empty strings")
    elif not artifacts and enabled is True:
        logger.warning("auto_train.required_artifacts is empty; automatic training will never fire")

    return errors


def _validate_simulation(section: Dict[str, Any]) -> List[str]:
    """Validate simulated service options."""
    errors = []

    if 'step_delay' in section:
        value = section['step_delay']
        if not _is_number(value) or value < 0:
            errors.append("simulation.step_delay must be a non-negative number")

    if 'steps' in section:
        value = section['steps']
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            errors.append("simulation.steps must be a positive integer")

    if 'fail_rate' in section:
        value = section['fail_rate']
        if not _is_number(value) or not 0.0 <= value <= 1.0:
            errors.append("simulation.fail_rate must be between 0.0 and 1.0")

    models = section.get('models', [])
    if not isinstance(models, list) or any(not isinstance(m, str) for m in models):
        errors.append("simulation.models must be a list of strings")

    return errors


def _validate_logging(section: Dict[str, Any]) -> List[str]:
    """Validate logging options section."""
    errors = []

    level = section.get('level', 'INFO')
    if level not in VALID_LOG_LEVELS:
        errors.append(f"logging.level must be one of: {', '.join(VALID_LOG_LEVELS)}")

    console = section.get('console', True)
    if not isinstance(console, bool):
        errors.append("logging.console must be a boolean")

    if 'file' in section and section['file'] is not None:
        if not isinstance(section['file'], str):
            errors.append("logging.file must be a string path or null")

    return errors
