"""
Shared fixtures for config module tests.
"""
import copy

import pytest

from tourney.config.loader import DEFAULT_CONFIG


@pytest.fixture
def valid_config():
    """Complete valid configuration (the built-in defaults)."""
    return copy.deepcopy(DEFAULT_CONFIG)
