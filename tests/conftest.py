"""
Global pytest configuration and fixtures for polycache tests.
"""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

# Keep a developer's environment from leaking into the settings under test
for _name in list(os.environ):
    if _name.startswith("CACHE_"):
        del os.environ[_name]


@pytest.fixture(autouse=True)
def _reset_settings():
    """Drop the cached settings singleton between tests."""
    from polycache.settings import reset_settings

    reset_settings()
    yield
    reset_settings()
