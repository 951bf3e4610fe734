"""
pytest configuration for the test suite.

Adds src directory to Python path for imports and keeps the host's EBAY_*
settings out of the tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.logging.context import clear_log_context  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Strip EBAY_* / LOG_LEVEL variables and reset log context around each test."""
    for name in list(os.environ):
        if name.startswith("EBAY_") or name == "LOG_LEVEL":
            monkeypatch.delenv(name, raising=False)
    clear_log_context()
    yield
    clear_log_context()
