"""
Shared fixtures for the bwenv test suite.
"""

import tempfile
from pathlib import Path

import pytest

from bwenv.providers.memory import MemoryProvider


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def provider():
    """A memory provider with one empty project named 'web'."""
    return MemoryProvider({"web": {}})


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the caller's bwenv settings out of the tests."""
    for name in (
        "BWS_ACCESS_TOKEN",
        "BWS_ORGANIZATION_ID",
        "BWENV_PROJECT",
        "BWENV_ENV_FILE",
        "BWENV_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)