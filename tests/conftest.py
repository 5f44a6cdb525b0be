"""
Shared test fixtures for avdmon tests.

This module provides common fixtures used across all test types:
- Fake resource client (see tests/mocks/monitor_mock.py)
- Sample definitions
- Isolated config directory
- Immediate az retries
"""

import pytest

from avdmon.retry_config import reset_retry_config
from tests.mocks.monitor_mock import FakeMonitorClient, make_definition


@pytest.fixture
def fake_client():
    """Empty fake client; nothing exists yet."""
    return FakeMonitorClient()


@pytest.fixture
def definitions():
    """Three alert definitions named avd-a, avd-b, avd-c."""
    return [make_definition(f"avd-{suffix}") for suffix in ("a", "b", "c")]


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point ConfigManager at a temporary ~/.avdmon.

    Use this fixture instead of touching ~/.avdmon/config.toml.
    """
    from avdmon.config_manager import ConfigManager

    config_dir = tmp_path / ".avdmon"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    return config_dir


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Make az retries immediate and reload retry config per test."""
    monkeypatch.setenv("AVDMON_RETRY_INITIAL_DELAY", "0")
    monkeypatch.setenv("AVDMON_RETRY_MAX_DELAY", "0")
    reset_retry_config()
    yield
    reset_retry_config()
