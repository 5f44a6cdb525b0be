"""Pytest configuration and fixtures for avdmon tests.

CRITICAL: Protects the user's configuration from test modifications and
keeps unit tests from reaching a real Azure subscription.
"""

import os
import shutil
import subprocess
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def protect_production_config():
    """Protect ~/.avdmon/config.toml from being modified by tests.

    Backs up the real config.toml before any tests run and restores it after
    all tests complete.
    """
    config_path = Path.home() / ".avdmon" / "config.toml"
    backup_path = Path.home() / ".avdmon" / ".config.toml.pytest-backup"

    config_existed = config_path.exists()
    if config_existed:
        shutil.copy2(config_path, backup_path)

    yield

    if config_existed and backup_path.exists():
        shutil.copy2(backup_path, config_path)
        backup_path.unlink()
    elif backup_path.exists():
        backup_path.unlink()


@pytest.fixture(autouse=True)
def prevent_real_azure_operations(monkeypatch):
    """Fail any az invocation a test forgot to mock.

    Tests that patch subprocess.run themselves replace this guard. Set
    RUN_E2E_TESTS=true to let az calls through to real Azure.
    """
    if os.environ.get("RUN_E2E_TESTS") == "true":
        return

    real_run = subprocess.run

    def guarded_run(cmd, *args, **kwargs):
        if isinstance(cmd, (list, tuple)) and cmd and os.path.basename(str(cmd[0])) == "az":
            raise AssertionError(f"Unmocked az call in test: {' '.join(map(str, cmd[:4]))}")
        return real_run(cmd, *args, **kwargs)

    monkeypatch.setattr(subprocess, "run", guarded_run)


def pytest_sessionstart(session):
    if os.environ.get("RUN_E2E_TESTS") == "true":
        print("\nWARNING: RUN_E2E_TESTS=true - E2E tests will use REAL Azure resources!")
