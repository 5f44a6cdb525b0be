"""Standardized Azure CLI subprocess execution with retry logic.

Provides run_az_command(), a thin wrapper around subprocess.run that adds
automatic retry with exponential backoff for transient Azure CLI failures
(TimeoutExpired, and CalledProcessError when check=True), and parse_az_json()
for decoding az's JSON stdout.

Usage:
    from avdmon.azure_cli_executor import run_az_command

    result = run_az_command(["az", "monitor", "scheduled-query", "list", "--output", "json"])

    # Single attempt with a hard timeout
    result = run_az_command(["az", "resource", "list"], timeout=25, max_attempts=1)
"""

import json
import logging
import subprocess
from typing import Any

from avdmon.retry_config import get_retry_config
from avdmon.retry_handler import retry_with_exponential_backoff

logger = logging.getLogger(__name__)


def run_az_command(
    cmd: list[str],
    *,
    timeout: float = 60,
    max_attempts: int | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute an Azure CLI command with retry logic.

    Args:
        cmd: Command list starting with "az", e.g. ["az", "account", "show"]
        timeout: Subprocess timeout in seconds (default: 60)
        max_attempts: Number of attempts (default: from RetryConfig)
        check: If True, raise CalledProcessError on non-zero exit (default: True).
            With check=False only timeouts are retried.

    Returns:
        subprocess.CompletedProcess with stdout/stderr

    Raises:
        subprocess.CalledProcessError: After retries exhausted (when check=True)
        subprocess.TimeoutExpired: After retries exhausted
        FileNotFoundError: If az is not installed
    """
    config = get_retry_config()
    attempts = max_attempts or config.azure_cli_max_attempts

    @retry_with_exponential_backoff(
        max_attempts=attempts,
        initial_delay=config.azure_cli_initial_delay,
        max_delay=config.azure_cli_max_delay,
        jitter=config.jitter_enabled,
        retryable_exceptions=(subprocess.CalledProcessError, subprocess.TimeoutExpired),
    )
    def _run() -> subprocess.CompletedProcess[str]:
        logger.debug(f"Running: {' '.join(cmd[:4])} ...")
        return subprocess.run(cmd, capture_output=True, text=True, check=check, timeout=timeout)

    return _run()


def parse_az_json(stdout: str | None) -> Any:
    """Decode az CLI JSON output.

    Empty output (az prints nothing for some successful calls) decodes to None.

    Raises:
        json.JSONDecodeError: If output is not valid JSON
    """
    if stdout is None or not stdout.strip():
        return None
    return json.loads(stdout)


__all__ = ["parse_az_json", "run_az_command"]
