"""Azure authentication check via az CLI delegation.

avdmon never handles credentials: every call runs under whatever identity the
az CLI is logged in as (tokens live in ~/.azure/). This module only verifies
that a usable login exists before any resource is touched.

Security:
- No credential storage
- Delegates to az CLI
- Validates subscription id format
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass

from avdmon.azure_cli_executor import parse_az_json, run_az_command
from avdmon.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

_GUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)


class AuthenticationError(Exception):
    """Raised when the az CLI has no usable login."""

    pass


@dataclass
class AzureAccount:
    """Active az CLI account."""

    subscription_id: str
    subscription_name: str
    tenant_id: str | None = None
    user: str | None = None


class AzureAuthenticator:
    """Verify the az CLI login and resolve the target subscription."""

    def __init__(self, subscription: str | None = None):
        """Initialize authenticator.

        Args:
            subscription: Subscription id or name to target (default: az's active one)
        """
        self._subscription = subscription
        self._account: AzureAccount | None = None

    def get_account(self) -> AzureAccount:
        """Return the account az will use, verifying the login.

        Returns:
            AzureAccount for the target subscription

        Raises:
            AuthenticationError: If az is missing, not logged in, or the
                subscription is not accessible
        """
        if self._account:
            return self._account

        cmd = ["az", "account", "show", "--output", "json"]
        if self._subscription:
            cmd.extend(["--subscription", self._subscription])

        try:
            result = run_az_command(cmd, timeout=30, check=False)
        except FileNotFoundError as e:
            raise AuthenticationError("Azure CLI (az) not found on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise AuthenticationError("Timed out waiting for 'az account show'") from e

        if result.returncode != 0:
            detail = LogSanitizer.error_detail(result.stderr)
            raise AuthenticationError(
                f"Azure CLI is not logged in or subscription is unavailable: {detail}\n"
                "Please run: az login"
            )

        try:
            data = parse_az_json(result.stdout) or {}
        except json.JSONDecodeError as e:
            raise AuthenticationError(f"Unexpected output from 'az account show': {e}") from e

        subscription_id = data.get("id", "")
        if not _GUID_RE.match(subscription_id):
            raise AuthenticationError(f"Invalid subscription id returned by az: '{subscription_id}'")

        self._account = AzureAccount(
            subscription_id=subscription_id,
            subscription_name=data.get("name", ""),
            tenant_id=data.get("tenantId"),
            user=(data.get("user") or {}).get("name"),
        )
        logger.info(
            f"Using subscription {self._account.subscription_name} ({self._account.subscription_id})"
        )
        return self._account


__all__ = ["AuthenticationError", "AzureAccount", "AzureAuthenticator"]
