"""Tests for azure_auth and the prerequisites checker."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from avdmon.azure_auth import AuthenticationError, AzureAuthenticator
from avdmon.modules.prerequisites import PrerequisiteChecker, PrerequisiteError

SUB_ID = "11111111-2222-3333-4444-555555555555"

ACCOUNT_JSON = json.dumps(
    {
        "id": SUB_ID,
        "name": "AVD Production",
        "tenantId": "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee",
        "user": {"name": "ops@contoso.com", "type": "user"},
    }
)


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=["az"], returncode=returncode, stdout=stdout, stderr=stderr)


class TestAzureAuthenticator:
    """Tests for AzureAuthenticator.get_account."""

    @patch("avdmon.azure_auth.run_az_command")
    def test_returns_account(self, mock_run: MagicMock):
        mock_run.return_value = _completed(stdout=ACCOUNT_JSON)

        account = AzureAuthenticator().get_account()

        assert account.subscription_id == SUB_ID
        assert account.subscription_name == "AVD Production"
        assert account.user == "ops@contoso.com"
        cmd = mock_run.call_args.args[0]
        assert cmd[:3] == ["az", "account", "show"]
        assert "--subscription" not in cmd

    @patch("avdmon.azure_auth.run_az_command")
    def test_passes_subscription(self, mock_run: MagicMock):
        mock_run.return_value = _completed(stdout=ACCOUNT_JSON)

        AzureAuthenticator(subscription="AVD Production").get_account()

        cmd = mock_run.call_args.args[0]
        assert cmd[-2:] == ["--subscription", "AVD Production"]

    @patch("avdmon.azure_auth.run_az_command")
    def test_account_is_cached(self, mock_run: MagicMock):
        mock_run.return_value = _completed(stdout=ACCOUNT_JSON)
        auth = AzureAuthenticator()

        assert auth.get_account() is auth.get_account()
        mock_run.assert_called_once()

    @patch("avdmon.azure_auth.run_az_command")
    def test_not_logged_in(self, mock_run: MagicMock):
        mock_run.return_value = _completed(
            returncode=1, stderr="ERROR: Please run 'az login' to setup account."
        )

        with pytest.raises(AuthenticationError, match="az login"):
            AzureAuthenticator().get_account()

    @patch("avdmon.azure_auth.run_az_command")
    def test_az_missing(self, mock_run: MagicMock):
        mock_run.side_effect = FileNotFoundError("az")

        with pytest.raises(AuthenticationError, match="not found"):
            AzureAuthenticator().get_account()

    @patch("avdmon.azure_auth.run_az_command")
    def test_timeout(self, mock_run: MagicMock):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="az", timeout=30)

        with pytest.raises(AuthenticationError, match="Timed out"):
            AzureAuthenticator().get_account()

    @patch("avdmon.azure_auth.run_az_command")
    def test_invalid_subscription_id(self, mock_run: MagicMock):
        mock_run.return_value = _completed(stdout=json.dumps({"id": "not-a-guid"}))

        with pytest.raises(AuthenticationError, match="Invalid subscription id"):
            AzureAuthenticator().get_account()

    @patch("avdmon.azure_auth.run_az_command")
    def test_unparseable_output(self, mock_run: MagicMock):
        mock_run.return_value = _completed(stdout="{broken")

        with pytest.raises(AuthenticationError, match="Unexpected output"):
            AzureAuthenticator().get_account()


class TestPrerequisiteChecker:
    """Tests for PrerequisiteChecker."""

    @patch("avdmon.modules.prerequisites.shutil.which")
    def test_all_available(self, mock_which: MagicMock):
        mock_which.return_value = "/usr/bin/az"

        result = PrerequisiteChecker.check_all()

        assert result.all_available is True
        assert result.available == ["az"]
        assert result.missing == []

    @patch("avdmon.modules.prerequisites.shutil.which")
    def test_verify_raises_with_install_hint(self, mock_which: MagicMock):
        mock_which.return_value = None

        with pytest.raises(PrerequisiteError) as exc_info:
            PrerequisiteChecker.verify()

        assert "az" in str(exc_info.value)
        assert "install-azure-cli" in str(exc_info.value)

    def test_format_missing_message_none_missing(self):
        assert (
            PrerequisiteChecker.format_missing_message([], "linux")
            == "All prerequisites are installed."
        )

    @patch("avdmon.modules.prerequisites.platform.system")
    def test_detect_platform(self, mock_system: MagicMock):
        mock_system.return_value = "Darwin"
        assert PrerequisiteChecker.detect_platform() == "macos"
        mock_system.return_value = "Linux"
        assert PrerequisiteChecker.detect_platform() == "linux"
        mock_system.return_value = "Plan9"
        assert PrerequisiteChecker.detect_platform() == "unknown"
