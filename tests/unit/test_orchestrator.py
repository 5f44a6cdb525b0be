"""Tests for MonitoringOrchestrator with a fake client and authenticator."""

import io
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from avdmon.azure_auth import AuthenticationError, AzureAccount
from avdmon.config_manager import AvdmonConfig, ConfigError
from avdmon.models import ReconciliationAction, ReconciliationStatus, ResourceKind
from avdmon.modules.prerequisites import PrerequisiteError
from avdmon.modules.progress import ProgressDisplay
from avdmon.orchestrator import MonitoringOrchestrator
from avdmon.reporter import Reporter
from avdmon.resource_client import DependencyResolutionError
from tests.mocks.monitor_mock import FakeMonitorClient

SUB = "00000000-0000-0000-0000-000000000000"


@pytest.fixture
def config(tmp_path):
    return AvdmonConfig(
        resource_group="rg-avd",
        workspace_name="law-avd",
        notification_email="ops@contoso.com",
        output_path=str(tmp_path / "results.csv"),
        max_workers=4,
    )


@pytest.fixture(autouse=True)
def az_installed():
    with patch("avdmon.orchestrator.PrerequisiteChecker.verify") as mock_verify:
        yield mock_verify


def _orchestrator(config, client, dry_run=False):
    auth = MagicMock()
    auth.get_account.return_value = AzureAccount(subscription_id=SUB, subscription_name="AVD")
    return MonitoringOrchestrator(
        config,
        dry_run=dry_run,
        client=client,
        authenticator=auth,
        progress=ProgressDisplay(output_file=io.StringIO()),
        reporter=Reporter(console=Console(file=io.StringIO())),
    )


class TestRun:
    """Tests for MonitoringOrchestrator.run."""

    def test_full_deploy_creates_everything(self, config, tmp_path):
        client = FakeMonitorClient()

        report = _orchestrator(config, client).run()

        kinds = {r.kind for r in report.results}
        assert kinds == {
            ResourceKind.ALERT,
            ResourceKind.DIAGNOSTIC_SETTING,
            ResourceKind.DATA_COLLECTION_RULE,
        }
        assert report.created == report.total
        assert "avd-diag-hp-hp-prod" in report.by_name()
        assert (tmp_path / "results.csv").exists()

    def test_rerun_is_idempotent(self, config):
        client = FakeMonitorClient()
        _orchestrator(config, client).run()
        applied = len(client.apply_calls)

        report = _orchestrator(config, client).run()

        assert report.skipped == report.total
        assert len(client.apply_calls) == applied

    def test_dry_run_plans_without_applying(self, config):
        client = FakeMonitorClient(existing={"avd-dcr-perf"})

        report = _orchestrator(config, client, dry_run=True).run()

        assert client.apply_calls == []
        assert report.is_what_if
        assert report.by_name()["avd-dcr-perf"].action is ReconciliationAction.SKIPPED
        assert report.by_name()["avd-dcr-events"].action is ReconciliationAction.CREATED

    def test_only_requested_kinds(self, config):
        client = FakeMonitorClient()
        client.ensure_action_group = MagicMock()

        report = _orchestrator(config, client).run([ResourceKind.DATA_COLLECTION_RULE])

        assert {r.kind for r in report.results} == {ResourceKind.DATA_COLLECTION_RULE}
        client.ensure_action_group.assert_not_called()

    def test_apply_failure_does_not_stop_run(self, config):
        from avdmon.models import ApplyOutcome

        client = FakeMonitorClient(
            apply_outcomes={"avd-dcr-perf": ApplyOutcome.failure("(BadRequest) invalid counter")}
        )

        report = _orchestrator(config, client).run([ResourceKind.DATA_COLLECTION_RULE])

        assert report.by_name()["avd-dcr-perf"].status is ReconciliationStatus.FAILED
        assert report.by_name()["avd-dcr-events"].status is ReconciliationStatus.SUCCESS


class TestPreflight:
    """Fatal pre-flight failures abort before any apply."""

    def test_missing_required_settings(self, config):
        config.workspace_name = None
        client = FakeMonitorClient()

        with pytest.raises(ConfigError, match="workspace_name"):
            _orchestrator(config, client).run()
        assert client.apply_calls == []

    def test_invalid_config(self, config):
        config.max_workers = 0
        with pytest.raises(ConfigError):
            _orchestrator(config, FakeMonitorClient()).run()

    def test_missing_az(self, config, az_installed):
        az_installed.side_effect = PrerequisiteError("Missing required tools: az")
        client = FakeMonitorClient()

        with pytest.raises(PrerequisiteError):
            _orchestrator(config, client).run()
        assert client.apply_calls == []

    def test_not_logged_in(self, config):
        client = FakeMonitorClient()
        orchestrator = _orchestrator(config, client)
        orchestrator.auth.get_account.side_effect = AuthenticationError("Please run: az login")

        with pytest.raises(AuthenticationError):
            orchestrator.run()
        assert client.apply_calls == []

    def test_action_group_unavailable(self, config):
        client = FakeMonitorClient()
        client.ensure_action_group = MagicMock(
            side_effect=DependencyResolutionError("no notification email")
        )

        with pytest.raises(DependencyResolutionError):
            _orchestrator(config, client).run()
        assert client.apply_calls == []
