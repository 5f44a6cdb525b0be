"""Tests for the Reconciler: decisions, policies, dry-run and conflict handling."""

from unittest.mock import MagicMock

import pytest

from avdmon.existence_cache import ExistenceCache
from avdmon.models import ApplyOutcome, ReconciliationAction, ReconciliationStatus
from avdmon.reconciler import ReconcilePolicy, Reconciler
from avdmon.resource_client import TransientLookupError
from tests.mocks.monitor_mock import FakeMonitorClient, make_definition


def _reconcile_all(client, definitions, policy=ReconcilePolicy.CREATE_ONLY, dry_run=False):
    cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=5)
    reconciler = Reconciler(client, cache, policy=policy, dry_run=dry_run)
    return {d.name: reconciler.reconcile(d) for d in definitions}


class TestDecide:
    """Policy decision table."""

    @pytest.mark.parametrize(
        ("policy", "exists", "expected"),
        [
            (ReconcilePolicy.CREATE_ONLY, False, ReconciliationAction.CREATED),
            (ReconcilePolicy.CREATE_ONLY, True, ReconciliationAction.SKIPPED),
            (ReconcilePolicy.CREATE_OR_UPDATE, False, ReconciliationAction.CREATED),
            (ReconcilePolicy.CREATE_OR_UPDATE, True, ReconciliationAction.UPDATED),
        ],
    )
    def test_decide(self, policy, exists, expected):
        reconciler = Reconciler(MagicMock(), MagicMock(), policy=policy)
        assert reconciler.decide(exists) is expected


class TestReconcile:
    """End-to-end per-resource behaviour against the fake client."""

    def test_creates_missing_and_skips_existing(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"})

        results = _reconcile_all(client, definitions)

        assert {n: r.action for n, r in results.items()} == {
            "avd-a": ReconciliationAction.CREATED,
            "avd-b": ReconciliationAction.SKIPPED,
            "avd-c": ReconciliationAction.CREATED,
        }
        assert all(r.status is ReconciliationStatus.SUCCESS for r in results.values())
        assert sorted(client.applied_names) == ["avd-a", "avd-c"]

    def test_second_run_skips_everything(self, definitions):
        client = FakeMonitorClient()

        _reconcile_all(client, definitions)
        second = _reconcile_all(client, definitions)

        assert all(r.action is ReconciliationAction.SKIPPED for r in second.values())
        assert len(client.apply_calls) == 3

    def test_create_or_update_updates_existing(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"})

        results = _reconcile_all(client, definitions, policy=ReconcilePolicy.CREATE_OR_UPDATE)

        assert results["avd-b"].action is ReconciliationAction.UPDATED
        assert ("avd-b", True) in client.apply_calls
        assert ("avd-a", False) in client.apply_calls

    def test_dry_run_never_applies(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"})

        results = _reconcile_all(client, definitions, dry_run=True)

        assert client.apply_calls == []
        assert all(r.status is ReconciliationStatus.WHAT_IF for r in results.values())
        assert results["avd-a"].action is ReconciliationAction.CREATED
        assert results["avd-b"].action is ReconciliationAction.SKIPPED

    def test_data_sink_conflict_is_skip_without_error(self):
        definition = make_definition("avd-a")
        client = FakeMonitorClient(
            apply_outcomes={"avd-a": ApplyOutcome.conflict("Conflict: Data sink already used")}
        )

        result = _reconcile_all(client, [definition])["avd-a"]

        assert result.action is ReconciliationAction.SKIPPED
        assert result.status is ReconciliationStatus.SUCCESS
        assert result.error is None

    def test_benign_text_in_failure_reason_is_reclassified(self):
        definition = make_definition("avd-a")
        client = FakeMonitorClient(
            apply_outcomes={"avd-a": ApplyOutcome.failure("(ResourceExists) already exists")}
        )

        result = _reconcile_all(client, [definition])["avd-a"]

        assert result.action is ReconciliationAction.SKIPPED
        assert result.status is ReconciliationStatus.SUCCESS

    def test_apply_failure_is_recorded(self):
        definition = make_definition("avd-a", description="High CPU", category="Sev1")
        client = FakeMonitorClient(
            apply_outcomes={"avd-a": ApplyOutcome.failure("(BadRequest) password=hunter2 bad")}
        )

        result = _reconcile_all(client, [definition])["avd-a"]

        assert result.action is ReconciliationAction.FAILED
        assert result.status is ReconciliationStatus.FAILED
        assert "(BadRequest)" in result.error
        assert "hunter2" not in result.error
        assert result.description == "High CPU"
        assert result.category == "Sev1"

    def test_lookup_failure_is_error_result(self, definitions):
        client = FakeMonitorClient(
            list_error=TransientLookupError("down"),
            exists_error=TransientLookupError("lookup timed out"),
        )

        results = _reconcile_all(client, definitions)

        assert all(r.status is ReconciliationStatus.ERROR for r in results.values())
        assert all(r.action is ReconciliationAction.FAILED for r in results.values())
        assert client.apply_calls == []

    def test_unexpected_exception_is_contained(self):
        definition = make_definition("avd-a")
        client = MagicMock()
        client.apply.side_effect = RuntimeError("kaboom")
        cache = ExistenceCache(client, {"avd-a": False})

        result = Reconciler(client, cache).reconcile(definition)

        assert result.status is ReconciliationStatus.ERROR
        assert "kaboom" in result.error

    def test_skip_does_not_apply(self):
        client = MagicMock()
        cache = ExistenceCache(client, {"avd-a": True})

        result = Reconciler(client, cache).reconcile(make_definition("avd-a"))

        assert result.action is ReconciliationAction.SKIPPED
        client.apply.assert_not_called()
