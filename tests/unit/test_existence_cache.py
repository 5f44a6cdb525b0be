"""Tests for ExistenceCache: bulk listing with per-item fallback."""

import time

import pytest

from avdmon.existence_cache import ExistenceCache
from avdmon.models import ResourceKind
from avdmon.resource_client import TransientLookupError
from tests.mocks.monitor_mock import RG_SCOPE, FakeMonitorClient, make_definition

HOSTPOOL = f"{RG_SCOPE}/providers/Microsoft.DesktopVirtualization/hostPools/hp-prod"


class TestBuild:
    """Tests for ExistenceCache.build."""

    def test_authoritative_record_from_bulk_listing(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"})

        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=5)

        assert dict(cache.record) == {"avd-a": False, "avd-b": True, "avd-c": False}
        assert cache.indeterminate_scopes == frozenset()
        assert all(cache.is_authoritative(d.name) for d in definitions)

    def test_one_listing_per_kind_and_scope(self):
        definitions = [
            make_definition("avd-alert-1"),
            make_definition("avd-alert-2"),
            make_definition("avd-dcr-perf", kind=ResourceKind.DATA_COLLECTION_RULE),
            make_definition("avd-diag-hp-1", kind=ResourceKind.DIAGNOSTIC_SETTING, scope=HOSTPOOL),
        ]
        client = FakeMonitorClient()

        ExistenceCache.build(client, definitions, prefix="avd", timeout=5)

        assert sorted(client.list_calls, key=lambda c: c[0].value) == sorted(
            [
                (ResourceKind.ALERT, RG_SCOPE),
                (ResourceKind.DATA_COLLECTION_RULE, RG_SCOPE),
                (ResourceKind.DIAGNOSTIC_SETTING, HOSTPOOL),
            ],
            key=lambda c: c[0].value,
        )

    def test_listing_error_marks_scope_indeterminate(self, definitions, caplog):
        client = FakeMonitorClient(list_error=TransientLookupError("throttled"))

        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=5)

        assert dict(cache.record) == {"avd-a": None, "avd-b": None, "avd-c": None}
        assert cache.indeterminate_scopes == {(ResourceKind.ALERT, RG_SCOPE)}
        assert "falling back" in caplog.text

    def test_listing_timeout_is_abandoned(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"}, list_delay=2.0)

        start = time.monotonic()
        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=0.2)
        elapsed = time.monotonic() - start

        assert elapsed < 1.5
        assert not cache.is_authoritative("avd-b")

    def test_record_is_read_only(self, definitions):
        cache = ExistenceCache.build(FakeMonitorClient(), definitions, prefix="avd", timeout=5)

        with pytest.raises(TypeError):
            cache.record["avd-a"] = True  # type: ignore[index]


class TestLookup:
    """Tests for ExistenceCache.lookup."""

    def test_known_values_do_not_call_client(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"})
        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=5)

        assert cache.lookup(definitions[1]) is True
        assert cache.lookup(definitions[0]) is False
        assert client.exists_calls == []

    def test_unknown_falls_back_to_live_lookup(self, definitions):
        client = FakeMonitorClient(existing={"avd-b"}, list_delay=1.0)
        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=0.1)

        results = {d.name: cache.lookup(d) for d in definitions}

        assert results == {"avd-a": False, "avd-b": True, "avd-c": False}
        assert sorted(client.exists_calls) == ["avd-a", "avd-b", "avd-c"]

    def test_fallback_results_are_not_memoized(self, definitions):
        client = FakeMonitorClient(list_error=TransientLookupError("down"))
        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=5)

        cache.lookup(definitions[0])
        cache.lookup(definitions[0])

        assert client.exists_calls == ["avd-a", "avd-a"]
        assert cache.record["avd-a"] is None

    def test_fallback_error_propagates(self, definitions):
        client = FakeMonitorClient(
            list_error=TransientLookupError("down"),
            exists_error=TransientLookupError("still down"),
        )
        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=5)

        with pytest.raises(TransientLookupError):
            cache.lookup(definitions[0])

    def test_name_not_in_record_uses_fallback(self, fake_client):
        cache = ExistenceCache(fake_client, {})
        assert cache.lookup(make_definition("avd-unplanned")) is False
        assert fake_client.exists_calls == ["avd-unplanned"]
