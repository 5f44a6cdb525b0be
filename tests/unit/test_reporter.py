"""Tests for Reporter console output and CSV export."""

import csv
import io
from unittest.mock import patch

from rich.console import Console

from avdmon.models import ReconciliationAction, ReconciliationResult, ReconciliationStatus
from avdmon.parallel_dispatcher import RunReport
from avdmon.reporter import CSV_COLUMNS, Reporter
from tests.mocks.monitor_mock import make_definition


def _report():
    return RunReport(
        [
            ReconciliationResult.for_definition(
                make_definition("avd-b", description="Low disk", category="Sev2"),
                ReconciliationAction.CREATED,
                ReconciliationStatus.SUCCESS,
            ),
            ReconciliationResult.for_definition(
                make_definition("avd-a", description="High CPU", category="Sev1"),
                ReconciliationAction.FAILED,
                ReconciliationStatus.FAILED,
                error="(BadRequest) invalid query",
            ),
        ],
        duration_seconds=2.0,
    )


def _reporter():
    buffer = io.StringIO()
    return Reporter(console=Console(file=buffer, width=200, color_system=None)), buffer


class TestExportCsv:
    """Tests for Reporter.export_csv."""

    def test_writes_sorted_rows(self, tmp_path):
        reporter, _ = _reporter()
        path = tmp_path / "out" / "results.csv"

        assert reporter.export_csv(_report(), path) is True

        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert tuple(rows[0].keys()) == CSV_COLUMNS
        assert [r["Name"] for r in rows] == ["avd-a", "avd-b"]
        assert rows[0]["Action"] == "Failed"
        assert rows[0]["Status"] == "Failed"
        assert rows[0]["Error"] == "(BadRequest) invalid query"
        assert rows[1]["Error"] == ""
        assert rows[1]["Category"] == "Sev2"

    def test_overwrites_previous_export(self, tmp_path):
        reporter, _ = _reporter()
        path = tmp_path / "results.csv"
        path.write_text("stale,content\n1,2\n3,4\n5,6\n")

        reporter.export_csv(_report(), path)

        assert "stale" not in path.read_text()

    def test_write_failure_returns_false(self, tmp_path, caplog):
        reporter, _ = _reporter()

        with patch("builtins.open", side_effect=PermissionError("read-only")):
            result = reporter.export_csv(_report(), tmp_path / "results.csv")

        assert result is False
        assert "Could not export" in caplog.text


class TestConsole:
    """Tests for console rendering."""

    def test_print_summary(self):
        reporter, buffer = _reporter()

        reporter.print_summary(_report())

        output = buffer.getvalue()
        assert "Reconciliation results" in output
        assert "Total: 2, Created: 1, Updated: 0, Skipped: 0, Failed: 1" in output
        assert "avd-a: (BadRequest) invalid query" in output

    def test_what_if_title(self):
        reporter, buffer = _reporter()
        report = RunReport(
            [
                ReconciliationResult.for_definition(
                    make_definition("avd-a"),
                    ReconciliationAction.CREATED,
                    ReconciliationStatus.WHAT_IF,
                )
            ]
        )

        reporter.print_summary(report)

        assert "WhatIf" in buffer.getvalue()

    def test_to_row(self):
        result = ReconciliationResult.for_definition(
            make_definition("avd-a", description="d", category="Sev0"),
            ReconciliationAction.SKIPPED,
            ReconciliationStatus.SUCCESS,
        )
        assert Reporter.to_row(result) == {
            "Name": "avd-a",
            "Description": "d",
            "Category": "Sev0",
            "Action": "Skipped",
            "Status": "Success",
            "Error": "",
        }
