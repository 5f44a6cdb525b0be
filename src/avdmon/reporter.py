"""Run reporting: console summary table and CSV export.

The in-memory RunReport is authoritative. Exporting it is best effort: a
failed write logs a warning and never changes the run's outcome.
"""

import csv
import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from avdmon.models import ReconciliationAction, ReconciliationResult, ReconciliationStatus
from avdmon.parallel_dispatcher import RunReport

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("Name", "Description", "Category", "Action", "Status", "Error")

_STATUS_STYLES = {
    ReconciliationStatus.SUCCESS: "green",
    ReconciliationStatus.WHAT_IF: "cyan",
    ReconciliationStatus.FAILED: "red",
    ReconciliationStatus.ERROR: "red",
}

_ACTION_STYLES = {
    ReconciliationAction.CREATED: "green",
    ReconciliationAction.UPDATED: "yellow",
    ReconciliationAction.SKIPPED: "dim",
    ReconciliationAction.FAILED: "red",
}


class Reporter:
    """Render a RunReport to the console and to a CSV file."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    @staticmethod
    def to_row(result: ReconciliationResult) -> dict[str, str]:
        """Flatten one result into export columns."""
        return {
            "Name": result.name,
            "Description": result.description,
            "Category": result.category,
            "Action": result.action.value,
            "Status": result.status.value,
            "Error": result.error or "",
        }

    def build_table(self, report: RunReport, title: str = "Reconciliation results") -> Table:
        """Build the rich summary table, one row per resource sorted by name."""
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Category")
        table.add_column("Action")
        table.add_column("Status")
        table.add_column("Error", overflow="fold")

        for result in report.sorted_results():
            action_style = _ACTION_STYLES[result.action]
            status_style = _STATUS_STYLES[result.status]
            table.add_row(
                result.name,
                result.category,
                f"[{action_style}]{result.action.value}[/{action_style}]",
                f"[{status_style}]{result.status.value}[/{status_style}]",
                result.error or "",
            )
        return table

    def print_summary(self, report: RunReport) -> None:
        """Print the results table and totals line."""
        title = "Planned changes (WhatIf)" if report.is_what_if else "Reconciliation results"
        self.console.print(self.build_table(report, title=title))
        style = "red" if report.has_failures else "green"
        self.console.print(
            f"[{style}]{report.format_summary()}[/{style}] "
            f"({report.duration_seconds:.1f}s)"
        )
        for failure in report.get_failures():
            self.console.print(f"[red]  ✗ {failure.name}: {failure.error or 'unknown error'}[/red]")

    def export_csv(self, report: RunReport, path: str | Path) -> bool:
        """Write results to path, overwriting any previous export.

        Returns:
            True if written, False if the write failed (a warning is logged)
        """
        output_path = Path(path).expanduser()
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
                writer.writeheader()
                for result in report.sorted_results():
                    writer.writerow(self.to_row(result))
        except OSError as e:
            logger.warning(f"Could not export results to {output_path}: {e}")
            return False

        logger.info(f"Results exported to {output_path}")
        return True


__all__ = ["CSV_COLUMNS", "Reporter"]
