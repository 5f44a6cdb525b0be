"""
Progress Display Module

Per-resource progress lines while a reconciliation run is in flight. The
dispatcher calls ProgressDisplay.on_result after every completed resource, so
progress is driven by completions rather than by a polling timer.

Security Requirements:
- No credential exposure in output (errors are sanitized upstream)
"""

import logging
import sys
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO

from avdmon.models import ReconciliationResult, ReconciliationStatus

logger = logging.getLogger(__name__)


class ProgressStage(Enum):
    """Progress stage indicators."""

    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProgressUpdate:
    """Progress update information."""

    stage: ProgressStage
    message: str
    timestamp: float
    operation: str


class ProgressDisplay:
    """Stage lines for a run, plus one counted line per finished resource.

    Every printed line is also kept as a ProgressUpdate (see get_updates).
    """

    SYMBOLS = {
        ProgressStage.STARTED: "►",
        ProgressStage.IN_PROGRESS: "...",
        ProgressStage.COMPLETED: "✓",
        ProgressStage.FAILED: "✗",
    }

    ASCII_SYMBOLS = {
        ProgressStage.STARTED: ">",
        ProgressStage.IN_PROGRESS: "...",
        ProgressStage.COMPLETED: "OK",
        ProgressStage.FAILED: "FAIL",
    }

    def __init__(self, use_unicode: bool = True, output_file: Optional[TextIO] = None):
        """
        Initialize progress display.

        Args:
            use_unicode: Use Unicode symbols (True) or ASCII (False)
            output_file: Output file object (default: sys.stdout)
        """
        self.use_unicode = use_unicode
        self.output_file = output_file or sys.stdout
        self.current_operation: Optional[str] = None
        self.start_time: Optional[float] = None
        self.updates: list[ProgressUpdate] = []

    def start_operation(self, name: str, total: Optional[int] = None) -> None:
        """
        Begin showing progress for an operation.

        Args:
            name: Operation name
            total: Number of resources the operation covers
        """
        self.current_operation = name
        self.start_time = time.time()

        message = f"Starting: {name}"
        if total is not None:
            message += f" ({total} resource(s))"

        self.update(message, ProgressStage.STARTED)

    def update(self, message: str, stage: ProgressStage = ProgressStage.IN_PROGRESS) -> None:
        """
        Record and print a progress line.

        Args:
            message: Progress message
            stage: Current stage
        """
        update = ProgressUpdate(
            stage=stage,
            message=message,
            timestamp=time.time(),
            operation=self.current_operation or "unknown",
        )
        self.updates.append(update)
        self._print(self._format_update(update))

    def on_result(self, result: ReconciliationResult, completed: int, total: int) -> None:
        """Dispatcher progress callback: one line per finished resource."""
        stage = ProgressStage.FAILED if result.is_failure else ProgressStage.COMPLETED

        verb = result.action.value
        if result.status is ReconciliationStatus.WHAT_IF:
            verb = f"would be {verb.lower()}"

        message = f"[{completed}/{total}] {result.name}: {verb}"
        if result.error:
            message += f" ({result.error})"
        self.update(message, stage)

    def complete(self, success: bool = True, message: Optional[str] = None) -> None:
        """Print the closing line for the current operation with its elapsed time."""
        if success:
            stage = ProgressStage.COMPLETED
            default_message = f"{self.current_operation} completed"
        else:
            stage = ProgressStage.FAILED
            default_message = f"{self.current_operation} finished with failures"

        final_message = message or default_message

        if self.start_time:
            elapsed = time.time() - self.start_time
            final_message += f" ({self._format_duration(elapsed)})"

        self.update(final_message, stage)

        self.current_operation = None
        self.start_time = None

    def _format_update(self, update: ProgressUpdate) -> str:
        symbols = self.SYMBOLS if self.use_unicode else self.ASCII_SYMBOLS
        symbol = symbols.get(update.stage, "")
        return f"{symbol} {update.message}"

    def _format_duration(self, seconds: float) -> str:
        """Seconds as "4.2s", "2m 30s" or "1h 2m"."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        if seconds < 3600:
            minutes = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"

    def _print(self, message: str) -> None:
        print(message, file=self.output_file, flush=True)

    def get_updates(self) -> list[ProgressUpdate]:
        """Return a copy of all recorded progress updates."""
        return self.updates.copy()


__all__ = ["ProgressDisplay", "ProgressStage", "ProgressUpdate"]
