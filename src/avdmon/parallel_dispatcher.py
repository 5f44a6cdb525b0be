"""Parallel reconciliation dispatcher.

Runs a reconcile callable over every ResourceDefinition with bounded
concurrency:
- Each definition is submitted exactly once, so no name is worked on twice
- Results land in a lock-protected collector owned by the dispatch call
- A progress callback fires after each completed item
- Falls back to sequential execution when a worker pool is not available,
  with identical per-item semantics

Public API:
    ParallelDispatcher: The dispatcher
    RunReport: Aggregated results
    DuplicateDefinitionError: Raised for non-unique names
"""

import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed

from avdmon.log_sanitizer import LogSanitizer
from avdmon.models import (
    ReconciliationAction,
    ReconciliationResult,
    ReconciliationStatus,
    ResourceDefinition,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 5

ReconcileFn = Callable[[ResourceDefinition], ReconciliationResult]
ProgressCallback = Callable[[ReconciliationResult, int, int], None]


class DuplicateDefinitionError(ValueError):
    """Raised when two definitions share a name."""

    pass


class RunReport:
    """Aggregated results from one dispatch."""

    def __init__(self, results: list[ReconciliationResult], duration_seconds: float = 0.0):
        self.results = results
        self.duration_seconds = duration_seconds

    @property
    def total(self) -> int:
        return len(self.results)

    def count(self, action: ReconciliationAction) -> int:
        """Number of results with the given action."""
        return sum(1 for r in self.results if r.action is action)

    @property
    def created(self) -> int:
        return self.count(ReconciliationAction.CREATED)

    @property
    def updated(self) -> int:
        return self.count(ReconciliationAction.UPDATED)

    @property
    def skipped(self) -> int:
        return self.count(ReconciliationAction.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.is_failure)

    @property
    def has_failures(self) -> bool:
        return any(r.is_failure for r in self.results)

    @property
    def is_what_if(self) -> bool:
        return bool(self.results) and all(
            r.status is ReconciliationStatus.WHAT_IF or r.is_failure for r in self.results
        )

    def sorted_results(self) -> list[ReconciliationResult]:
        """Results ordered by resource name."""
        return sorted(self.results, key=lambda r: r.name)

    def get_failures(self) -> list[ReconciliationResult]:
        return [r for r in self.sorted_results() if r.is_failure]

    def by_name(self) -> dict[str, ReconciliationResult]:
        return {r.name: r for r in self.results}

    def format_summary(self) -> str:
        """One-line summary of the run."""
        return (
            f"Total: {self.total}, Created: {self.created}, Updated: {self.updated}, "
            f"Skipped: {self.skipped}, Failed: {self.failed}"
        )


class _ResultCollector:
    """Thread-safe accumulator for one dispatch."""

    def __init__(self, total: int, progress_callback: ProgressCallback | None):
        self._lock = threading.Lock()
        self._results: list[ReconciliationResult] = []
        self._total = total
        self._progress_callback = progress_callback

    def add(self, result: ReconciliationResult) -> None:
        with self._lock:
            self._results.append(result)
            completed = len(self._results)
        if self._progress_callback:
            try:
                self._progress_callback(result, completed, self._total)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    def results(self) -> list[ReconciliationResult]:
        with self._lock:
            return list(self._results)


class ParallelDispatcher:
    """Fan reconciliation out over a bounded thread pool.

    Example:
        dispatcher = ParallelDispatcher(max_workers=5, progress_callback=on_progress)
        report = dispatcher.dispatch(definitions, reconciler.reconcile)
        print(report.format_summary())
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        progress_callback: ProgressCallback | None = None,
    ):
        """Initialize dispatcher.

        Args:
            max_workers: Maximum concurrent reconciliations (1 = sequential)
            progress_callback: Called as (result, completed, total) after each item

        Raises:
            ValueError: If max_workers is not positive
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.max_workers = max_workers
        self.progress_callback = progress_callback

    @staticmethod
    def validate_unique(definitions: Iterable[ResourceDefinition]) -> None:
        """Reject definition lists with repeated names.

        Raises:
            DuplicateDefinitionError: Naming every duplicated name
        """
        counts = Counter(d.name for d in definitions)
        duplicates = sorted(name for name, n in counts.items() if n > 1)
        if duplicates:
            raise DuplicateDefinitionError(f"Duplicate resource names: {', '.join(duplicates)}")

    def dispatch(
        self, definitions: Iterable[ResourceDefinition], reconcile: ReconcileFn
    ) -> RunReport:
        """Reconcile every definition.

        Args:
            definitions: Desired resources (names must be unique)
            reconcile: Per-resource callable, normally Reconciler.reconcile

        Returns:
            RunReport with one result per definition

        Raises:
            DuplicateDefinitionError: Before any work if names repeat
        """
        items = list(definitions)
        self.validate_unique(items)

        start_time = time.time()
        collector = _ResultCollector(len(items), self.progress_callback)

        if self.max_workers == 1 or len(items) <= 1:
            self._run_sequential(items, reconcile, collector)
        else:
            unstarted = self._run_parallel(items, reconcile, collector)
            if unstarted:
                self._run_sequential(unstarted, reconcile, collector)

        return RunReport(collector.results(), duration_seconds=time.time() - start_time)

    def _run_sequential(
        self,
        items: list[ResourceDefinition],
        reconcile: ReconcileFn,
        collector: _ResultCollector,
    ) -> None:
        for definition in items:
            collector.add(_guarded(reconcile, definition))

    def _run_parallel(
        self,
        items: list[ResourceDefinition],
        reconcile: ReconcileFn,
        collector: _ResultCollector,
    ) -> list[ResourceDefinition]:
        """Run items on the pool; return the ones no worker ever started.

        A submit that fails to start a worker thread has already queued its
        item, and a live worker may still pick it up. Leftover items are
        therefore only handed back once the pool has drained, minus any that
        ran in the meantime.
        """
        workers = min(self.max_workers, len(items))
        logger.debug(f"Dispatching {len(items)} item(s) across {workers} worker(s)")

        lock = threading.Lock()
        ran: dict[str, ReconciliationResult] = {}

        def run(definition: ResourceDefinition) -> ReconciliationResult:
            result = _guarded(reconcile, definition)
            with lock:
                ran[definition.name] = result
            return result

        leftover: list[ResourceDefinition] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="avdmon") as executor:
            futures = {}
            for index, definition in enumerate(items):
                try:
                    futures[executor.submit(run, definition)] = definition
                except RuntimeError as e:
                    # e.g. "can't start new thread"
                    logger.warning(f"Worker pool unavailable ({e}); continuing sequentially")
                    leftover = items[index:]
                    break
            for future in as_completed(futures):
                collector.add(future.result())

        # pool drained: queued-but-orphaned items have finished by now
        unstarted: list[ResourceDefinition] = []
        for definition in leftover:
            with lock:
                result = ran.get(definition.name)
            if result is None:
                unstarted.append(definition)
            else:
                collector.add(result)
        return unstarted


def _guarded(reconcile: ReconcileFn, definition: ResourceDefinition) -> ReconciliationResult:
    """Call reconcile, converting an escaped exception into an Error result."""
    start_time = time.time()
    try:
        return reconcile(definition)
    except Exception as e:
        logger.error(f"Reconciliation of {definition.name} raised: {e}")
        return ReconciliationResult.for_definition(
            definition,
            ReconciliationAction.FAILED,
            ReconciliationStatus.ERROR,
            error=LogSanitizer.truncate(LogSanitizer.sanitize_exception(e)),
            duration_seconds=time.time() - start_time,
        )


__all__ = [
    "DEFAULT_MAX_WORKERS",
    "DuplicateDefinitionError",
    "ParallelDispatcher",
    "ProgressCallback",
    "RunReport",
]
