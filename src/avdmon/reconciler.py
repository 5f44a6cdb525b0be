"""Per-resource reconciliation.

Decides and applies the action for one ResourceDefinition:

    Unknown -> {Exists, NotExists} -> {Skip, Create, Update, Fail}

Policies:
- create-only:       Exists -> Skip,   NotExists -> Create
- create-or-update:  Exists -> Update, NotExists -> Create

An apply error whose text marks a benign conflict (the desired state already
holds under another identity) is recorded as a skip, not a failure. Dry-run
mode performs the lookup and decision but never calls apply.

reconcile() never raises: every error becomes a ReconciliationResult so one
resource cannot stop the batch.
"""

import logging
import time
from enum import Enum
from typing import Protocol

from avdmon.conflict_classifier import is_benign_conflict, parse_conflict
from avdmon.existence_cache import ExistenceCache
from avdmon.log_sanitizer import LogSanitizer
from avdmon.models import (
    ApplyOutcome,
    ApplyStatus,
    ReconciliationAction,
    ReconciliationResult,
    ReconciliationStatus,
    ResourceDefinition,
)
from avdmon.resource_client import ResourceClientError

logger = logging.getLogger(__name__)


class ReconcilePolicy(Enum):
    """What to do with a resource that already exists."""

    CREATE_ONLY = "create-only"
    CREATE_OR_UPDATE = "create-or-update"


class ApplyClient(Protocol):
    """The part of the resource client the reconciler needs."""

    def apply(self, definition: ResourceDefinition, update: bool = False) -> ApplyOutcome: ...


class Reconciler:
    """Reconcile single resources against a shared, read-only existence cache.

    Example:
        reconciler = Reconciler(client, cache, ReconcilePolicy.CREATE_ONLY)
        result = reconciler.reconcile(definition)
    """

    def __init__(
        self,
        client: ApplyClient,
        cache: ExistenceCache,
        policy: ReconcilePolicy = ReconcilePolicy.CREATE_ONLY,
        dry_run: bool = False,
    ):
        self.client = client
        self.cache = cache
        self.policy = policy
        self.dry_run = dry_run

    def decide(self, exists: bool) -> ReconciliationAction:
        """Map observed existence to the action the policy calls for."""
        if not exists:
            return ReconciliationAction.CREATED
        if self.policy is ReconcilePolicy.CREATE_OR_UPDATE:
            return ReconciliationAction.UPDATED
        return ReconciliationAction.SKIPPED

    def reconcile(self, definition: ResourceDefinition) -> ReconciliationResult:
        """Bring one resource to its desired state.

        Returns:
            ReconciliationResult; never raises
        """
        start_time = time.time()
        try:
            return self._reconcile(definition, start_time)
        except Exception as e:
            # Per-resource boundary: nothing propagates into the dispatcher
            logger.exception(f"Unexpected error reconciling {definition.name}")
            return ReconciliationResult.for_definition(
                definition,
                ReconciliationAction.FAILED,
                ReconciliationStatus.ERROR,
                error=LogSanitizer.truncate(LogSanitizer.sanitize_exception(e)),
                duration_seconds=time.time() - start_time,
            )

    def _reconcile(self, definition: ResourceDefinition, start_time: float) -> ReconciliationResult:
        try:
            exists = self.cache.lookup(definition)
        except ResourceClientError as e:
            logger.error(f"Could not determine whether {definition.name} exists: {e}")
            return ReconciliationResult.for_definition(
                definition,
                ReconciliationAction.FAILED,
                ReconciliationStatus.ERROR,
                error=LogSanitizer.truncate(LogSanitizer.sanitize_exception(e)),
                duration_seconds=time.time() - start_time,
            )

        action = self.decide(exists)

        if self.dry_run:
            logger.info(f"[WhatIf] {definition.name}: would be {action.value.lower()}")
            return ReconciliationResult.for_definition(
                definition,
                action,
                ReconciliationStatus.WHAT_IF,
                duration_seconds=time.time() - start_time,
            )

        if action is ReconciliationAction.SKIPPED:
            logger.info(f"{definition.name} already exists, skipping")
            return ReconciliationResult.for_definition(
                definition,
                action,
                ReconciliationStatus.SUCCESS,
                duration_seconds=time.time() - start_time,
            )

        outcome = self.client.apply(definition, update=action is ReconciliationAction.UPDATED)
        return self._classify(definition, action, outcome, time.time() - start_time)

    def _classify(
        self,
        definition: ResourceDefinition,
        action: ReconciliationAction,
        outcome: ApplyOutcome,
        duration: float,
    ) -> ReconciliationResult:
        if outcome.status is ApplyStatus.SUCCESS:
            logger.info(f"{definition.name}: {action.value.lower()}")
            return ReconciliationResult.for_definition(
                definition, action, ReconciliationStatus.SUCCESS, duration_seconds=duration
            )

        if outcome.status is ApplyStatus.CONFLICT or is_benign_conflict(outcome.reason):
            logger.info(f"{definition.name}: desired state already satisfied, skipping")
            info = parse_conflict(outcome.reason or "", definition.name)
            if info:
                logger.debug(f"{definition.name} conflict {info.code or ''}: {info.original_error}")
            return ReconciliationResult.for_definition(
                definition,
                ReconciliationAction.SKIPPED,
                ReconciliationStatus.SUCCESS,
                duration_seconds=duration,
            )

        reason = LogSanitizer.truncate(LogSanitizer.sanitize(outcome.reason or "unknown error"))
        logger.error(f"{definition.name}: apply failed: {reason}")
        return ReconciliationResult.for_definition(
            definition,
            ReconciliationAction.FAILED,
            ReconciliationStatus.FAILED,
            error=reason,
            duration_seconds=duration,
        )


__all__ = ["ApplyClient", "ReconcilePolicy", "Reconciler"]
