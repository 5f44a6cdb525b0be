"""
avdmon Data Models

Shared dataclasses and enums used by the cache, reconciler, dispatcher and
reporter.

Philosophy:
- Zero dependencies on other avdmon modules
- Immutable records (frozen dataclasses)
"""

from .resource_models import (
    ApplyOutcome,
    ApplyStatus,
    ReconciliationAction,
    ReconciliationResult,
    ReconciliationStatus,
    ResourceDefinition,
    ResourceKind,
)

__all__ = [
    "ApplyOutcome",
    "ApplyStatus",
    "ReconciliationAction",
    "ReconciliationResult",
    "ReconciliationStatus",
    "ResourceDefinition",
    "ResourceKind",
]
