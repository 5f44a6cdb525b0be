"""
Resource Data Models

Desired-state definitions and per-resource reconciliation outcomes.

Philosophy:
- Single responsibility: data structures only
- Zero dependencies: No imports from other avdmon modules
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class ResourceKind(Enum):
    """Kinds of Azure Monitor resources avdmon manages."""

    ALERT = "alert"
    DIAGNOSTIC_SETTING = "diagnostic-setting"
    DATA_COLLECTION_RULE = "data-collection-rule"


class ReconciliationAction(Enum):
    """Action taken (or planned, in dry-run) for one resource."""

    CREATED = "Created"
    UPDATED = "Updated"
    SKIPPED = "Skipped"
    FAILED = "Failed"


class ReconciliationStatus(Enum):
    """Outcome status for one resource."""

    SUCCESS = "Success"
    FAILED = "Failed"
    WHAT_IF = "WhatIf"
    ERROR = "Error"


class ApplyStatus(Enum):
    """Normalized result of a single mutating az call."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    FAILURE = "failure"


@dataclass(frozen=True)
class ResourceDefinition:
    """Immutable descriptor of a resource that should exist.

    Attributes:
        name: Resource name, unique within a run
        kind: Resource kind
        description: Human-readable description (exported with results)
        category: Severity for alerts, category summary for other kinds
        scope: Resource id the definition attaches to (target resource for
            diagnostic settings, resource group id otherwise)
        payload: Kind-specific settings (query, counters, log categories)
    """

    name: str
    kind: ResourceKind
    description: str = ""
    category: str = ""
    scope: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ResourceDefinition name cannot be empty")
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


@dataclass(frozen=True)
class ApplyOutcome:
    """Result of applying one definition through the resource client."""

    status: ApplyStatus
    reason: str | None = None

    @classmethod
    def success(cls) -> "ApplyOutcome":
        return cls(ApplyStatus.SUCCESS)

    @classmethod
    def conflict(cls, reason: str | None = None) -> "ApplyOutcome":
        return cls(ApplyStatus.CONFLICT, reason)

    @classmethod
    def failure(cls, reason: str) -> "ApplyOutcome":
        return cls(ApplyStatus.FAILURE, reason)


@dataclass(frozen=True)
class ReconciliationResult:
    """Per-resource outcome of a reconciliation run."""

    name: str
    action: ReconciliationAction
    status: ReconciliationStatus
    description: str = ""
    category: str = ""
    kind: ResourceKind | None = None
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def is_failure(self) -> bool:
        """True when the resource did not reach (or would not reach) its desired state."""
        return self.status in (ReconciliationStatus.FAILED, ReconciliationStatus.ERROR)

    @classmethod
    def for_definition(
        cls,
        definition: ResourceDefinition,
        action: ReconciliationAction,
        status: ReconciliationStatus,
        error: str | None = None,
        duration_seconds: float = 0.0,
    ) -> "ReconciliationResult":
        """Build a result carrying the definition's identity and report columns."""
        return cls(
            name=definition.name,
            action=action,
            status=status,
            description=definition.description,
            category=definition.category,
            kind=definition.kind,
            error=error,
            duration_seconds=duration_seconds,
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
