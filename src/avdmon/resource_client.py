"""Azure Monitor resource client.

Single choke point for every az CLI call avdmon makes. Translates domain
operations (does alert X exist, list alerts with prefix P, create DCR Y) into
az invocations and normalizes the results:

- lookups return True/False, or raise TransientLookupError when az times out
  or fails for any reason other than NotFound
- applies return an ApplyOutcome (success, benign conflict, or failure)

The client holds no cache; the ExistenceCache decides when to call it.

Public API:
    AzureMonitorClient: The client
    WorkspaceInfo: Resolved Log Analytics workspace
    AvdResource: Discovered AVD resource (host pool, app group, workspace)
    ResourceClientError, TransientLookupError, DependencyResolutionError
"""

import json
import logging
import os
import subprocess
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from avdmon.azure_cli_executor import parse_az_json, run_az_command
from avdmon.conflict_classifier import is_benign_conflict, is_not_found
from avdmon.log_sanitizer import LogSanitizer
from avdmon.models import ApplyOutcome, ResourceDefinition, ResourceKind

logger = logging.getLogger(__name__)

AVD_RESOURCE_TYPES = (
    "microsoft.desktopvirtualization/hostpools",
    "microsoft.desktopvirtualization/applicationgroups",
    "microsoft.desktopvirtualization/workspaces",
)

ALERT_QUERY_KEY = "AlertQuery"


class ResourceClientError(Exception):
    """Raised when an az call cannot be completed."""

    pass


class TransientLookupError(ResourceClientError):
    """Raised when an existence lookup times out or az is unreachable.

    Distinct from NotFound, which lookups report as False.
    """

    pass


class DependencyResolutionError(ResourceClientError):
    """Raised when a required dependency resource cannot be resolved."""

    pass


@dataclass
class WorkspaceInfo:
    """Log Analytics workspace alerts and settings point at."""

    id: str
    name: str
    location: str
    customer_id: str | None = None


@dataclass
class AvdResource:
    """AVD resource that can carry a diagnostic setting."""

    id: str
    name: str
    type: str

    @property
    def short_type(self) -> str:
        """Lowercased type without the provider namespace (e.g. 'hostpools')."""
        return self.type.split("/")[-1].lower()


class AzureMonitorClient:
    """Run az CLI commands against one resource group.

    Example:
        client = AzureMonitorClient(resource_group="rg-avd", subscription=sub_id)
        names = client.list_names(ResourceKind.ALERT, scope, prefix="avd", timeout=25)
        outcome = client.apply(definition)
    """

    READ_TIMEOUT = 60
    APPLY_TIMEOUT = 300

    def __init__(self, resource_group: str, subscription: str | None = None):
        if not resource_group:
            raise ValueError("resource_group is required")
        self.resource_group = resource_group
        self.subscription = subscription

    # ------------------------------------------------------------------
    # Existence
    # ------------------------------------------------------------------

    def list_names(
        self, kind: ResourceKind, scope: str, prefix: str, timeout: float
    ) -> list[str]:
        """List existing resource names of a kind that start with prefix.

        One attempt only; timeout bounds the whole call.

        Args:
            kind: Resource kind to list
            scope: Target resource id (used for diagnostic settings)
            prefix: Naming prefix; names not starting with it are dropped
            timeout: Seconds before the call is abandoned

        Returns:
            Names found (possibly empty: a successful empty list means none exist)

        Raises:
            TransientLookupError: On timeout, az failure, or unparseable output
        """
        cmd = self._list_command(kind, scope)
        try:
            result = run_az_command(self._finalize(cmd), timeout=timeout, max_attempts=1, check=False)
        except subprocess.TimeoutExpired as e:
            raise TransientLookupError(f"Listing {kind.value}s timed out after {timeout}s") from e
        except FileNotFoundError as e:
            raise TransientLookupError("Azure CLI (az) not found on PATH") from e

        if result.returncode != 0:
            raise TransientLookupError(
                f"Listing {kind.value}s failed: {LogSanitizer.error_detail(result.stderr)}"
            )

        try:
            items = _as_item_list(parse_az_json(result.stdout))
        except (json.JSONDecodeError, TypeError) as e:
            raise TransientLookupError(f"Unexpected output listing {kind.value}s: {e}") from e

        return [
            item["name"]
            for item in items
            if isinstance(item, dict) and str(item.get("name", "")).startswith(prefix)
        ]

    def exists(self, definition: ResourceDefinition) -> bool:
        """Check whether one resource exists.

        Returns:
            True if found, False on a clean NotFound

        Raises:
            TransientLookupError: On timeout or any other az failure
        """
        cmd = self._show_command(definition)
        try:
            result = run_az_command(self._finalize(cmd), timeout=self.READ_TIMEOUT, check=False)
        except subprocess.TimeoutExpired as e:
            raise TransientLookupError(f"Lookup of {definition.name} timed out") from e
        except FileNotFoundError as e:
            raise TransientLookupError("Azure CLI (az) not found on PATH") from e

        if result.returncode == 0:
            return True
        if is_not_found(result.stderr):
            return False
        raise TransientLookupError(
            f"Lookup of {definition.name} failed: {LogSanitizer.error_detail(result.stderr)}"
        )

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, definition: ResourceDefinition, update: bool = False) -> ApplyOutcome:
        """Create (or update) the resource described by definition.

        Args:
            definition: Desired resource
            update: Update an existing resource instead of creating it

        Returns:
            ApplyOutcome: success, conflict (desired state already holds under
            another identity), or failure with a sanitized reason
        """
        rule_file: str | None = None
        try:
            if definition.kind is ResourceKind.DATA_COLLECTION_RULE:
                rule_file = _write_rule_file(definition.payload)
            cmd = self._apply_command(definition, update, rule_file)
            result = run_az_command(
                self._finalize(cmd), timeout=self.APPLY_TIMEOUT, max_attempts=1, check=False
            )
        except subprocess.TimeoutExpired:
            return ApplyOutcome.failure(f"az timed out after {self.APPLY_TIMEOUT}s")
        except KeyError as e:
            return ApplyOutcome.failure(f"Definition payload is missing {e}")
        finally:
            if rule_file:
                os.unlink(rule_file)

        if result.returncode == 0:
            return ApplyOutcome.success()

        detail = LogSanitizer.error_detail(result.stderr) or f"az exited with {result.returncode}"
        if is_benign_conflict(result.stderr):
            return ApplyOutcome.conflict(detail)
        return ApplyOutcome.failure(detail)

    # ------------------------------------------------------------------
    # Pre-flight dependencies
    # ------------------------------------------------------------------

    def resolve_workspace(self, workspace_name: str) -> WorkspaceInfo:
        """Resolve a Log Analytics workspace in the resource group.

        Raises:
            DependencyResolutionError: If the workspace does not exist or az fails
        """
        data = self._read_dependency(
            [
                "az", "monitor", "log-analytics", "workspace", "show",
                "--workspace-name", workspace_name,
                "--resource-group", self.resource_group,
            ],
            f"Log Analytics workspace '{workspace_name}'",
        )
        return WorkspaceInfo(
            id=_require_id(data, f"Log Analytics workspace '{workspace_name}'"),
            name=data.get("name", workspace_name),
            location=data.get("location", ""),
            customer_id=data.get("customerId"),
        )

    def ensure_action_group(
        self, name: str, email: str | None, dry_run: bool = False
    ) -> str:
        """Return the id of the notification action group, creating it if needed.

        In dry-run mode a missing action group is not created; its would-be id
        is returned instead.

        Raises:
            DependencyResolutionError: If it is missing and cannot be created
        """
        cmd = self._finalize(
            ["az", "monitor", "action-group", "show", "--name", name,
             "--resource-group", self.resource_group]
        )
        result = self._run_dependency(cmd, f"action group '{name}'")
        if result.returncode == 0:
            return self._parse_id(result, f"action group '{name}'")
        if not is_not_found(result.stderr):
            raise DependencyResolutionError(
                f"Could not look up action group '{name}': "
                f"{LogSanitizer.error_detail(result.stderr)}"
            )

        if not email:
            raise DependencyResolutionError(
                f"Action group '{name}' does not exist and no notification email was given"
            )

        if dry_run:
            logger.info(f"[WhatIf] Would create action group {name} notifying {email}")
            return (
                f"/subscriptions/{self.subscription or '<subscription>'}/resourceGroups/"
                f"{self.resource_group}/providers/microsoft.insights/actionGroups/{name}"
            )

        logger.info(f"Creating action group {name}...")
        short_name = name.replace("-", "")[:12]
        cmd = self._finalize(
            ["az", "monitor", "action-group", "create", "--name", name,
             "--resource-group", self.resource_group, "--short-name", short_name,
             "--action", "email", "admin", email]
        )
        result = self._run_dependency(cmd, f"action group '{name}'", timeout=self.APPLY_TIMEOUT)
        if result.returncode != 0:
            raise DependencyResolutionError(
                f"Failed to create action group '{name}': "
                f"{LogSanitizer.error_detail(result.stderr)}"
            )
        return self._parse_id(result, f"action group '{name}'")

    def list_avd_resources(self) -> list[AvdResource]:
        """Discover host pools, application groups and AVD workspaces.

        Raises:
            DependencyResolutionError: If the resource group cannot be listed
        """
        data = self._read_dependency(
            ["az", "resource", "list", "--resource-group", self.resource_group],
            f"resources in '{self.resource_group}'",
        )
        try:
            items = _as_item_list(data)
        except TypeError as e:
            raise DependencyResolutionError(
                f"Unexpected output listing resources in '{self.resource_group}': {e}"
            ) from e
        resources = [
            AvdResource(id=item["id"], name=item.get("name", ""), type=item["type"])
            for item in items
            if isinstance(item, Mapping)
            and item.get("id")
            and str(item.get("type", "")).lower() in AVD_RESOURCE_TYPES
        ]
        logger.debug(f"Discovered {len(resources)} AVD resource(s)")
        return resources

    # ------------------------------------------------------------------
    # Command construction
    # ------------------------------------------------------------------

    def _finalize(self, cmd: list[str]) -> list[str]:
        cmd = [*cmd, "--output", "json"]
        if self.subscription:
            cmd.extend(["--subscription", self.subscription])
        return cmd

    def _list_command(self, kind: ResourceKind, scope: str) -> list[str]:
        if kind is ResourceKind.ALERT:
            return ["az", "monitor", "scheduled-query", "list", "--resource-group", self.resource_group]
        if kind is ResourceKind.DATA_COLLECTION_RULE:
            return [
                "az", "monitor", "data-collection", "rule", "list",
                "--resource-group", self.resource_group,
            ]
        return ["az", "monitor", "diagnostic-settings", "list", "--resource", scope]

    def _show_command(self, definition: ResourceDefinition) -> list[str]:
        if definition.kind is ResourceKind.ALERT:
            return [
                "az", "monitor", "scheduled-query", "show",
                "--name", definition.name, "--resource-group", self.resource_group,
            ]
        if definition.kind is ResourceKind.DATA_COLLECTION_RULE:
            return [
                "az", "monitor", "data-collection", "rule", "show",
                "--name", definition.name, "--resource-group", self.resource_group,
            ]
        return [
            "az", "monitor", "diagnostic-settings", "show",
            "--name", definition.name, "--resource", definition.scope,
        ]

    def _apply_command(
        self, definition: ResourceDefinition, update: bool, rule_file: str | None
    ) -> list[str]:
        payload = definition.payload

        if definition.kind is ResourceKind.ALERT:
            operator = payload.get("operator", ">")
            threshold = payload.get("threshold", 0)
            cmd = [
                "az", "monitor", "scheduled-query", "update" if update else "create",
                "--name", definition.name,
                "--resource-group", self.resource_group,
                "--condition", f"count '{ALERT_QUERY_KEY}' {operator} {threshold}",
                "--condition-query", f"{ALERT_QUERY_KEY}={payload['query']}",
                "--description", definition.description,
                "--severity", str(payload.get("severity", 2)),
                "--evaluation-frequency", payload.get("evaluation_frequency", "5m"),
                "--window-size", payload.get("window_size", "15m"),
            ]
            if not update:
                cmd.extend(["--scopes", payload["workspace_id"]])
            if payload.get("action_group_id"):
                cmd.extend(["--action-groups", payload["action_group_id"]])
            return cmd

        if definition.kind is ResourceKind.DATA_COLLECTION_RULE:
            # create is a PUT; it also updates an existing rule
            return [
                "az", "monitor", "data-collection", "rule", "create",
                "--name", definition.name,
                "--resource-group", self.resource_group,
                "--location", payload["location"],
                "--rule-file", rule_file or "",
            ]

        logs = [{"category": category, "enabled": True} for category in payload["categories"]]
        return [
            "az", "monitor", "diagnostic-settings", "create",
            "--name", definition.name,
            "--resource", definition.scope,
            "--workspace", payload["workspace_id"],
            "--logs", json.dumps(logs),
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run_dependency(
        self, cmd: list[str], what: str, timeout: float | None = None
    ) -> subprocess.CompletedProcess[str]:
        try:
            return run_az_command(cmd, timeout=timeout or self.READ_TIMEOUT, check=False)
        except subprocess.TimeoutExpired as e:
            raise DependencyResolutionError(f"Timed out resolving {what}") from e
        except FileNotFoundError as e:
            raise DependencyResolutionError("Azure CLI (az) not found on PATH") from e

    def _read_dependency(self, cmd: list[str], what: str) -> Any:
        result = self._run_dependency(self._finalize(cmd), what)
        if result.returncode != 0:
            if is_not_found(result.stderr):
                raise DependencyResolutionError(f"Required {what} not found")
            raise DependencyResolutionError(
                f"Could not resolve {what}: {LogSanitizer.error_detail(result.stderr)}"
            )
        try:
            return parse_az_json(result.stdout)
        except json.JSONDecodeError as e:
            raise DependencyResolutionError(f"Unexpected output resolving {what}: {e}") from e

    def _parse_id(self, result: subprocess.CompletedProcess[str], what: str) -> str:
        try:
            data = parse_az_json(result.stdout)
        except json.JSONDecodeError as e:
            raise DependencyResolutionError(f"Unexpected output resolving {what}: {e}") from e
        return _require_id(data, what)


def _require_id(data: Any, what: str) -> str:
    if not isinstance(data, Mapping) or not data.get("id"):
        raise DependencyResolutionError(f"Unexpected output resolving {what}: no resource id")
    return str(data["id"])

def _as_item_list(data: Any) -> list[Any]:
    """Normalize az list output: a JSON array, or an object with a 'value' array."""
    if data is None:
        return []
    if isinstance(data, Mapping):
        data = data.get("value", [])
    if not isinstance(data, list):
        raise TypeError(f"expected a JSON array, got {type(data).__name__}")
    return data


def _write_rule_file(payload: Mapping[str, Any]) -> str:
    """Write a DCR ARM body to a temp file for az --rule-file."""
    body = {"location": payload["location"], "properties": payload["properties"]}
    fd, path = tempfile.mkstemp(prefix="avdmon-dcr-", suffix=".json")
    with os.fdopen(fd, "w") as f:
        json.dump(body, f, default=_json_default)
    return path


def _json_default(value: Any) -> Any:
    # payloads are read-only MappingProxyType views
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


__all__ = [
    "AVD_RESOURCE_TYPES",
    "AvdResource",
    "AzureMonitorClient",
    "DependencyResolutionError",
    "ResourceClientError",
    "TransientLookupError",
    "WorkspaceInfo",
]
