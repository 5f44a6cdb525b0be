"""Run orchestration.

Coordinates one reconciliation run:
1. Prerequisites check
2. Azure authentication
3. Workspace resolution (and action group, when alerts are in scope)
4. AVD resource discovery (when diagnostic settings are in scope)
5. Desired-state catalog
6. Existence cache
7. Parallel reconciliation
8. Console summary and CSV export

Steps 1-4 are pre-flight: any failure there raises and nothing is applied.
From step 6 on, per-resource errors become results and the run completes.
"""

import logging
from collections.abc import Iterable

from avdmon.azure_auth import AzureAuthenticator
from avdmon.catalog import (
    CatalogContext,
    build_alert_definitions,
    build_dcr_definitions,
    build_diagnostic_definitions,
)
from avdmon.config_manager import AvdmonConfig, ConfigError
from avdmon.existence_cache import ExistenceCache
from avdmon.models import ResourceDefinition, ResourceKind
from avdmon.modules.prerequisites import PrerequisiteChecker
from avdmon.modules.progress import ProgressDisplay
from avdmon.parallel_dispatcher import ParallelDispatcher, RunReport
from avdmon.reconciler import ReconcilePolicy, Reconciler
from avdmon.reporter import Reporter
from avdmon.resource_client import AzureMonitorClient

logger = logging.getLogger(__name__)

ALL_KINDS = (
    ResourceKind.ALERT,
    ResourceKind.DIAGNOSTIC_SETTING,
    ResourceKind.DATA_COLLECTION_RULE,
)


class MonitoringOrchestrator:
    """Orchestrate an avdmon reconciliation run.

    Example:
        orchestrator = MonitoringOrchestrator(config, dry_run=True)
        report = orchestrator.run([ResourceKind.ALERT])
    """

    def __init__(
        self,
        config: AvdmonConfig,
        dry_run: bool = False,
        client: AzureMonitorClient | None = None,
        authenticator: AzureAuthenticator | None = None,
        progress: ProgressDisplay | None = None,
        reporter: Reporter | None = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Effective configuration (file merged with CLI flags)
            dry_run: Decide actions without applying them
            client: Resource client (default: built from config after auth)
            authenticator: az login checker (default: for config.subscription)
            progress: Progress display
            reporter: Result reporter
        """
        self.config = config
        self.dry_run = dry_run
        self.client = client
        self.auth = authenticator or AzureAuthenticator(config.subscription)
        self.progress = progress or ProgressDisplay()
        self.reporter = reporter or Reporter()

    def run(self, kinds: Iterable[ResourceKind] = ALL_KINDS) -> RunReport:
        """Execute a run for the given resource kinds.

        Returns:
            RunReport with one result per desired resource

        Raises:
            ConfigError: Required settings missing or invalid
            PrerequisiteError: az is not installed
            AuthenticationError: az is not logged in
            DependencyResolutionError: Workspace or action group unavailable
            DuplicateDefinitionError: The catalog produced repeated names
        """
        kinds = tuple(kinds)
        self._validate_config()

        self.progress.start_operation("Pre-flight checks")
        definitions = self._preflight(kinds)
        self.progress.complete(
            success=True, message=f"{len(definitions)} desired resource(s) in catalog"
        )

        return self.reconcile(definitions)

    def reconcile(self, definitions: list[ResourceDefinition]) -> RunReport:
        """Reconcile an already-built definition list, then report."""
        client = self._require_client()
        ParallelDispatcher.validate_unique(definitions)

        cache = ExistenceCache.build(
            client, definitions, prefix=self.config.name_prefix, timeout=self.config.bulk_timeout
        )
        reconciler = Reconciler(
            client, cache, policy=ReconcilePolicy(self.config.policy), dry_run=self.dry_run
        )
        dispatcher = ParallelDispatcher(
            max_workers=self.config.max_workers, progress_callback=self.progress.on_result
        )

        operation = "Planning" if self.dry_run else "Reconciling"
        self.progress.start_operation(operation, total=len(definitions))
        report = dispatcher.dispatch(definitions, reconciler.reconcile)
        self.progress.complete(success=not report.has_failures)

        self.reporter.print_summary(report)
        self.reporter.export_csv(report, self.config.output_path)
        return report

    def _validate_config(self) -> None:
        self.config.validate()
        missing = [
            key for key in ("resource_group", "workspace_name") if not getattr(self.config, key)
        ]
        if missing:
            raise ConfigError(
                f"Missing required setting(s): {', '.join(missing)}. "
                "Pass them as options or run 'avdmon config set'."
            )

    def _require_client(self) -> AzureMonitorClient:
        if self.client is None:
            self.client = AzureMonitorClient(
                resource_group=self.config.resource_group, subscription=self.config.subscription
            )
        return self.client

    def _preflight(self, kinds: tuple[ResourceKind, ...]) -> list[ResourceDefinition]:
        PrerequisiteChecker.verify()
        account = self.auth.get_account()

        if self.client is None:
            self.client = AzureMonitorClient(
                resource_group=self.config.resource_group, subscription=account.subscription_id
            )

        workspace = self.client.resolve_workspace(self.config.workspace_name)
        logger.debug(f"Workspace {workspace.name} resolved in {workspace.location}")

        action_group_id = None
        if ResourceKind.ALERT in kinds:
            action_group_id = self.client.ensure_action_group(
                self.config.action_group_name,
                self.config.notification_email,
                dry_run=self.dry_run,
            )

        ctx = CatalogContext(
            prefix=self.config.name_prefix,
            subscription_id=account.subscription_id,
            resource_group=self.config.resource_group,
            workspace=workspace,
            action_group_id=action_group_id,
            alert_severity=self.config.alert_severity,
        )

        definitions: list[ResourceDefinition] = []
        if ResourceKind.ALERT in kinds:
            definitions.extend(build_alert_definitions(ctx))
        if ResourceKind.DATA_COLLECTION_RULE in kinds:
            definitions.extend(build_dcr_definitions(ctx))
        if ResourceKind.DIAGNOSTIC_SETTING in kinds:
            resources = self.client.list_avd_resources()
            if not resources:
                logger.warning(f"No AVD resources found in {self.config.resource_group}")
            definitions.extend(build_diagnostic_definitions(ctx, resources))
        return definitions


__all__ = ["ALL_KINDS", "MonitoringOrchestrator"]
