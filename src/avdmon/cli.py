"""avdmon CLI - Azure Monitor reconciliation for Azure Virtual Desktop.

Commands:
    avdmon alerts         Reconcile scheduled query alerts
    avdmon diagnostics    Reconcile diagnostic settings on AVD resources
    avdmon dcr            Reconcile data collection rules
    avdmon deploy         Reconcile everything
    avdmon plan           Show what deploy would do (dry run)
    avdmon config         Show or change saved defaults
"""

import logging
import sys
from collections.abc import Callable
from typing import Any

import click

from avdmon import __version__
from avdmon.azure_auth import AuthenticationError
from avdmon.click_group import AvdmonGroup
from avdmon.config_manager import VALID_POLICIES, AvdmonConfig, ConfigError, ConfigManager
from avdmon.models import ResourceKind
from avdmon.modules.prerequisites import PrerequisiteError
from avdmon.orchestrator import ALL_KINDS, MonitoringOrchestrator
from avdmon.parallel_dispatcher import DuplicateDefinitionError, RunReport
from avdmon.resource_client import DependencyResolutionError

logger = logging.getLogger(__name__)

FATAL_ERRORS = (
    ConfigError,
    PrerequisiteError,
    AuthenticationError,
    DependencyResolutionError,
    DuplicateDefinitionError,
)


class AvdmonError(Exception):
    """Base exception for avdmon CLI failures."""

    exit_code = 1


class ResourceFailuresError(AvdmonError):
    """Raised when one or more resources failed and fail-on-error is set."""

    exit_code = 2


def reconcile_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every reconciling command."""
    options = [
        click.option("--subscription", help="Subscription id or name", type=str),
        click.option("--resource-group", "--rg", help="Resource group holding AVD", type=str),
        click.option("--workspace", help="Log Analytics workspace name", type=str),
        click.option("--email", help="Notification email for the action group", type=str),
        click.option(
            "--severity", help="Default alert severity (0-4)", type=click.IntRange(0, 4)
        ),
        click.option("--prefix", help="Name prefix for managed resources", type=str),
        click.option("--output", help="CSV results path", type=click.Path(dir_okay=False)),
        click.option("--dry-run", is_flag=True, help="Show planned actions without applying"),
        click.option("--max-workers", help="Concurrent reconciliations", type=int),
        click.option(
            "--policy",
            help="What to do with resources that already exist",
            type=click.Choice(VALID_POLICIES),
        ),
        click.option("--bulk-timeout", help="Seconds allowed per bulk listing", type=float),
        click.option(
            "--fail-on-error/--no-fail-on-error",
            default=None,
            help="Exit 2 when any resource fails (default: yes)",
        ),
        click.option("--config", help="Config file path", type=click.Path()),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_config(config: str | None, **flags: Any) -> AvdmonConfig:
    """Load the config file and apply CLI flags over it."""
    base = ConfigManager.load_config(config)
    return base.merged(
        subscription=flags.get("subscription"),
        resource_group=flags.get("resource_group"),
        workspace_name=flags.get("workspace"),
        notification_email=flags.get("email"),
        alert_severity=flags.get("severity"),
        name_prefix=flags.get("prefix"),
        output_path=flags.get("output"),
        max_workers=flags.get("max_workers"),
        policy=flags.get("policy"),
        bulk_timeout=flags.get("bulk_timeout"),
        fail_on_error=flags.get("fail_on_error"),
    )


def execute_run(
    kinds: tuple[ResourceKind, ...], config: str | None, dry_run: bool, **flags: Any
) -> RunReport:
    """Run one reconciliation and map its outcome to CLI errors.

    Raises:
        AvdmonError: Fatal pre-flight or configuration failure (exit 1)
        ResourceFailuresError: Resources failed with fail-on-error set (exit 2)
    """
    try:
        effective = _build_config(config, **flags)
        report = MonitoringOrchestrator(effective, dry_run=dry_run).run(kinds)
    except FATAL_ERRORS as e:
        raise AvdmonError(str(e)) from e

    if report.has_failures and effective.fail_on_error:
        raise ResourceFailuresError(f"{report.failed} resource(s) failed")
    return report


def _run_command(
    kinds: tuple[ResourceKind, ...], config: str | None, dry_run: bool, **flags: Any
) -> None:
    try:
        execute_run(kinds, config, dry_run, **flags)
    except AvdmonError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("\nCancelled by user.", err=True)
        sys.exit(130)


@click.group(
    cls=AvdmonGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """avdmon - Azure Monitor for Azure Virtual Desktop.

    Creates the alerts, diagnostic settings and data collection rules an AVD
    environment needs, skipping whatever already exists.

    \b
    EXAMPLES:
        $ avdmon plan --rg rg-avd --workspace law-avd
        $ avdmon deploy --rg rg-avd --workspace law-avd --email ops@contoso.com
        $ avdmon alerts --policy create-or-update
        $ avdmon config set resource_group rg-avd

    \b
    CONFIGURATION:
        Config file: ~/.avdmon/config.toml
        Retry tuning: AVDMON_RETRY_MAX_ATTEMPTS, AVDMON_RETRY_INITIAL_DELAY,
                      AVDMON_RETRY_MAX_DELAY, AVDMON_RETRY_JITTER_ENABLED
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


@main.command()
@reconcile_options
def alerts(config: str | None, dry_run: bool, **flags: Any) -> None:
    """Reconcile scheduled query alerts and their action group."""
    _run_command((ResourceKind.ALERT,), config, dry_run, **flags)


@main.command()
@reconcile_options
def diagnostics(config: str | None, dry_run: bool, **flags: Any) -> None:
    """Reconcile diagnostic settings on host pools, app groups and workspaces."""
    _run_command((ResourceKind.DIAGNOSTIC_SETTING,), config, dry_run, **flags)


@main.command()
@reconcile_options
def dcr(config: str | None, dry_run: bool, **flags: Any) -> None:
    """Reconcile performance and event log data collection rules."""
    _run_command((ResourceKind.DATA_COLLECTION_RULE,), config, dry_run, **flags)


@main.command()
@reconcile_options
def deploy(config: str | None, dry_run: bool, **flags: Any) -> None:
    """Reconcile alerts, diagnostic settings and data collection rules."""
    _run_command(ALL_KINDS, config, dry_run, **flags)


@main.command()
@reconcile_options
def plan(config: str | None, dry_run: bool, **flags: Any) -> None:
    """Show what deploy would change. Nothing is created."""
    _run_command(ALL_KINDS, config, True, **flags)


@main.group(name="config")
def config_group():
    """Show or change saved defaults in ~/.avdmon/config.toml."""
    pass


@config_group.command(name="show")
@click.option("--config", help="Config file path", type=click.Path())
def config_show(config: str | None) -> None:
    """Print the effective configuration."""
    try:
        current = ConfigManager.load_config(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"# {ConfigManager.get_config_path(config)}")
    click.echo(ConfigManager.format_config(current), nl=False)


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--config", help="Config file path", type=click.Path())
def config_set(key: str, value: str, config: str | None) -> None:
    """Set KEY to VALUE.

    \b
    Examples:
        avdmon config set resource_group rg-avd
        avdmon config set max_workers 8
        avdmon config set policy create-or-update
    """
    key = key.replace("-", "_")
    try:
        ConfigManager.update_config(config, **{key: value})
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Set {key} = {value}")


if __name__ == "__main__":
    main()
