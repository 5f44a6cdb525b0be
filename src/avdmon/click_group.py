"""Custom Click group with automatic help display on errors.

This module provides a custom Click Group class that automatically
displays contextual help when syntax errors occur.
"""

from typing import Any

import click


class AvdmonGroup(click.Group):
    """Click group that shows the relevant help text after a usage error."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except (
            click.exceptions.UsageError,
            click.exceptions.BadParameter,
            click.exceptions.MissingParameter,
        ) as e:
            click.echo(f"Error: {e.format_message()}", err=True)

            # Prefer the subcommand context so its options are listed
            error_ctx = e.ctx if e.ctx else ctx
            click.echo("", err=True)
            click.echo(error_ctx.get_help(), err=True)
            error_ctx.exit(e.exit_code)


__all__ = ["AvdmonGroup"]
