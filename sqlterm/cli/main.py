"""Main CLI entry point for SQLTerm."""

from __future__ import annotations

import logging

import click
from rich.panel import Panel
from rich.text import Text

from sqlterm import __version__
from sqlterm.cli.commands import register_commands
from sqlterm.cli.commands.database import db_group
from sqlterm.cli.commands.query import query_command
from sqlterm.cli.commands.schema import schema_command
from sqlterm.cli.commands.shell import shell_command
from sqlterm.cli.utils import console
from sqlterm.config import EnvironmentSettings


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--db", help="Database connection name")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    config: str,
    db: str,
    verbose: bool,
) -> None:
    """SQLTerm - A terminal client for SQL databases."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "db": db,
            "verbose": verbose,
        }
    )
    configure_logging(verbose)

    if version:
        console.print(f"SQLTerm v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        show_dashboard()


def configure_logging(verbose: bool) -> None:
    settings = EnvironmentSettings()
    level = logging.DEBUG if verbose or settings.debug else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# Commands are registered in workflow order:
# 1) Querying, 2) Browsing, 3) Connection tools.
COMMAND_REGISTRY = [
    query_command,
    shell_command,
    schema_command,
    db_group,
]

register_commands(cli, COMMAND_REGISTRY)


def show_dashboard() -> None:
    """Display the welcome panel."""
    title = Text("SQLTerm", style="bold blue")
    subtitle = Text("A terminal client for SQL databases", style="italic")

    dashboard_content = Text()
    dashboard_content.append("▶️  Run Queries       sqlterm query\n", style="bold")
    dashboard_content.append("💻 Interactive Shell  sqlterm shell\n", style="bold")
    dashboard_content.append("🌳 Browse Schema      sqlterm schema\n", style="bold")
    dashboard_content.append("🗄️  Test Connection   sqlterm db test\n", style="bold")
    dashboard_content.append("\nRun 'sqlterm --help' for available commands", style="dim")

    panel = Panel(
        dashboard_content,
        title=title,
        subtitle=subtitle,
        border_style="blue",
        padding=(1, 2),
    )

    console.print(panel)


if __name__ == "__main__":
    cli()
