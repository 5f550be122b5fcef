"""Database connection CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from sqlterm.cli.utils import console, open_session
from sqlterm.exceptions import ConfigurationError, DatabaseError


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """🗄️  Database connection management."""
    pass


@db_group.command(name="test")
@click.option("--database", "-d", help="Database to test (default: default database)")
@click.pass_context
def test_connection_command(ctx: click.Context, database: Optional[str]) -> None:
    """Check that the host answers, the port is open and the login works."""
    try:
        session = open_session(ctx, database)
        try:
            console.print(f"[bold blue]Testing Connection: {session.db_name}[/bold blue]\n")
            report = session.test_connection()
        finally:
            session.close()

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Check", style="cyan")
        table.add_column("Status")
        table.add_column("Time", style="dim", justify="right")
        table.add_column("Details")
        for check, label, ok in (
            ("ping", "Host reachable", report.ping_ok),
            ("port", "Port open", report.port_open),
            ("login", "Login", report.login_ok),
        ):
            status = "[green]✓ OK[/green]" if ok else "[red]✗ FAILED[/red]"
            timing = report.timings_ms.get(check)
            table.add_row(
                label,
                status,
                f"{timing:.0f} ms" if timing is not None else "",
                report.messages.get(check, ""),
            )
        console.print(table)

        if not report.ok:
            raise SystemExit(1)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc


@db_group.command(name="info")
@click.option("--database", "-d", help="Database to inspect (default: default database)")
@click.pass_context
def info_command(ctx: click.Context, database: Optional[str]) -> None:
    """Show server version and connection status."""
    try:
        session = open_session(ctx, database)
        try:
            session.connect()
            version = session.manager.server_version()
            status = session.manager.status()
        finally:
            session.close()

        console.print(f"[bold blue]Database Information: {session.db_name}[/bold blue]\n")
        table = Table(show_header=False, box=None)
        table.add_column("Property", style="cyan", width=15)
        table.add_column("Value", style="green")
        table.add_row("Server:", version)
        for key in ('endpoint', 'database_type', 'driver'):
            table.add_row(f"{key.replace('_', ' ').title()}:", str(status[key]))
        console.print(table)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        console.print(f"[red]Database Error: {exc}[/red]")
        raise SystemExit(1) from exc
