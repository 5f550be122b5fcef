"""Query execution CLI command."""

from __future__ import annotations

from typing import Optional

import click

from sqlterm.cli.utils import console, open_session, print_exception, render_result_set, wait_with_spinner
from sqlterm.db.engine import ExecutionStatus
from sqlterm.exceptions import ConfigurationError, DatabaseError, ExportError


@click.command(name="query")
@click.argument("sql")
@click.option("--database", "-d", help="Database to query (default: default database)")
@click.option(
    "--view",
    type=click.Choice(["data", "columns", "stats"]),
    default="data",
    help="How to show the result set",
)
@click.option("--max-rows", type=int, default=None, help="Show at most this many rows")
@click.option(
    "--export",
    "export_format",
    type=click.Choice(["csv", "json", "insert"]),
    help="Also export the result set",
)
@click.option("--output-dir", type=click.Path(file_okay=False), help="Directory for exported files")
@click.pass_context
def query_command(
    ctx: click.Context,
    sql: str,
    database: Optional[str],
    view: str,
    max_rows: Optional[int],
    export_format: Optional[str],
    output_dir: Optional[str],
) -> None:
    """▶️  Execute a SQL statement and show its result."""
    verbose = ctx.obj.get('verbose', False)
    try:
        session = open_session(ctx, database)
        try:
            session.connect()
            execution = session.submit(sql)
            wait_with_spinner(session, execution)

            if execution.status is ExecutionStatus.FAILED:
                error = session.last_error()
                console.print(f"[red]Query Failed ({error.category.value}): {error}[/red]")
                raise SystemExit(1)
            if execution.status is ExecutionStatus.CANCELLED:
                raise SystemExit(130)

            render_result_set(session.current_result_set(), view=view, max_rows=max_rows)

            if export_format:
                path = session.write_export(export_format, output_dir)
                console.print(f"[green]✓ Exported to {path}[/green]")
        finally:
            session.close()
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except ExportError as exc:
        print_exception("Export failed", exc, verbose)
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Database Error", exc, verbose)
        raise SystemExit(1) from exc
