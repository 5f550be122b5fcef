"""Shared CLI utilities for SQLTerm."""

from __future__ import annotations

from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from sqlterm.config import get_config
from sqlterm.db.engine import Execution
from sqlterm.db.results import ResultSet
from sqlterm.session import QuerySession
from sqlterm.utils import format_duration, format_number, truncate

# Single console instance reused across CLI modules
console = Console()

MAX_CELL_WIDTH = 60


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    from rich import print as rprint

    rprint(f"[red]{message}: {error}[/red]")
    if verbose:
        import traceback

        console.print(f"[dim]{traceback.format_exc()}[/dim]")


def open_session(ctx: click.Context, database: Optional[str] = None) -> QuerySession:
    """Build a session for the database selected on the command line."""
    config = get_config(ctx.obj.get('config'))
    return QuerySession(config, database or ctx.obj.get('db'))


def wait_with_spinner(session: QuerySession, execution: Execution, poll_interval: float = 0.05) -> None:
    """Poll the engine until ``execution`` finishes; Ctrl-C cancels it."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[green]Executing query...", total=None)
        try:
            while not execution.wait(poll_interval):
                session.poll()
                progress.update(task, description=f"[green]Executing query... {format_duration(execution.elapsed)}")
        except KeyboardInterrupt:
            session.cancel()
            console.print("[yellow]Query cancelled[/yellow]")
    session.poll()


def render_result_set(result_set: ResultSet, view: str = "data", max_rows: Optional[int] = None) -> None:
    """Print a result set in one of the ``data``, ``columns`` or ``stats`` views."""
    if view == "columns":
        console.print(columns_table(result_set))
        return
    if view == "stats":
        console.print(stats_table(result_set))
        return

    if not result_set.returns_rows:
        affected = result_set.affected_rows
        suffix = f" ({format_number(affected)} rows affected)" if affected is not None else ""
        console.print(f"[green]Statement executed successfully{suffix}[/green] in {format_duration(result_set.elapsed)}")
        return

    console.print(data_table(result_set, max_rows))

    shown = result_set.row_count if max_rows is None else min(max_rows, result_set.row_count)
    more = f", showing {format_number(shown)}" if shown < result_set.row_count else ""
    console.print(
        f"[dim]{format_number(result_set.row_count)} row(s){more} in {format_duration(result_set.elapsed)}[/dim]"
    )


def data_table(result_set: ResultSet, max_rows: Optional[int] = None) -> Table:
    """Rows of a result set, each column as wide as its widest value allows."""
    table = Table(show_header=True, header_style="bold magenta")
    for column, width in zip(result_set.columns, result_set.column_widths()):
        table.add_column(escape(column.name), overflow="fold", min_width=min(width, MAX_CELL_WIDTH))
    rows = result_set.rows if max_rows is None else result_set.rows[:max_rows]
    for row in rows:
        table.add_row(*[
            "[dim]NULL[/dim]" if cell.is_null else escape(truncate(cell.text, MAX_CELL_WIDTH))
            for cell in row
        ])
    return table


def columns_table(result_set: ResultSet) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Nullable", style="yellow")
    for column in result_set.columns:
        table.add_row(
            str(column.ordinal + 1),
            column.name,
            column.display_type,
            "Yes" if column.nullable else "No",
        )
    return table


def stats_table(result_set: ResultSet) -> Table:
    stats = result_set.stats()
    table = Table(show_header=False, box=None)
    table.add_column("Property", style="cyan", width=16)
    table.add_column("Value", style="green")
    table.add_row("Rows:", format_number(stats['row_count']))
    table.add_row("Columns:", str(stats['column_count']))
    if stats['affected_rows'] is not None:
        table.add_row("Affected Rows:", format_number(stats['affected_rows']))
    table.add_row("Elapsed:", format_duration(stats['elapsed_seconds']))
    table.add_row("Completed At:", stats['completed_at'])
    for key, count in stats['null_counts'].items():
        if count:
            table.add_row(f"NULLs in {key}:", format_number(count))
    return table
