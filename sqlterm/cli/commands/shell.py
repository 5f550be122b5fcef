"""Interactive query shell."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from sqlterm.cli.commands.schema import build_tree, search_table
from sqlterm.cli.utils import console, open_session, print_exception, render_result_set, wait_with_spinner
from sqlterm.db.engine import ExecutionStatus
from sqlterm.exceptions import ConfigurationError, DatabaseError, ExportError
from sqlterm.session import QuerySession
from sqlterm.utils import format_duration, truncate

HELP_TEXT = """\
Enter a SQL statement to run it; Ctrl-C while it runs cancels it.

  \\history [TERM]   show executed statements, optionally filtered
  \\export FORMAT    write the current result set as csv, json or insert
  \\columns          column metadata of the current result set
  \\stats            statistics of the current result set
  \\schema [PATH]    show the schema tree, expanding PATH
  \\find TERM        list tables, views and procedures whose name contains TERM
  \\help             this message
  \\q                quit"""


@click.command(name="shell")
@click.option("--database", "-d", help="Database to use (default: default database)")
@click.pass_context
def shell_command(ctx: click.Context, database: Optional[str]) -> None:
    """💻 Start an interactive SQL shell."""
    verbose = ctx.obj.get('verbose', False)
    try:
        session = open_session(ctx, database)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc

    try:
        session.connect()
    except DatabaseError as exc:
        print_exception("Cannot connect", exc, verbose)
        session.close()
        raise SystemExit(1) from exc

    console.print(f"[bold blue]Connected to {session.manager.config.describe()}[/bold blue]")
    console.print("[dim]Type \\help for commands, \\q to quit[/dim]")
    try:
        _loop(session, verbose)
    finally:
        session.close()


def _loop(session: QuerySession, verbose: bool) -> None:
    while True:
        try:
            line = console.input(f"[bold green]{session.db_name}>[/bold green] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return

        if not line:
            continue
        if line.startswith("\\"):
            if not _meta_command(session, line, verbose):
                return
            continue

        execution = session.submit(line)
        wait_with_spinner(session, execution)
        if execution.status is ExecutionStatus.COMPLETED:
            render_result_set(session.current_result_set())
        elif execution.status is ExecutionStatus.FAILED:
            error = session.last_error()
            console.print(f"[red]Error ({error.category.value}): {error}[/red]")


def _meta_command(session: QuerySession, line: str, verbose: bool) -> bool:
    """Run a backslash command; returns False when the shell should exit."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command in ("\\q", "\\quit"):
        return False
    if command == "\\help":
        console.print(HELP_TEXT, markup=False, highlight=False)
    elif command == "\\history":
        _show_history(session, argument)
    elif command in ("\\columns", "\\stats"):
        result_set = session.current_result_set()
        if result_set is None:
            console.print("[yellow]No results yet[/yellow]")
        else:
            render_result_set(result_set, view=command[1:])
    elif command == "\\export":
        try:
            path = session.write_export(argument or "csv")
            console.print(f"[green]✓ Exported {session.current_result_set().row_count} rows to {path}[/green]")
        except ExportError as exc:
            print_exception("Export failed", exc, verbose)
    elif command == "\\schema":
        explorer = session.schema
        node = explorer.find(*argument.split(".")) if argument else explorer.root
        if node is None:
            console.print(f"[yellow]Not found: {argument}[/yellow]")
        else:
            explorer.expand(node)
            console.print(build_tree(explorer))
    elif command == "\\find":
        if not argument:
            console.print("[yellow]Usage: \\find TERM[/yellow]")
        else:
            explorer = session.schema
            console.print(search_table(explorer, explorer.search(argument)))
    else:
        console.print(f"[yellow]Unknown command: {command} (try \\help)[/yellow]")
    return True


def _show_history(session: QuerySession, term: str) -> None:
    entries = session.history.search(term) if term else session.history_entries()
    if not entries:
        console.print("[yellow]No history[/yellow]")
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Time", style="cyan")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("Statement")
    colors = {"completed": "green", "failed": "red", "cancelled": "yellow"}
    for i, entry in enumerate(entries, start=1):
        color = colors.get(entry.status, "white")
        table.add_row(
            str(i),
            entry.submitted_at.strftime("%H:%M:%S"),
            f"[{color}]{entry.status}[/{color}]",
            "" if entry.row_count is None else str(entry.row_count),
            format_duration(entry.elapsed),
            escape(truncate(entry.statement, 60)),
        )
    console.print(table)
