"""Schema browsing CLI command."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import click
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from sqlterm.cli.utils import console, open_session
from sqlterm.db.schema import SchemaExplorer, SchemaNode, SchemaNodeKind
from sqlterm.exceptions import ConfigurationError, DatabaseError
from sqlterm.utils import format_number

_ICONS = {
    SchemaNodeKind.DATABASE: "🗄️ ",
    SchemaNodeKind.SCHEMA: "📁",
    SchemaNodeKind.TABLE: "📋",
    SchemaNodeKind.VIEW: "👁️ ",
    SchemaNodeKind.PROCEDURE: "⚙️ ",
    SchemaNodeKind.COLUMN: "•",
}


@click.command(name="schema")
@click.argument("paths", nargs=-1)
@click.option("--database", "-d", help="Database to browse (default: default database)")
@click.option("--ddl", "ddl_table", help="Print CREATE TABLE for SCHEMA.TABLE instead of the tree")
@click.option("--search", "-s", "search_term", help="List tables, views and procedures whose name contains TERM")
@click.option("--count", "count_table", help="Print the row count of SCHEMA.TABLE")
@click.pass_context
def schema_command(
    ctx: click.Context,
    paths: Tuple[str, ...],
    database: Optional[str],
    ddl_table: Optional[str],
    search_term: Optional[str],
    count_table: Optional[str],
) -> None:
    """🌳 Browse schemas, tables, views and columns.

    PATHS are dotted names (``main`` or ``main.users``) to expand.
    """
    try:
        session = open_session(ctx, database)
        try:
            session.connect()
            explorer = session.schema

            if ddl_table:
                node = explorer.find(*ddl_table.split("."))
                if node is None:
                    console.print(f"[red]Table not found: {ddl_table}[/red]")
                    raise SystemExit(1)
                console.print(explorer.table_ddl(node), markup=False, highlight=False)
                return

            if count_table:
                node = explorer.find(*count_table.split("."))
                if node is None:
                    console.print(f"[red]Table not found: {escape(count_table)}[/red]")
                    raise SystemExit(1)
                count = explorer.row_count(node)
                if count is None:
                    console.print(f"[red]Cannot count rows of {escape(count_table)}: {escape(str(node.error or 'unknown'))}[/red]")
                    raise SystemExit(1)
                console.print(f"{escape(explorer.qualified_name(node))}: [bold]{format_number(count)}[/bold] rows")
                return

            if search_term is not None:
                console.print(search_table(explorer, explorer.search(search_term)))
                return

            for schema_node in explorer.expand(explorer.root):
                explorer.expand(schema_node)
            for path in paths:
                node = explorer.find(*path.split("."))
                if node is None:
                    console.print(f"[yellow]Not found: {path}[/yellow]")
                    continue
                explorer.expand(node)

            console.print(build_tree(explorer))
        finally:
            session.close()
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        console.print(f"[red]Database Error: {exc}[/red]")
        raise SystemExit(1) from exc


def build_tree(explorer: SchemaExplorer) -> Tree:
    """Render the expanded part of the catalog as a rich tree."""
    branches: Dict[int, Tree] = {}
    root: Optional[Tree] = None
    for node, _depth in explorer.walk():
        label = _label(node)
        if node.parent is None:
            root = branches[node.index] = Tree(label)
        else:
            branches[node.index] = branches[node.parent].add(label)
    return root


def _label(node: SchemaNode) -> str:
    text = f"{_ICONS[node.kind]} {escape(node.label())}"
    if node.row_count is not None:
        text += f" [dim]({format_number(node.row_count)} rows)[/dim]"
    if node.kind in (SchemaNodeKind.DATABASE, SchemaNodeKind.SCHEMA):
        text = f"[bold]{text}[/bold]"
    if node.error is not None:
        text += f" [red]({escape(str(node.error))})[/red]"
    return text


def search_table(explorer: SchemaExplorer, matches: List[SchemaNode]) -> Table:
    """Search results with one row per matching object."""
    table = Table(show_header=True, header_style="bold magenta", title=f"{len(matches)} matches")
    table.add_column("Type", style="cyan")
    table.add_column("Schema")
    table.add_column("Name", style="bold")
    for node in matches:
        table.add_row(node.kind.value, escape(node.schema or ""), escape(node.name))

    # schemas that could not be searched
    for schema_node in explorer.tree.children(explorer.root):
        if schema_node.error is not None:
            table.add_row("[red]error[/red]", escape(schema_node.name), f"[red]{escape(str(schema_node.error))}[/red]")
    return table
