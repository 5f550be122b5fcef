"""Lazy, cached catalog tree for the schema browser.

Nodes live in an arena (:class:`SchemaTree`) and refer to each other by
index. Children are fetched the first time a node is expanded and cached on
the node; the tri-state :class:`ExpansionState` tells "never fetched" from
"fetched and empty".
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.engine import Connection

from sqlterm.db.connection import ConnectionManager
from sqlterm.exceptions import DatabaseConnectionError, SchemaError, SchemaFailure

logger = logging.getLogger(__name__)


class SchemaNodeKind(str, Enum):
    """Catalog object types shown in the tree."""
    DATABASE = "database"
    SCHEMA = "schema"
    TABLE = "table"
    VIEW = "view"
    PROCEDURE = "procedure"
    COLUMN = "column"


class ExpansionState(str, Enum):
    NOT_EXPANDED = "not_expanded"
    EXPANDED = "expanded"
    EMPTY = "empty"


# tables before views before procedures when names tie
_KIND_RANK = {
    SchemaNodeKind.SCHEMA: 0,
    SchemaNodeKind.TABLE: 1,
    SchemaNodeKind.VIEW: 2,
    SchemaNodeKind.PROCEDURE: 3,
    SchemaNodeKind.COLUMN: 4,
}

_LEAF_KINDS = (SchemaNodeKind.PROCEDURE, SchemaNodeKind.COLUMN)
_SEARCH_KINDS = (SchemaNodeKind.TABLE, SchemaNodeKind.VIEW, SchemaNodeKind.PROCEDURE)


@dataclass
class SchemaNode:
    """One entry of the catalog tree."""
    index: int
    kind: SchemaNodeKind
    name: str
    parent: Optional[int] = None
    state: ExpansionState = ExpansionState.NOT_EXPANDED
    children: List[int] = field(default_factory=list)
    error: Optional[SchemaError] = None
    schema: Optional[str] = None
    data_type: Optional[str] = None
    nullable: Optional[bool] = None
    primary_key: bool = False
    ordinal: Optional[int] = None
    row_count: Optional[int] = None

    @property
    def is_expanded(self) -> bool:
        return self.state is not ExpansionState.NOT_EXPANDED

    @property
    def is_leaf(self) -> bool:
        return self.kind in _LEAF_KINDS

    def label(self) -> str:
        """Text shown for the node in a tree view."""
        if self.kind is SchemaNodeKind.COLUMN:
            flags = " PK" if self.primary_key else ""
            null = "" if self.nullable is None else (" NULL" if self.nullable else " NOT NULL")
            return f"{self.name} ({self.data_type or '?'}{null}){flags}"
        return self.name


def sort_key(kind: SchemaNodeKind, name: str) -> Tuple[str, int, str]:
    return (name.casefold(), _KIND_RANK.get(kind, 9), name)


class SchemaTree:
    """Arena of schema nodes addressed by stable index."""

    def __init__(self) -> None:
        self._nodes: List[SchemaNode] = []

    def add(self, kind: SchemaNodeKind, name: str, parent: Optional[int] = None, **attributes: Any) -> SchemaNode:
        node = SchemaNode(index=len(self._nodes), kind=kind, name=name, parent=parent, **attributes)
        self._nodes.append(node)
        return node

    def __getitem__(self, index: int) -> SchemaNode:
        return self._nodes[index]

    def __len__(self) -> int:
        return len(self._nodes)

    def parent(self, node: SchemaNode) -> Optional[SchemaNode]:
        return self._nodes[node.parent] if node.parent is not None else None

    def children(self, node: SchemaNode) -> Tuple[SchemaNode, ...]:
        return tuple(self._nodes[i] for i in node.children)

    def ancestors(self, node: SchemaNode) -> List[SchemaNode]:
        chain = []
        current = self.parent(node)
        while current is not None:
            chain.append(current)
            current = self.parent(current)
        return chain


class SchemaExplorer:
    """Browses the catalog of the session database on demand.

    Catalog reads lease the session connection, so an expansion that has
    to fetch while a query runs waits for the query to finish. Nodes that
    are already cached answer without waiting.
    """

    def __init__(self, manager: ConnectionManager, root_name: Optional[str] = None) -> None:
        self.manager = manager
        self.tree = SchemaTree()
        name = root_name or manager.config.database or manager.config.path or manager.name
        self.root = self.tree.add(SchemaNodeKind.DATABASE, name)
        self._lock = threading.RLock()
        self.fetch_count = 0

    def node(self, index: int) -> SchemaNode:
        return self.tree[index]

    def expand(self, node: SchemaNode) -> Tuple[SchemaNode, ...]:
        """Children of ``node``, fetched on first call and cached afterwards.

        A failed fetch leaves the node unexpanded with the error attached to
        it and returns no children; expanding it again retries. The catalog
        read runs without the explorer's lock, so cached nodes answer at
        once while another expansion waits for the connection.
        """
        if node.is_expanded:
            return self.tree.children(node)

        if node.is_leaf:
            node.state = ExpansionState.EMPTY
            return ()

        try:
            entries = self._fetch(node)
        except SchemaError as e:
            with self._lock:
                if node.is_expanded:
                    return self.tree.children(node)
                node.error = e
            logger.warning(f"Cannot expand {self.qualified_name(node)}: {e}")
            return ()

        entries.sort(key=lambda entry: sort_key(entry[0], entry[1]))
        with self._lock:
            # a concurrent expansion of the same node got there first
            if node.is_expanded:
                return self.tree.children(node)
            node.error = None
            node.children = [
                self.tree.add(kind, name, parent=node.index, **attributes).index
                for kind, name, attributes in entries
            ]
            node.state = ExpansionState.EXPANDED if node.children else ExpansionState.EMPTY
            return self.tree.children(node)

    def refresh(self, node: SchemaNode) -> None:
        """Forget the cached children of ``node``; the next expand refetches."""
        with self._lock:
            node.state = ExpansionState.NOT_EXPANDED
            node.children = []
            node.error = None
            node.row_count = None

    def search(self, term: str) -> List[SchemaNode]:
        """Tables, views and procedures whose name contains ``term``.

        Matching ignores case. The database and every schema are expanded
        as needed, so the search reads from and fills the cache; a schema
        that cannot be read keeps its error and contributes no matches.
        Results are ordered tables first, then views, then procedures, and
        by schema and name within each kind.
        """
        needle = term.casefold()
        matches = [
            child
            for schema in self.expand(self.root)
            for child in self.expand(schema)
            if child.kind in _SEARCH_KINDS and needle in child.name.casefold()
        ]
        matches.sort(key=lambda n: (_KIND_RANK[n.kind], (n.schema or "").casefold(), n.name.casefold()))
        logger.debug(f"Search for {term!r} matched {len(matches)} objects")
        return matches

    def row_count(self, node: SchemaNode) -> Optional[int]:
        """Number of rows in a table, cached on the node.

        Servers that keep table statistics answer from the catalog, so the
        value may be an estimate there. A failure is attached to the node
        and None is returned.

        Raises:
            SchemaError: If ``node`` is not a table.
        """
        if node.kind is not SchemaNodeKind.TABLE:
            raise SchemaError(
                f"{self.qualified_name(node)} is not a table",
                SchemaFailure.NOT_FOUND,
            )
        adapter = self.manager.adapter
        try:
            count = self._read(lambda connection: adapter.get_row_count(connection, node.schema, node.name))
        except SchemaError as e:
            with self._lock:
                node.error = e
            logger.warning(f"Cannot count rows of {self.qualified_name(node)}: {e}")
            return None

        with self._lock:
            node.row_count = count
            node.error = None
        return count

    def walk(self, node: Optional[SchemaNode] = None, depth: int = 0) -> Iterator[Tuple[SchemaNode, int]]:
        """Yield ``(node, depth)`` for ``node`` and every expanded descendant."""
        node = node or self.root
        yield node, depth
        for child in self.tree.children(node):
            yield from self.walk(child, depth + 1)

    def find(self, *path: str) -> Optional[SchemaNode]:
        """Follow names from the root, expanding nodes along the way."""
        node = self.root
        for name in path:
            children = self.expand(node)
            match = next((c for c in children if c.name == name), None)
            if match is None:
                match = next((c for c in children if c.name.casefold() == name.casefold()), None)
            if match is None:
                return None
            node = match
        return node

    def qualified_name(self, node: SchemaNode) -> str:
        """Dotted path of ``node`` below the database level."""
        parts = [node.name] + [
            ancestor.name for ancestor in self.tree.ancestors(node)
            if ancestor.kind is not SchemaNodeKind.DATABASE
        ]
        if node.kind is SchemaNodeKind.DATABASE:
            return node.name
        return ".".join(reversed(parts))

    def table_ddl(self, node: SchemaNode) -> str:
        """``CREATE TABLE`` statement rebuilt from a table's column nodes.

        Raises:
            SchemaError: If ``node`` is not a table or its columns cannot be read.
        """
        if node.kind is not SchemaNodeKind.TABLE:
            raise SchemaError(
                f"{self.qualified_name(node)} is not a table",
                SchemaFailure.NOT_FOUND,
            )
        columns = self.expand(node)
        if node.error is not None:
            raise node.error

        quote = self.manager.adapter.quote_identifier
        target = ".".join(quote(part) for part in (node.schema, node.name) if part)
        lines = []
        for column in sorted(columns, key=lambda c: c.ordinal if c.ordinal is not None else 0):
            definition = f"    {quote(column.name)} {column.data_type or 'UNKNOWN'}"
            definition += " NULL" if column.nullable else " NOT NULL"
            if column.primary_key:
                definition += " PRIMARY KEY"
            lines.append(definition)
        return f"CREATE TABLE {target} (\n" + ",\n".join(lines) + "\n);"

    # -- catalog reads ----------------------------------------------------

    def _fetch(self, node: SchemaNode) -> List[Tuple[SchemaNodeKind, str, Dict[str, Any]]]:
        logger.debug(f"Fetching children of {node.kind.value} {node.name}")
        self.fetch_count += 1
        if node.kind is SchemaNodeKind.DATABASE:
            return self._read(self._schemas)
        if node.kind is SchemaNodeKind.SCHEMA:
            return self._read(lambda connection: self._objects(connection, node.name))
        return self._read(lambda connection: self._columns(connection, node))

    def _read(self, reader: Callable[[Connection], Any]) -> Any:
        try:
            with self.manager.lease(owner=self) as connection:
                return reader(connection)
        except SchemaError:
            raise
        except DatabaseConnectionError as e:
            raise SchemaError(str(e), SchemaFailure.OTHER) from e
        except Exception as e:
            kind = self.manager.adapter.classify_schema_error(e)
            raise SchemaError(str(getattr(e, "orig", None) or e), kind) from e

    def _schemas(self, connection: Connection) -> List[Tuple[SchemaNodeKind, str, Dict[str, Any]]]:
        inspector = inspect(connection)
        names = [name for name in inspector.get_schema_names() if name is not None]
        return [(SchemaNodeKind.SCHEMA, name, {'schema': name}) for name in names]

    def _objects(self, connection: Connection, schema: str) -> List[Tuple[SchemaNodeKind, str, Dict[str, Any]]]:
        inspector = inspect(connection)
        entries = [
            (SchemaNodeKind.TABLE, name, {'schema': schema})
            for name in inspector.get_table_names(schema=schema)
        ]
        try:
            entries.extend(
                (SchemaNodeKind.VIEW, name, {'schema': schema})
                for name in inspector.get_view_names(schema=schema)
            )
        except NotImplementedError:
            logger.debug("Views introspection not supported")
        entries.extend(
            (SchemaNodeKind.PROCEDURE, name, {'schema': schema})
            for name in self.manager.adapter.get_procedure_names(connection, schema)
        )
        return entries

    def _columns(self, connection: Connection, node: SchemaNode) -> List[Tuple[SchemaNodeKind, str, Dict[str, Any]]]:
        inspector = inspect(connection)
        columns = inspector.get_columns(node.name, schema=node.schema)
        primary_keys: List[str] = []
        if node.kind is SchemaNodeKind.TABLE:
            try:
                pk_constraint = inspector.get_pk_constraint(node.name, schema=node.schema)
                primary_keys = pk_constraint.get('constrained_columns') or []
            except NotImplementedError:
                logger.debug(f"Primary key introspection not supported for {node.name}")

        return [
            (
                SchemaNodeKind.COLUMN,
                column['name'],
                {
                    'schema': node.schema,
                    'data_type': _type_text(column.get('type'), connection),
                    'nullable': column.get('nullable', True),
                    'primary_key': column['name'] in primary_keys,
                    'ordinal': ordinal,
                },
            )
            for ordinal, column in enumerate(columns)
        ]


def _type_text(column_type: Any, connection: Connection) -> str:
    if column_type is None:
        return "UNKNOWN"
    try:
        return column_type.compile(dialect=connection.dialect)
    except Exception:
        return type(column_type).__name__.upper()
