"""Database connectivity, query execution and catalog browsing."""

from sqlterm.db.base import BaseAdapter
from sqlterm.db.types import Cell, CellKind, TypeTag, normalize
from sqlterm.db.results import ColumnDescriptor, ResultSet, ResultSetBuilder
from sqlterm.db.connection import (
    AdapterFactory,
    ConnectionManager,
    ConnectionTestReport,
)
from sqlterm.db.engine import (
    Cancelled,
    Execution,
    ExecutionStatus,
    Failed,
    QueryEngine,
    Succeeded,
)
from sqlterm.db.schema import ExpansionState, SchemaExplorer, SchemaNode, SchemaNodeKind
from sqlterm.db.adapters import (
    MySQLAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
    SQLServerAdapter,
)

__all__ = [
    # Base classes
    "BaseAdapter",
    # Values and results
    "Cell",
    "CellKind",
    "TypeTag",
    "normalize",
    "ColumnDescriptor",
    "ResultSet",
    "ResultSetBuilder",
    # Connection management
    "AdapterFactory",
    "ConnectionManager",
    "ConnectionTestReport",
    # Execution
    "QueryEngine",
    "Execution",
    "ExecutionStatus",
    "Succeeded",
    "Failed",
    "Cancelled",
    # Schema browsing
    "SchemaExplorer",
    "SchemaNode",
    "SchemaNodeKind",
    "ExpansionState",
    # Database adapters
    "SQLServerAdapter",
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
