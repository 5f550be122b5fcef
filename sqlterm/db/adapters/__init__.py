"""Database adapters for different database types."""

from sqlterm.db.adapters.sqlserver import SQLServerAdapter
from sqlterm.db.adapters.postgresql import PostgreSQLAdapter
from sqlterm.db.adapters.mysql import MySQLAdapter
from sqlterm.db.adapters.sqlite import SQLiteAdapter

__all__ = [
    "SQLServerAdapter",
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
