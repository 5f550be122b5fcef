"""SQL Server database adapter."""

from typing import Any, Dict, Optional
from urllib.parse import quote_plus, urlencode

from sqlterm.db.base import BaseAdapter
from sqlterm.db.types import TypeTag
from sqlterm.exceptions import DatabaseError

_TYPE_NAMES = {
    TypeTag.INTEGER: "INT",
    TypeTag.DECIMAL: "DECIMAL",
    TypeTag.TEXT: "NVARCHAR",
    TypeTag.BOOLEAN: "BIT",
    TypeTag.DATE: "DATE",
    TypeTag.DATETIME: "DATETIME2",
    TypeTag.TIME: "TIME",
    TypeTag.BINARY: "VARBINARY",
}


class SQLServerAdapter(BaseAdapter):
    """SQL Server adapter over pyodbc.

    pyodbc reports Python types as ``type_code``, which the base adapter
    already maps to type tags.
    """

    default_port = 1433

    AUTH_MARKERS = BaseAdapter.AUTH_MARKERS + ("18456", "28000")
    TIMEOUT_MARKERS = BaseAdapter.TIMEOUT_MARKERS + ("hyt00",)
    CONNECTIVITY_MARKERS = BaseAdapter.CONNECTIVITY_MARKERS + ("08s01",)
    PERMISSION_MARKERS = BaseAdapter.PERMISSION_MARKERS + ("(229)", "(230)", "(262)")
    NOT_FOUND_MARKERS = BaseAdapter.NOT_FOUND_MARKERS + ("(208)",)

    def get_driver_name(self) -> str:
        """Get the driver name for SQL Server."""
        return "pyodbc"

    def build_connection_string(self) -> str:
        """Build SQL Server connection string.

        Raises:
            DatabaseError: If required configuration is missing.
        """
        if not all([self.config.host, self.config.database, self.config.username]):
            raise DatabaseError("SQL Server requires host, database and username")

        password_encoded = quote_plus(self.config.password or "")
        connection_string = (
            f"mssql+pyodbc://{quote_plus(self.config.username)}:{password_encoded}@"
            f"{self.config.host}:{self.port}/{self.config.database}"
        )

        options = self.config.options.copy()
        options.setdefault('driver', 'ODBC Driver 18 for SQL Server')
        # unencrypted, server certificate trusted
        options.setdefault('Encrypt', 'no')
        options.setdefault('TrustServerCertificate', 'yes')
        return connection_string + "?" + urlencode(options)

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get SQL Server-specific engine options."""
        return {
            'connect_args': {
                'timeout': self.config.connect_timeout,
            }
        }

    def server_version_query(self) -> str:
        return "SELECT @@VERSION"

    def type_name(self, tag: TypeTag) -> str:
        return _TYPE_NAMES.get(tag, super().type_name(tag))

    def procedures_query(self) -> Optional[str]:
        return (
            "SELECT p.name FROM sys.procedures p "
            "INNER JOIN sys.schemas s ON p.schema_id = s.schema_id "
            "WHERE s.name = :schema ORDER BY p.name"
        )

    def row_count_query(self) -> Optional[str]:
        return (
            "SELECT SUM(p.rows) FROM sys.partitions p "
            "INNER JOIN sys.tables t ON p.object_id = t.object_id "
            "INNER JOIN sys.schemas s ON t.schema_id = s.schema_id "
            "WHERE s.name = :schema AND t.name = :table AND p.index_id IN (0, 1)"
        )

    def quote_identifier(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"
