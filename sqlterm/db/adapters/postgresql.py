"""PostgreSQL database adapter."""

from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote_plus, urlencode

from sqlalchemy.engine import Connection

from sqlterm.db.base import BaseAdapter, ColumnType
from sqlterm.db.types import TypeTag
from sqlterm.exceptions import DatabaseError

# pg_type OIDs reported in cursor.description
_OID_TYPES = {
    16: (TypeTag.BOOLEAN, "BOOLEAN"),
    17: (TypeTag.BINARY, "BYTEA"),
    18: (TypeTag.TEXT, "CHAR"),
    19: (TypeTag.TEXT, "NAME"),
    20: (TypeTag.INTEGER, "BIGINT"),
    21: (TypeTag.INTEGER, "SMALLINT"),
    23: (TypeTag.INTEGER, "INTEGER"),
    25: (TypeTag.TEXT, "TEXT"),
    26: (TypeTag.INTEGER, "OID"),
    700: (TypeTag.DECIMAL, "REAL"),
    701: (TypeTag.DECIMAL, "DOUBLE PRECISION"),
    790: (TypeTag.TEXT, "MONEY"),
    1042: (TypeTag.TEXT, "CHAR"),
    1043: (TypeTag.TEXT, "VARCHAR"),
    1082: (TypeTag.DATE, "DATE"),
    1083: (TypeTag.TIME, "TIME"),
    1114: (TypeTag.DATETIME, "TIMESTAMP"),
    1184: (TypeTag.DATETIME, "TIMESTAMPTZ"),
    1700: (TypeTag.DECIMAL, "NUMERIC"),
    2950: (TypeTag.TEXT, "UUID"),
}


class PostgreSQLAdapter(BaseAdapter):
    """PostgreSQL database adapter."""

    default_port = 5432

    SYNTAX_MARKERS = BaseAdapter.SYNTAX_MARKERS + ("42601",)
    PERMISSION_MARKERS = BaseAdapter.PERMISSION_MARKERS + ("42501",)
    TIMEOUT_MARKERS = BaseAdapter.TIMEOUT_MARKERS + ("canceling statement due to statement timeout",)

    def get_driver_name(self) -> str:
        """Get the driver name for PostgreSQL."""
        return "psycopg2"

    def build_connection_string(self) -> str:
        """Build PostgreSQL connection string.

        Raises:
            DatabaseError: If required configuration is missing.
        """
        if not all([self.config.host, self.config.database, self.config.username]):
            raise DatabaseError("PostgreSQL requires host, database and username")

        password_encoded = quote_plus(self.config.password or "")
        connection_string = (
            f"postgresql+psycopg2://{quote_plus(self.config.username)}:{password_encoded}@"
            f"{self.config.host}:{self.port}/{self.config.database}"
        )

        options = self.config.options.copy()
        options.setdefault('sslmode', 'prefer')
        return connection_string + "?" + urlencode(options)

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get PostgreSQL-specific engine options."""
        return {
            'connect_args': {
                'connect_timeout': self.config.connect_timeout,
                'application_name': 'sqlterm',
            }
        }

    def server_version_query(self) -> str:
        return "SELECT version()"

    def declared_type(self, description: Sequence[Any]) -> ColumnType:
        tag, type_name, nullable = super().declared_type(description)
        type_code = description[1] if len(description) > 1 else None
        if type_code in _OID_TYPES:
            tag, type_name = _OID_TYPES[type_code]
        return tag, type_name, nullable

    def cancel(self, connection: Connection) -> bool:
        """Send a cancel request; psycopg2 raises QueryCanceledError in the worker."""
        self.driver_connection(connection).cancel()
        return True

    def procedures_query(self) -> Optional[str]:
        return (
            "SELECT routine_name FROM information_schema.routines "
            "WHERE routine_schema = :schema AND routine_type = 'PROCEDURE' "
            "ORDER BY routine_name"
        )

    def statement_options(self) -> Dict[str, Any]:
        # stream_results would open a named cursor, which psycopg2 refuses in autocommit
        return {'no_parameters': True}

    def row_count_query(self) -> Optional[str]:
        # reltuples is -1 until the table is first analyzed
        return (
            "SELECT CASE WHEN c.reltuples < 0 THEN NULL ELSE c.reltuples::bigint END "
            "FROM pg_class c JOIN pg_namespace n ON n.oid = c.relnamespace "
            "WHERE n.nspname = :schema AND c.relname = :table AND c.relkind IN ('r', 'p')"
        )
