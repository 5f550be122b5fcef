"""MySQL database adapter."""

from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote_plus, urlencode

from sqlterm.db.base import BaseAdapter, ColumnType
from sqlterm.db.types import TypeTag
from sqlterm.exceptions import DatabaseError

# pymysql FIELD_TYPE codes; BLOB codes are shared with TEXT columns and left
# to value inference
_FIELD_TYPES = {
    0: (TypeTag.DECIMAL, "DECIMAL"),
    1: (TypeTag.INTEGER, "TINYINT"),
    2: (TypeTag.INTEGER, "SMALLINT"),
    3: (TypeTag.INTEGER, "INT"),
    4: (TypeTag.DECIMAL, "FLOAT"),
    5: (TypeTag.DECIMAL, "DOUBLE"),
    7: (TypeTag.DATETIME, "TIMESTAMP"),
    8: (TypeTag.INTEGER, "BIGINT"),
    9: (TypeTag.INTEGER, "MEDIUMINT"),
    10: (TypeTag.DATE, "DATE"),
    11: (TypeTag.TIME, "TIME"),
    12: (TypeTag.DATETIME, "DATETIME"),
    13: (TypeTag.INTEGER, "YEAR"),
    15: (TypeTag.TEXT, "VARCHAR"),
    16: (TypeTag.BINARY, "BIT"),
    246: (TypeTag.DECIMAL, "DECIMAL"),
    253: (TypeTag.TEXT, "VARCHAR"),
    254: (TypeTag.TEXT, "CHAR"),
}


class MySQLAdapter(BaseAdapter):
    """MySQL database adapter."""

    default_port = 3306

    SYNTAX_MARKERS = BaseAdapter.SYNTAX_MARKERS + ("1064",)
    PERMISSION_MARKERS = BaseAdapter.PERMISSION_MARKERS + ("command denied", "1142")
    TIMEOUT_MARKERS = BaseAdapter.TIMEOUT_MARKERS + ("maximum statement execution time exceeded",)

    def get_driver_name(self) -> str:
        """Get the driver name for MySQL."""
        return "pymysql"

    def build_connection_string(self) -> str:
        """Build MySQL connection string.

        Raises:
            DatabaseError: If required configuration is missing.
        """
        if not all([self.config.host, self.config.database, self.config.username]):
            raise DatabaseError("MySQL requires host, database and username")

        password_encoded = quote_plus(self.config.password or "")
        connection_string = (
            f"mysql+pymysql://{quote_plus(self.config.username)}:{password_encoded}@"
            f"{self.config.host}:{self.port}/{self.config.database}"
        )

        options = self.config.options.copy()
        options.setdefault('charset', 'utf8mb4')
        return connection_string + "?" + urlencode(options)

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get MySQL-specific engine options."""
        return {
            'connect_args': {
                'connect_timeout': self.config.connect_timeout,
            }
        }

    def server_version_query(self) -> str:
        return "SELECT CONCAT('MySQL ', VERSION())"

    def declared_type(self, description: Sequence[Any]) -> ColumnType:
        tag, type_name, nullable = super().declared_type(description)
        type_code = description[1] if len(description) > 1 else None
        if type_code in _FIELD_TYPES:
            tag, type_name = _FIELD_TYPES[type_code]
        return tag, type_name, nullable

    def procedures_query(self) -> Optional[str]:
        return (
            "SELECT routine_name FROM information_schema.routines "
            "WHERE routine_schema = :schema AND routine_type = 'PROCEDURE' "
            "ORDER BY routine_name"
        )

    def row_count_query(self) -> Optional[str]:
        return (
            "SELECT table_rows FROM information_schema.tables "
            "WHERE table_schema = :schema AND table_name = :table"
        )

    def quote_identifier(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"
