"""Base database adapter: dialect-specific knowledge behind one interface."""

import logging
import socket
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, NoSuchTableError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlterm.config.models import DatabaseConfig
from sqlterm.db.types import TypeTag, tag_for_python_type
from sqlterm.exceptions import (
    ConnectionFailure,
    DatabaseError,
    ErrorCategory,
    SchemaFailure,
)

logger = logging.getLogger(__name__)

ColumnType = Tuple[TypeTag, str, Optional[bool]]


def _error_text(error: BaseException) -> str:
    """Lower-cased message of an error and the driver error it wraps."""
    parts = [str(error)]
    orig = getattr(error, "orig", None)
    if orig is not None:
        parts.append(str(orig))
        parts.extend(str(arg) for arg in getattr(orig, "args", ()))
    return " ".join(parts).lower()


def _caused_by(error: BaseException, *types: type) -> bool:
    current: Optional[BaseException] = error
    while current is not None:
        if isinstance(current, types) or isinstance(getattr(current, "orig", None), types):
            return True
        current = current.__cause__ or current.__context__
    return False


class BaseAdapter(ABC):
    """Base class for database adapters.

    An adapter builds the engine for one configured database and interprets
    what its driver reports: column types, error messages, cancellation.
    """

    default_port: Optional[int] = None

    AUTH_MARKERS: Tuple[str, ...] = (
        "login failed",
        "authentication failed",
        "password authentication",
        "access denied",
        "invalid password",
        "invalid authorization",
    )
    TIMEOUT_MARKERS: Tuple[str, ...] = (
        "timeout",
        "timed out",
    )
    CONNECTIVITY_MARKERS: Tuple[str, ...] = (
        "server closed the connection",
        "connection reset",
        "connection refused",
        "connection is closed",
        "lost connection",
        "broken pipe",
        "communication link failure",
        "gone away",
        "not connected",
    )
    PERMISSION_MARKERS: Tuple[str, ...] = (
        "permission denied",
        "permission was denied",
        "access denied",
        "insufficient privilege",
        "not authorized",
        "readonly database",
    )
    SYNTAX_MARKERS: Tuple[str, ...] = (
        "syntax error",
        "incorrect syntax",
    )
    NOT_FOUND_MARKERS: Tuple[str, ...] = (
        "does not exist",
        "no such",
        "not found",
        "invalid object name",
        "unknown database",
    )

    def __init__(self, config: DatabaseConfig) -> None:
        """Initialize database adapter.

        Args:
            config: Database configuration.
        """
        self.config = config
        self._engine: Optional[Engine] = None

    @abstractmethod
    def build_connection_string(self) -> str:
        """Build the SQLAlchemy connection URL."""
        pass

    @abstractmethod
    def get_driver_name(self) -> str:
        """Get the DBAPI driver name for this adapter."""
        pass

    @property
    def port(self) -> Optional[int]:
        return self.config.port or self.default_port

    def get_engine(self) -> Engine:
        """Get or create the SQLAlchemy engine.

        The engine does not pool: the session holds exactly one connection.

        Raises:
            DatabaseError: If engine creation fails.
        """
        if self._engine is None:
            try:
                engine_args: Dict[str, Any] = {
                    'poolclass': NullPool,
                    'echo': False,
                }
                engine_args.update(self._get_engine_options())
                self._engine = create_engine(self.build_connection_string(), **engine_args)
            except DatabaseError:
                raise
            except Exception as e:
                raise DatabaseError(
                    f"Failed to create database engine: {e}",
                    database_type=self.config.type.value,
                ) from e

        return self._engine

    def _get_engine_options(self) -> Dict[str, Any]:
        """Database-specific ``create_engine`` options."""
        return {}

    def server_version_query(self) -> str:
        return "SELECT 1"

    def statement_options(self) -> Dict[str, Any]:
        """Execution options for statements typed by the user.

        Rows are streamed from the server where the driver can do so on an
        autocommit connection.
        """
        return {'no_parameters': True, 'stream_results': True}

    # -- result metadata -------------------------------------------------

    def declared_type(self, description: Sequence[Any]) -> ColumnType:
        """Interpret one DBAPI ``cursor.description`` entry.

        Returns:
            ``(type tag, type name, nullable)``; nullable is None when the
            driver does not say.
        """
        type_code = description[1] if len(description) > 1 else None
        null_ok = description[6] if len(description) > 6 else None
        nullable = null_ok if isinstance(null_ok, bool) else None
        if isinstance(type_code, type):
            tag = tag_for_python_type(type_code)
            return tag, self.type_name(tag), nullable
        return TypeTag.UNKNOWN, "", nullable

    def type_name(self, tag: TypeTag) -> str:
        return tag.value.upper()

    # -- error classification -------------------------------------------

    def classify_connect_error(self, error: BaseException) -> ConnectionFailure:
        """Tell unreachable hosts from rejected credentials and hung logins."""
        message = _error_text(error)
        if any(marker in message for marker in self.AUTH_MARKERS):
            return ConnectionFailure.AUTH_REJECTED
        if _caused_by(error, socket.timeout, TimeoutError) or any(
            marker in message for marker in self.TIMEOUT_MARKERS
        ):
            return ConnectionFailure.TIMEOUT
        return ConnectionFailure.UNREACHABLE

    def classify_execution_error(self, error: BaseException) -> ErrorCategory:
        """Classify a failed statement from the driver's error."""
        message = _error_text(error)
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return ErrorCategory.CONNECTIVITY
        if any(marker in message for marker in self.CONNECTIVITY_MARKERS):
            return ErrorCategory.CONNECTIVITY
        if _caused_by(error, socket.timeout, TimeoutError) or any(
            marker in message for marker in self.TIMEOUT_MARKERS
        ):
            return ErrorCategory.TIMEOUT
        if any(marker in message for marker in self.PERMISSION_MARKERS):
            return ErrorCategory.PERMISSION
        if any(marker in message for marker in self.SYNTAX_MARKERS):
            return ErrorCategory.SYNTAX
        return ErrorCategory.OTHER

    def classify_schema_error(self, error: BaseException) -> SchemaFailure:
        message = _error_text(error)
        if any(marker in message for marker in self.PERMISSION_MARKERS):
            return SchemaFailure.PERMISSION_DENIED
        if isinstance(error, NoSuchTableError) or any(
            marker in message for marker in self.NOT_FOUND_MARKERS
        ):
            return SchemaFailure.NOT_FOUND
        return SchemaFailure.OTHER

    # -- cancellation -----------------------------------------------------

    def cancel(self, connection: Connection) -> bool:
        """Ask the driver to abort the statement running on ``connection``.

        Returns:
            True when the driver supports cancellation and leaves the
            connection usable afterwards.
        """
        return False

    @staticmethod
    def driver_connection(connection: Connection) -> Any:
        """The raw driver connection behind a SQLAlchemy connection."""
        return connection.connection.driver_connection

    # -- catalog ----------------------------------------------------------

    def procedures_query(self) -> Optional[str]:
        """Query listing stored procedure names of ``:schema``, if supported."""
        return None

    def get_procedure_names(self, connection: Connection, schema: Optional[str]) -> List[str]:
        """List stored procedures in a schema.

        Raises:
            SQLAlchemyError: When the catalog query fails.
        """
        query = self.procedures_query()
        if query is None:
            return []
        result = connection.execute(text(query), {"schema": schema})
        return [row[0] for row in result]

    def row_count_query(self) -> Optional[str]:
        """Catalog query estimating the rows of :schema.:table, if the server keeps one."""
        return None

    def get_row_count(self, connection: Connection, schema: Optional[str], table: str) -> Optional[int]:
        """Row count of a table, from catalog statistics where available.

        Falls back to ``COUNT(*)``, which is exact but scans the table.

        Raises:
            SQLAlchemyError: When the query fails.
        """
        query = self.row_count_query()
        if query is not None:
            value = connection.execute(text(query), {"schema": schema, "table": table}).scalar()
        else:
            target = self.quote_identifier(table)
            if schema:
                target = f"{self.quote_identifier(schema)}.{target}"
            value = connection.exec_driver_sql(f"SELECT COUNT(*) FROM {target}").scalar()
        return int(value) if value is not None else None

    def quote_identifier(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def close(self) -> None:
        """Dispose of the engine."""
        if self._engine:
            try:
                self._engine.dispose()
            except SQLAlchemyError as e:
                logger.warning(f"Error disposing engine: {e}")
            self._engine = None
