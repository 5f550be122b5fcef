"""SQLite database adapter."""

from pathlib import Path
from typing import Any, Dict

from sqlalchemy.engine import Connection

from sqlterm.db.base import BaseAdapter
from sqlterm.exceptions import DatabaseError


class SQLiteAdapter(BaseAdapter):
    """SQLite database adapter."""

    SYNTAX_MARKERS = BaseAdapter.SYNTAX_MARKERS + (
        "incomplete input",
        "unrecognized token",
    )

    def get_driver_name(self) -> str:
        """Get the driver name for SQLite."""
        return "sqlite3"

    @property
    def database_path(self) -> Path:
        if not self.config.path:
            raise DatabaseError("SQLite requires a database file path")
        db_path = Path(self.config.path)
        if str(db_path) != ":memory:" and not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        return db_path

    def build_connection_string(self) -> str:
        """Build SQLite connection string.

        Raises:
            DatabaseError: If database path is missing.
        """
        return f"sqlite:///{self.database_path}"

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get SQLite-specific engine options."""
        return {
            'connect_args': {
                # the connection is handed from one worker thread to the next
                'check_same_thread': False,
                'timeout': self.config.options.get('timeout', self.config.connect_timeout),
            }
        }

    def server_version_query(self) -> str:
        return "SELECT 'SQLite ' || sqlite_version()"

    def cancel(self, connection: Connection) -> bool:
        """Interrupt the running statement; sqlite3 raises OperationalError in the worker."""
        self.driver_connection(connection).interrupt()
        return True
