"""Query session: the connection, engine, schema browser and history of one database."""

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from sqlterm.config.models import SQLTermConfig
from sqlterm.db.connection import ConnectionManager, ConnectionTestReport
from sqlterm.db.engine import Execution, ExecutionStatus, Failed, QueryEngine, Succeeded
from sqlterm.db.results import ResultSet
from sqlterm.db.schema import SchemaExplorer, SchemaNode
from sqlterm.exceptions import ConfigurationError, ExecutionError, ExportError, ExportFailure
from sqlterm.export import ExportFormat, export, write_export
from sqlterm.history import HistoryEntry, HistoryStore

logger = logging.getLogger(__name__)


class QuerySession:
    """Everything the interface layer needs for one database.

    Example::

        with QuerySession(get_config(), "reporting") as session:
            session.connect()
            execution = session.submit("SELECT 1 AS x")
            execution.wait()
            print(session.current_result_set().rows)
    """

    def __init__(self, config: SQLTermConfig, db_name: Optional[str] = None) -> None:
        """Initialize the session.

        Args:
            config: Loaded configuration.
            db_name: Database to use (default database when omitted).

        Raises:
            ConfigurationError: If the database is not configured.
        """
        self.config = config
        self.db_name = db_name or config.default_database
        try:
            db_config = config.get_database(self.db_name)
        except KeyError:
            available = ", ".join(config.databases) or "none"
            raise ConfigurationError(
                f"Database '{self.db_name}' not found in configuration (available: {available})"
            ) from None

        settings = config.session
        self.manager = ConnectionManager(db_config, name=self.db_name, probe_timeout=settings.probe_timeout)
        self.engine = QueryEngine(
            self.manager,
            fetch_size=settings.fetch_size,
            query_timeout=settings.query_timeout,
        )
        self.history = HistoryStore(max_entries=settings.history_size)
        self.schema = SchemaExplorer(self.manager)
        self.engine.add_listener(self._record)

    def __enter__(self) -> "QuerySession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- connection -------------------------------------------------------

    def connect(self) -> "QuerySession":
        """Open the session connection.

        Raises:
            DatabaseConnectionError: If the database cannot be reached or rejects the login.
        """
        self.manager.connect()
        return self

    def test_connection(self) -> ConnectionTestReport:
        return self.manager.test_connection()

    def close(self) -> None:
        self.engine.shutdown()
        self.manager.close()

    # -- execution --------------------------------------------------------

    def submit(self, statement: str) -> Execution:
        return self.engine.submit(statement)

    def run(self, statement: str, timeout: Optional[float] = None) -> Execution:
        """Submit ``statement`` and wait for its outcome."""
        execution = self.engine.submit(statement)
        execution.wait(timeout)
        return execution

    def cancel(self) -> bool:
        return self.engine.cancel()

    def poll(self) -> List[Execution]:
        return self.engine.poll()

    def current_result_set(self) -> Optional[ResultSet]:
        return self.engine.current_result

    def current_status(self) -> ExecutionStatus:
        return self.engine.status

    def last_error(self) -> Optional[ExecutionError]:
        return self.engine.last_error

    # -- schema -----------------------------------------------------------

    def schema_root(self) -> SchemaNode:
        return self.schema.root

    def expand(self, node: SchemaNode) -> Tuple[SchemaNode, ...]:
        return self.schema.expand(node)

    # -- history ----------------------------------------------------------

    def history_entries(self) -> List[HistoryEntry]:
        return self.history.entries()

    def _record(self, execution: Execution) -> None:
        outcome = execution.outcome
        row_count = None
        error_message = None
        if isinstance(outcome, Succeeded):
            result_set = outcome.result_set
            row_count = result_set.row_count if result_set.returns_rows else result_set.affected_rows
        elif isinstance(outcome, Failed):
            error_message = str(outcome.error)

        self.history.append(HistoryEntry(
            statement=execution.statement,
            status=execution.status.value,
            submitted_at=execution.submitted_at,
            row_count=row_count,
            elapsed=round(execution.elapsed, 6),
            error_message=error_message,
            database=self.db_name,
        ))

    # -- export -----------------------------------------------------------

    def export(self, format: Union[str, ExportFormat], **options: Any) -> bytes:
        """Export the current result set.

        Raises:
            ExportError: If there is no result set or it cannot be exported.
        """
        return export(self._exportable(), format, **self._export_options(options))

    def write_export(
        self,
        format: Union[str, ExportFormat],
        directory: Optional[Union[str, Path]] = None,
        **options: Any,
    ) -> Path:
        """Export the current result set to a file in ``directory``
        (the configured export directory when omitted)."""
        return write_export(
            self._exportable(),
            format,
            directory or self.config.session.export_dir,
            **self._export_options(options),
        )

    def _exportable(self) -> ResultSet:
        result_set = self.engine.current_result
        if result_set is None or not result_set.returns_rows:
            raise ExportError("No results to export", ExportFailure.NO_RESULTS)
        return result_set

    def _export_options(self, options: dict) -> dict:
        options.setdefault('quote_identifier', self.manager.adapter.quote_identifier)
        return options
