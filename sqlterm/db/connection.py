"""Connection management: one live connection per session."""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Generator, Optional, Type

from sqlalchemy.engine import Connection

from sqlterm.config.models import DatabaseConfig, DatabaseType
from sqlterm.db import probes
from sqlterm.db.adapters import MySQLAdapter, PostgreSQLAdapter, SQLiteAdapter, SQLServerAdapter
from sqlterm.db.base import BaseAdapter
from sqlterm.exceptions import ConnectionFailure, DatabaseConnectionError, DatabaseError

logger = logging.getLogger(__name__)

# placeholder lease held while a connection is being opened
_CONNECTING: Any = object()


class AdapterFactory:
    """Factory for creating database adapters."""

    _adapters: Dict[DatabaseType, Type[BaseAdapter]] = {
        DatabaseType.SQLSERVER: SQLServerAdapter,
        DatabaseType.POSTGRESQL: PostgreSQLAdapter,
        DatabaseType.MYSQL: MySQLAdapter,
        DatabaseType.SQLITE: SQLiteAdapter,
    }

    @classmethod
    def create_adapter(cls, config: DatabaseConfig) -> BaseAdapter:
        """Create a database adapter based on configuration.

        Raises:
            DatabaseError: If database type is not supported.
        """
        adapter_class = cls._adapters.get(config.type)
        if not adapter_class:
            supported_types = [db_type.value for db_type in cls._adapters]
            raise DatabaseError(
                f"Unsupported database type: {config.type}. "
                f"Supported types: {supported_types}"
            )
        return adapter_class(config)

    @classmethod
    def register_adapter(cls, db_type: DatabaseType, adapter_class: Type[BaseAdapter]) -> None:
        """Register a custom database adapter."""
        cls._adapters[db_type] = adapter_class


@dataclass
class ConnectionTestReport:
    """Outcome of the three-stage connection test.

    Every stage runs even if an earlier one failed, so "host down",
    "port blocked" and "bad credentials" can be told apart.
    """
    database: str
    ping_ok: bool = False
    port_open: bool = False
    login_ok: bool = False
    login_failure: Optional[ConnectionFailure] = None
    messages: Dict[str, str] = field(default_factory=dict)
    timings_ms: Dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.ping_ok and self.port_open and self.login_ok

    def to_dict(self) -> Dict[str, Any]:
        return {
            'database': self.database,
            'ping_ok': self.ping_ok,
            'port_open': self.port_open,
            'login_ok': self.login_ok,
            'login_failure': self.login_failure.value if self.login_failure else None,
            'messages': dict(self.messages),
            'timings_ms': dict(self.timings_ms),
        }


class ConnectionManager:
    """Owns the single connection of a query session.

    The connection is handed out through :meth:`lease`, which grants
    exclusive use: no two statements are ever sent on it at once.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        name: str = "default",
        probe_timeout: float = 3.0,
    ) -> None:
        """Initialize connection manager.

        Args:
            config: Database configuration.
            name: Connection name used in messages and history.
            probe_timeout: Timeout for the reachability and port probes.
        """
        self.config = config
        self.name = name
        self.probe_timeout = probe_timeout
        self.adapter = AdapterFactory.create_adapter(config)
        self._cond = threading.Condition()
        self._connection: Optional[Connection] = None
        self._leased: Optional[Connection] = None
        self._lease_owner: Any = None
        self._cancelling = 0
        self._alive = False

    # -- life cycle -------------------------------------------------------

    def connect(self) -> "ConnectionManager":
        """Open the connection if it is not already open.

        Raises:
            DatabaseConnectionError: With kind UNREACHABLE, AUTH_REJECTED or TIMEOUT.
        """
        if self._connection is not None and self._alive:
            return self
        with self.lease():
            pass
        return self

    def reconnect(self) -> None:
        """Drop the current connection and open a new one.

        Raises:
            DatabaseConnectionError: If the new connection cannot be opened.
        """
        with self._cond:
            while self._leased is not None or self._cancelling:
                self._cond.wait()
            self._alive = False
        with self.lease():
            pass

    def disconnect(self) -> None:
        """Release the connection. Calling it when disconnected is a no-op."""
        with self._cond:
            connection = self._connection
            if connection is None:
                return
            busy = self._leased is connection
            if busy:
                self._leased = None
                self._lease_owner = None
            self._connection = None
            self._alive = False
            self._cond.notify_all()

        # a busy connection is closed by its lessee when the statement unwinds
        if busy:
            self._cancel(connection)
        else:
            self._close_quietly(connection)
        logger.info(f"Disconnected from {self.config.describe()}")

    def close(self) -> None:
        """Disconnect and dispose of the engine."""
        self.disconnect()
        self.adapter.close()

    def is_alive(self) -> bool:
        """Whether a usable connection is held. Never blocks."""
        return self._alive

    def _open(self) -> Connection:
        try:
            engine = self.adapter.get_engine()
            connection = engine.connect()
        except DatabaseError as e:
            raise DatabaseConnectionError(
                str(e), ConnectionFailure.UNREACHABLE, self.config.type.value
            ) from e
        except Exception as e:
            kind = self.adapter.classify_connect_error(e)
            raise DatabaseConnectionError(
                _connect_message(kind, self.config.describe(), e),
                kind,
                self.config.type.value,
            ) from e
        # every statement typed by the user commits on its own
        return connection.execution_options(isolation_level="AUTOCOMMIT")

    @staticmethod
    def _close_quietly(connection: Connection) -> None:
        try:
            connection.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing connection: {e}")

    # -- exclusive use ----------------------------------------------------

    @contextmanager
    def lease(self, owner: Any = None) -> Generator[Connection, None, None]:
        """Borrow the connection exclusively, reconnecting first if it is dead.

        Waits while another lease is outstanding. The connect itself runs
        without holding the manager's lock, so :meth:`interrupt` and
        :meth:`status` stay responsive while a slow server is dialled.

        Raises:
            DatabaseConnectionError: If reconnecting fails.
        """
        connection = self._acquire(owner)
        try:
            yield connection
        finally:
            with self._cond:
                if self._leased is connection:
                    self._leased = None
                    self._lease_owner = None
                orphaned = connection is not self._connection
                self._cond.notify_all()
            if orphaned:
                self._close_quietly(connection)

    def _acquire(self, owner: Any) -> Connection:
        with self._cond:
            while self._leased is not None or self._cancelling:
                self._cond.wait()
            if self._connection is not None and self._alive:
                self._leased = self._connection
                self._lease_owner = owner
                return self._connection
            # claim the slot while dialling so other lessees keep waiting
            stale = self._connection
            self._connection = None
            self._alive = False
            self._leased = _CONNECTING
            self._lease_owner = owner

        try:
            if stale is not None:
                self._close_quietly(stale)
            connection = self._open()
        except BaseException:
            with self._cond:
                self._leased = None
                self._lease_owner = None
                self._cond.notify_all()
            raise

        with self._cond:
            self._connection = connection
            self._alive = True
            self._leased = connection
            self._cond.notify_all()
        logger.info(f"Connected to {self.config.describe()}")
        return connection

    def interrupt(self, owner: Any = None) -> bool:
        """Abort the statement running under ``owner``'s lease.

        When the driver cannot cancel, the connection is revoked: the lessee
        keeps it and closes it once its statement returns, and the next
        lease opens a fresh connection. The driver call may block on the
        network, so it is made without holding the manager's lock.

        Returns:
            True if the driver cancelled in place (or nothing was running).
        """
        with self._cond:
            connection = self._leased
            if connection is None or connection is _CONNECTING:
                return True
            if owner is not None and self._lease_owner is not owner:
                return True
            self._cancelling += 1

        cancelled = revoked = False
        try:
            cancelled = self._cancel(connection)
        finally:
            with self._cond:
                self._cancelling -= 1
                self._cond.notify_all()
                if not cancelled and self._leased is connection:
                    revoked = True
                    logger.info("Driver cannot cancel in place, abandoning connection")
                    self._leased = None
                    self._lease_owner = None
                    if self._connection is connection:
                        self._connection = None
                        self._alive = False
        return not revoked

    def _cancel(self, connection: Connection) -> bool:
        try:
            cancelled = self.adapter.cancel(connection)
        except Exception as e:
            logger.warning(f"Driver cancel failed: {e}")
            return False
        if cancelled:
            logger.debug("Cancel request sent to driver")
        return cancelled

    def mark_dead(self, connection: Connection) -> None:
        """Record connectivity loss; the next lease reconnects."""
        with self._cond:
            if connection is self._connection:
                self._alive = False
                logger.warning(f"Lost connection to {self.config.describe()}")

    # -- diagnostics ------------------------------------------------------

    def test_connection(self) -> ConnectionTestReport:
        """Run reachability, port and login checks; never raises."""
        report = ConnectionTestReport(database=self.name)

        if self.config.is_networked:
            host = self.config.host or ""
            port = self.adapter.port

            start = time.perf_counter()
            ping = probes.ping_host(host, self.probe_timeout)
            report.timings_ms['ping'] = _elapsed_ms(start)
            report.ping_ok, report.messages['ping'] = ping.ok, ping.message

            start = time.perf_counter()
            port_probe = probes.probe_port(host, port, self.probe_timeout)
            report.timings_ms['port'] = _elapsed_ms(start)
            report.port_open, report.messages['port'] = port_probe.ok, port_probe.message
        else:
            location = Path(self.config.path or "")
            report.ping_ok = location.parent.exists()
            report.port_open = location.exists()
            report.messages['ping'] = f"Directory {location.parent} {'exists' if report.ping_ok else 'is missing'}"
            report.messages['port'] = f"Database file {location} {'exists' if report.port_open else 'is missing'}"

        start = time.perf_counter()
        try:
            with self.adapter.get_engine().connect() as connection:
                connection.exec_driver_sql("SELECT 1").fetchall()
            report.login_ok = True
            report.messages['login'] = "Login successful"
        except Exception as e:
            report.login_failure = (
                ConnectionFailure.UNREACHABLE if isinstance(e, DatabaseError)
                else self.adapter.classify_connect_error(e)
            )
            report.messages['login'] = _connect_message(report.login_failure, self.config.describe(), e)
        report.timings_ms['login'] = _elapsed_ms(start)

        logger.debug(f"Connection test for {self.name}: {report.to_dict()}")
        return report

    def server_version(self) -> str:
        """First line of the server's version banner."""
        with self.lease() as connection:
            version = connection.exec_driver_sql(self.adapter.server_version_query()).scalar()
        return str(version or "").splitlines()[0] if version else "Unknown"

    def status(self) -> Dict[str, Any]:
        """Connection status summary."""
        return {
            'database': self.name,
            'endpoint': self.config.describe(),
            'database_type': self.config.type.value,
            'driver': self.adapter.get_driver_name(),
            'alive': self._alive,
            'busy': self._leased is not None,
        }


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _connect_message(kind: ConnectionFailure, endpoint: str, error: BaseException) -> str:
    detail = getattr(error, "orig", None) or error
    if kind is ConnectionFailure.AUTH_REJECTED:
        return f"Login rejected by {endpoint}: {detail}"
    if kind is ConnectionFailure.TIMEOUT:
        return f"Timed out connecting to {endpoint}: {detail}"
    return f"Cannot reach {endpoint}: {detail}"
