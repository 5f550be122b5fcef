"""Query execution engine.

Statements run on worker threads so the caller's render loop never waits on
the network. At most one execution is running at a time: submitting a new
statement cancels the running one first, and only the most recently
submitted execution may ever become current.

Each :class:`Execution` ends in exactly one outcome, set once, by whichever
comes first: the worker finishing, an explicit cancel, a supersession, or
the query timeout.
"""

import itertools
import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Union

from sqlterm.db.connection import ConnectionManager
from sqlterm.db.results import ResultSet, ResultSetBuilder
from sqlterm.exceptions import DatabaseConnectionError, ErrorCategory, ExecutionError

logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    """Engine and execution states."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Succeeded:
    result_set: ResultSet
    status = ExecutionStatus.COMPLETED


@dataclass(frozen=True)
class Failed:
    error: ExecutionError
    status = ExecutionStatus.FAILED


@dataclass(frozen=True)
class Cancelled:
    reason: str = "cancelled"
    status = ExecutionStatus.CANCELLED


Outcome = Union[Succeeded, Failed, Cancelled]


class CancelToken:
    """Cooperative cancellation flag checked between fetched partitions."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Execution:
    """Handle for one submitted statement."""

    def __init__(self, execution_id: int, statement: str) -> None:
        self.id = execution_id
        self.statement = statement
        self.submitted_at = datetime.now()
        self.token = CancelToken()
        self.outcome: Optional[Outcome] = None
        self._started = time.perf_counter()
        self._ended: Optional[float] = None
        self._done = threading.Event()

    @property
    def status(self) -> ExecutionStatus:
        return self.outcome.status if self.outcome else ExecutionStatus.RUNNING

    @property
    def done(self) -> bool:
        return self.outcome is not None

    @property
    def elapsed(self) -> float:
        """Seconds from submission to the outcome (or until now while running)."""
        return (self._ended or time.perf_counter()) - self._started

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the outcome is known and has been delivered to listeners."""
        return self._done.wait(timeout)

    def _finish(self, outcome: Outcome) -> None:
        self._ended = time.perf_counter()
        self.outcome = outcome

    def _notify(self) -> None:
        self._done.set()

    def __repr__(self) -> str:
        return f"Execution(id={self.id}, status={self.status.value}, statement={self.statement[:40]!r})"


Listener = Callable[[Execution], None]


class QueryEngine:
    """Runs statements against the session connection without blocking."""

    def __init__(
        self,
        manager: ConnectionManager,
        fetch_size: int = 500,
        query_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            manager: Connection manager owning the session connection.
            fetch_size: Rows fetched per round trip while streaming.
            query_timeout: Seconds after which a running statement is cancelled
                and reported as a TIMEOUT failure.
        """
        self.manager = manager
        self.fetch_size = fetch_size
        self.query_timeout = query_timeout
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._latest: Optional[Execution] = None
        self._status = ExecutionStatus.IDLE
        self._current_result: Optional[ResultSet] = None
        self._last_error: Optional[ExecutionError] = None
        self._completed: "queue.SimpleQueue[Execution]" = queue.SimpleQueue()
        self._listeners: List[Listener] = []
        self._timers: dict = {}

    # -- outputs ----------------------------------------------------------

    @property
    def status(self) -> ExecutionStatus:
        return self._status

    @property
    def current_result(self) -> Optional[ResultSet]:
        return self._current_result

    @property
    def last_error(self) -> Optional[ExecutionError]:
        return self._last_error

    @property
    def latest(self) -> Optional[Execution]:
        return self._latest

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener`` (on the finishing thread) for every finished execution."""
        self._listeners.append(listener)

    def poll(self) -> List[Execution]:
        """Executions finished since the last poll, oldest first.

        Once the latest execution's outcome has been handed out here, the
        engine is back to IDLE; :attr:`current_result` and :attr:`last_error`
        keep their values.
        """
        finished = []
        while True:
            try:
                finished.append(self._completed.get_nowait())
            except queue.Empty:
                break
        with self._lock:
            if self._latest is not None and self._latest in finished:
                self._status = ExecutionStatus.IDLE
        return finished

    # -- control ----------------------------------------------------------

    def submit(self, statement: str) -> Execution:
        """Start executing ``statement`` and return immediately.

        A running execution is cancelled first; its outcome, whenever it
        arrives, is discarded.
        """
        with self._lock:
            previous = self._latest
            if previous is not None and not previous.done:
                self._cancel(previous, "superseded")

            execution = Execution(next(self._ids), statement)
            self._latest = execution
            self._status = ExecutionStatus.RUNNING

            if self.query_timeout:
                timer = threading.Timer(self.query_timeout, self._time_out, args=(execution,))
                timer.daemon = True
                self._timers[execution.id] = timer
                timer.start()

        logger.debug(f"Submitting execution {execution.id}: {statement[:80]!r}")
        worker = threading.Thread(
            target=self._run,
            args=(execution,),
            daemon=True,
            name=f"sqlterm-query-{execution.id}",
        )
        worker.start()
        return execution

    def cancel(self) -> bool:
        """Cancel the running execution, if any.

        Returns:
            True if an execution was cancelled.
        """
        with self._lock:
            execution = self._latest
            if execution is None or execution.done:
                return False
            self._cancel(execution, "cancelled by user")
            return True

    def shutdown(self) -> None:
        """Cancel anything running and stop pending timers."""
        self.cancel()
        for timer in list(self._timers.values()):
            timer.cancel()
        self._timers.clear()

    def _cancel(self, execution: Execution, reason: str) -> None:
        execution.token.cancel()
        self._finalize(execution, Cancelled(reason))
        self._interrupt(execution)
        logger.debug(f"Execution {execution.id} {reason}")

    def _time_out(self, execution: Execution) -> None:
        with self._lock:
            if execution.done:
                return
            execution.token.cancel()
            error = ExecutionError(
                f"Query exceeded the {self.query_timeout:g}s timeout",
                ErrorCategory.TIMEOUT,
                execution.statement,
            )
            self._finalize(execution, Failed(error))
            self._interrupt(execution)

    def _interrupt(self, execution: Execution) -> None:
        # driver cancels can block on the network; the caller never waits for them
        canceller = threading.Thread(
            target=self.manager.interrupt,
            kwargs={'owner': execution},
            daemon=True,
            name=f"sqlterm-cancel-{execution.id}",
        )
        canceller.start()

    # -- worker -----------------------------------------------------------

    def _run(self, execution: Execution) -> None:
        try:
            outcome = self._execute(execution)
        except Exception as e:  # the worker thread must always settle the execution
            logger.exception(f"Unexpected failure in execution {execution.id}")
            outcome = Failed(ExecutionError(str(e), ErrorCategory.OTHER, execution.statement))
        self._finalize(execution, outcome)

    def _execute(self, execution: Execution) -> Outcome:
        token = execution.token
        adapter = self.manager.adapter

        try:
            with self.manager.lease(owner=execution) as connection:
                if token.cancelled:
                    return Cancelled()
                try:
                    result = connection.execution_options(
                        **adapter.statement_options()
                    ).exec_driver_sql(execution.statement)

                    if not result.returns_rows:
                        affected = result.rowcount if result.rowcount >= 0 else None
                        result.close()
                        builder = ResultSetBuilder(execution.statement, [])
                        return Succeeded(builder.build(execution.elapsed, affected))

                    description = result.cursor.description or []
                    builder = ResultSetBuilder(
                        execution.statement,
                        list(result.keys()),
                        [adapter.declared_type(entry) for entry in description] or None,
                    )
                    for partition in result.partitions(self.fetch_size):
                        if token.cancelled:
                            result.close()
                            return Cancelled()
                        builder.add_rows(partition)
                    result.close()
                    return Succeeded(builder.build(execution.elapsed))

                except Exception as e:
                    _reset(connection)
                    if token.cancelled:
                        # the driver reports the abort we asked for as an error
                        return Cancelled()
                    category = adapter.classify_execution_error(e)
                    if category is ErrorCategory.CONNECTIVITY:
                        self.manager.mark_dead(connection)
                    message = str(getattr(e, "orig", None) or e)
                    return Failed(ExecutionError(message, category, execution.statement))

        except DatabaseConnectionError as e:
            return Failed(ExecutionError(
                f"Reconnection failed: {e}",
                ErrorCategory.CONNECTIVITY,
                execution.statement,
                details={'connection_failure': e.kind.value},
            ))

    def _finalize(self, execution: Execution, outcome: Outcome) -> None:
        with self._lock:
            if execution.done:
                return
            execution._finish(outcome)
            timer = self._timers.pop(execution.id, None)
            if timer is not None:
                timer.cancel()

            if execution is self._latest:
                self._status = outcome.status
                if isinstance(outcome, Succeeded):
                    self._current_result = outcome.result_set
                    self._last_error = None
                elif isinstance(outcome, Failed):
                    # the previous result set stays current
                    self._last_error = outcome.error

        logger.debug(f"Execution {execution.id} finished: {outcome.status.value}")
        self._completed.put(execution)
        for listener in list(self._listeners):
            try:
                listener(execution)
            except Exception as e:
                logger.warning(f"Execution listener failed: {e}")
        execution._notify()


def _reset(connection) -> None:
    try:
        connection.rollback()
    except Exception as e:
        logger.debug(f"Ignoring error while resetting connection: {e}")
