"""In-memory history of executed statements."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """One finished execution."""
    statement: str
    status: str
    submitted_at: datetime = field(default_factory=datetime.now)
    row_count: Optional[int] = None
    elapsed: Optional[float] = None
    error_message: Optional[str] = None
    database: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'statement': self.statement,
            'status': self.status,
            'submitted_at': self.submitted_at.isoformat(timespec='seconds'),
            'row_count': self.row_count,
            'elapsed': self.elapsed,
            'error_message': self.error_message,
            'database': self.database,
        }


class HistoryStore:
    """Append-only list of history entries, most recent last.

    When more than ``max_entries`` entries are held the oldest are dropped.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        with self._lock:
            self._entries.append(entry)
            overflow = len(self._entries) - self.max_entries
            if overflow > 0:
                del self._entries[:overflow]
        logger.debug(f"History entry added ({entry.status}): {entry.statement[:60]!r}")
        return entry

    def entries(self) -> List[HistoryEntry]:
        """Snapshot of all entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def last(self) -> Optional[HistoryEntry]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def search(self, term: str) -> List[HistoryEntry]:
        """Entries whose statement contains ``term``, ignoring case."""
        needle = term.casefold()
        return [entry for entry in self.entries() if needle in entry.statement.casefold()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self.entries())
