"""Tests for the statement history."""

from __future__ import annotations

import threading
from datetime import datetime

import pytest

from sqlterm.history import HistoryEntry, HistoryStore


def entry(statement: str, status: str = "completed", **kwargs) -> HistoryEntry:
    return HistoryEntry(statement=statement, status=status, **kwargs)


class TestHistoryStore:

    def test_entries_in_execution_order(self) -> None:
        store = HistoryStore()
        store.append(entry("SELECT 1"))
        store.append(entry("SELEC 2", status="failed", error_message="syntax error"))

        assert [e.statement for e in store.entries()] == ["SELECT 1", "SELEC 2"]
        assert store.last().status == "failed"
        assert len(store) == 2

    def test_repeated_statements_are_kept(self) -> None:
        store = HistoryStore()
        for _ in range(3):
            store.append(entry("SELECT 1"))

        assert len(store) == 3

    def test_oldest_entries_are_dropped(self) -> None:
        store = HistoryStore(max_entries=3)
        for i in range(5):
            store.append(entry(f"SELECT {i}"))

        assert [e.statement for e in store] == ["SELECT 2", "SELECT 3", "SELECT 4"]

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            HistoryStore(max_entries=0)

    def test_search_ignores_case(self) -> None:
        store = HistoryStore()
        store.append(entry("SELECT * FROM Users"))
        store.append(entry("SELECT * FROM orders"))

        assert [e.statement for e in store.search("users")] == ["SELECT * FROM Users"]
        assert store.search("nothing") == []

    def test_snapshot_is_independent(self) -> None:
        store = HistoryStore()
        store.append(entry("SELECT 1"))
        snapshot = store.entries()
        store.clear()

        assert len(snapshot) == 1
        assert store.last() is None

    def test_concurrent_appends(self) -> None:
        store = HistoryStore(max_entries=500)

        def worker(n: int) -> None:
            for i in range(100):
                store.append(entry(f"SELECT {n}, {i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 500


def test_entry_to_dict() -> None:
    item = entry(
        "SELECT 1",
        submitted_at=datetime(2024, 3, 1, 9, 30, 15, 500),
        row_count=1,
        elapsed=0.012,
        database="test",
    )

    assert item.succeeded
    assert item.to_dict() == {
        'statement': "SELECT 1",
        'status': "completed",
        'submitted_at': "2024-03-01T09:30:15",
        'row_count': 1,
        'elapsed': 0.012,
        'error_message': None,
        'database': "test",
    }
