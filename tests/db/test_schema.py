"""Tests for the lazily expanded schema tree."""

from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from sqlterm.db.connection import ConnectionManager
from sqlterm.db.engine import QueryEngine
from sqlterm.db.schema import ExpansionState, SchemaExplorer, SchemaNodeKind, sort_key
from sqlterm.exceptions import SchemaError, SchemaFailure


@pytest.fixture
def explorer(manager: ConnectionManager) -> SchemaExplorer:
    return SchemaExplorer(manager)


@pytest.fixture
def attached(manager: ConnectionManager, tmp_path: Path) -> ConnectionManager:
    """Attach a second database so the catalog has two schemas."""
    other = tmp_path / "other.db"
    conn = sqlite3.connect(other)
    conn.execute("CREATE TABLE audit_log (id INTEGER PRIMARY KEY, entry TEXT)")
    conn.commit()
    conn.close()
    with manager.lease() as connection:
        connection.exec_driver_sql(f"ATTACH DATABASE '{other}' AS other")
    return manager


def names(nodes):
    return [node.name for node in nodes]


class TestExpansion:

    def test_root_lists_schemas(self, explorer: SchemaExplorer) -> None:
        schemas = explorer.expand(explorer.root)

        assert names(schemas) == ["main"]
        assert schemas[0].kind is SchemaNodeKind.SCHEMA
        assert explorer.root.state is ExpansionState.EXPANDED

    def test_schema_lists_tables_and_views_alphabetically(self, explorer: SchemaExplorer) -> None:
        main = explorer.expand(explorer.root)[0]
        objects = explorer.expand(main)

        assert names(objects) == ["orders", "user_orders", "users"]
        assert [node.kind for node in objects] == [
            SchemaNodeKind.TABLE,
            SchemaNodeKind.VIEW,
            SchemaNodeKind.TABLE,
        ]
        assert all(node.parent == main.index for node in objects)

    def test_table_lists_columns(self, explorer: SchemaExplorer) -> None:
        users = explorer.find("main", "users")
        columns = {node.name: node for node in explorer.expand(users)}

        assert sorted(columns) == ["created_at", "email", "id", "name"]
        assert columns['id'].primary_key
        assert columns['name'].nullable is False
        assert columns['email'].nullable is True
        assert columns['name'].data_type == "TEXT"
        assert columns['id'].ordinal == 0

    def test_view_lists_columns(self, explorer: SchemaExplorer) -> None:
        view = explorer.find("main", "user_orders")

        assert names(explorer.expand(view)) == ["amount", "name", "status"]

    def test_leaf_nodes_are_known_empty(self, explorer: SchemaExplorer) -> None:
        column = explorer.find("main", "users", "email")
        fetches = explorer.fetch_count

        assert explorer.expand(column) == ()
        assert column.state is ExpansionState.EMPTY
        assert explorer.fetch_count == fetches

    def test_empty_schema(self, explorer: SchemaExplorer, manager: ConnectionManager, tmp_path: Path) -> None:
        with manager.lease() as connection:
            connection.exec_driver_sql(f"ATTACH DATABASE '{tmp_path / 'empty.db'}' AS empty")
        empty = explorer.find("empty")

        assert explorer.expand(empty) == ()
        assert empty.state is ExpansionState.EMPTY


class TestCaching:

    def test_second_expand_does_not_fetch(self, explorer: SchemaExplorer) -> None:
        first = explorer.expand(explorer.root)
        fetches = explorer.fetch_count

        second = explorer.expand(explorer.root)

        assert second == first
        assert all(a is b for a, b in zip(first, second))
        assert explorer.fetch_count == fetches

    def test_refresh_refetches(self, explorer: SchemaExplorer, manager: ConnectionManager) -> None:
        main = explorer.find("main")
        assert "audit" not in names(explorer.expand(main))

        with manager.lease() as connection:
            connection.exec_driver_sql("CREATE TABLE audit (id INTEGER)")
        assert "audit" not in names(explorer.expand(main))

        explorer.refresh(main)
        assert main.state is ExpansionState.NOT_EXPANDED
        assert "audit" in names(explorer.expand(main))


class TestErrors:
    """A failing node does not affect its siblings."""

    def test_error_is_attached_to_failing_node(
        self, attached: ConnectionManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        original = attached.adapter.get_procedure_names

        def failing(connection, schema):
            if schema == "other":
                raise OperationalError("SELECT", {}, Exception("permission denied for schema other"))
            return original(connection, schema)

        monkeypatch.setattr(attached.adapter, "get_procedure_names", failing)
        explorer = SchemaExplorer(attached)
        main, other = explorer.expand(explorer.root)

        assert explorer.expand(other) == ()
        assert other.state is ExpansionState.NOT_EXPANDED
        assert isinstance(other.error, SchemaError)
        assert other.error.kind is SchemaFailure.PERMISSION_DENIED

        assert names(explorer.expand(main)) == ["orders", "user_orders", "users"]
        assert main.error is None
        assert explorer.root.error is None

    def test_failed_node_can_be_retried(
        self, attached: ConnectionManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        explorer = SchemaExplorer(attached)
        other = explorer.find("other")
        def missing(connection, schema):
            raise OperationalError("SELECT", {}, Exception("no such schema"))

        monkeypatch.setattr(attached.adapter, "get_procedure_names", missing)
        explorer.expand(other)
        assert other.error.kind is SchemaFailure.NOT_FOUND

        monkeypatch.undo()
        assert names(explorer.expand(other)) == ["audit_log"]
        assert other.error is None

    def test_missing_table(self, explorer: SchemaExplorer) -> None:
        main = explorer.find("main")
        ghost = explorer.tree.add(SchemaNodeKind.TABLE, "ghost", parent=main.index, schema="main")

        explorer.expand(ghost)

        assert ghost.error is not None
        assert ghost.error.kind is SchemaFailure.NOT_FOUND


class TestNavigation:

    def test_sort_key_breaks_ties_by_kind(self) -> None:
        entries = [
            (SchemaNodeKind.PROCEDURE, "report"),
            (SchemaNodeKind.VIEW, "report"),
            (SchemaNodeKind.TABLE, "Report"),
            (SchemaNodeKind.TABLE, "accounts"),
        ]
        ordered = sorted(entries, key=lambda entry: sort_key(*entry))

        assert ordered == [
            (SchemaNodeKind.TABLE, "accounts"),
            (SchemaNodeKind.TABLE, "Report"),
            (SchemaNodeKind.VIEW, "report"),
            (SchemaNodeKind.PROCEDURE, "report"),
        ]

    def test_qualified_name(self, explorer: SchemaExplorer) -> None:
        column = explorer.find("main", "users", "email")

        assert explorer.qualified_name(column) == "main.users.email"
        assert explorer.qualified_name(explorer.tree.parent(column)) == "main.users"
        assert explorer.qualified_name(explorer.root) == explorer.root.name

    def test_find_missing(self, explorer: SchemaExplorer) -> None:
        assert explorer.find("main", "nope") is None

    def test_walk_yields_expanded_nodes_with_depth(self, explorer: SchemaExplorer) -> None:
        explorer.find("main", "orders")
        walked = [(node.name, depth) for node, depth in explorer.walk()]

        assert walked[0] == (explorer.root.name, 0)
        assert ("main", 1) in walked
        assert ("users", 2) in walked
        assert ("email", 3) not in walked

    def test_table_ddl(self, explorer: SchemaExplorer) -> None:
        ddl = explorer.table_ddl(explorer.find("main", "users"))

        assert ddl.startswith('CREATE TABLE "main"."users" (\n')
        assert '"name" TEXT NOT NULL' in ddl
        assert "PRIMARY KEY" in ddl
        assert ddl.index('"id"') < ddl.index('"name"') < ddl.index('"email"')
        assert ddl.endswith("\n);")

    def test_table_ddl_rejects_views(self, explorer: SchemaExplorer) -> None:
        with pytest.raises(SchemaError):
            explorer.table_ddl(explorer.find("main", "user_orders"))


class TestSearch:
    """Name search across every schema of the database."""

    def test_matches_tables_before_views(self, explorer: SchemaExplorer) -> None:
        matches = explorer.search("USER")

        assert [(node.name, node.kind) for node in matches] == [
            ("users", SchemaNodeKind.TABLE),
            ("user_orders", SchemaNodeKind.VIEW),
        ]

    def test_searches_every_schema(self, attached: ConnectionManager) -> None:
        explorer = SchemaExplorer(attached)

        assert [explorer.qualified_name(node) for node in explorer.search("o")] == [
            "main.orders",
            "other.audit_log",
            "main.user_orders",
        ]

    def test_columns_do_not_match(self, explorer: SchemaExplorer) -> None:
        assert explorer.search("email") == []

    def test_search_reuses_the_cache(self, explorer: SchemaExplorer) -> None:
        explorer.search("users")
        fetches = explorer.fetch_count

        assert names(explorer.search("orders")) == ["orders", "user_orders"]
        assert explorer.fetch_count == fetches

    def test_unreadable_schema_keeps_its_error(
        self, attached: ConnectionManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        original = attached.adapter.get_procedure_names

        def failing(connection, schema):
            if schema == "other":
                raise OperationalError("SELECT", {}, Exception("permission denied for schema other"))
            return original(connection, schema)

        monkeypatch.setattr(attached.adapter, "get_procedure_names", failing)
        explorer = SchemaExplorer(attached)

        assert names(explorer.search("u")) == ["users", "user_orders"]
        other = explorer.find("other")
        assert other.error.kind is SchemaFailure.PERMISSION_DENIED
        assert explorer.find("main").error is None


class TestRowCount:

    def test_counts_table_rows(self, explorer: SchemaExplorer) -> None:
        users = explorer.find("main", "users")

        assert explorer.row_count(users) == 3
        assert users.row_count == 3
        assert users.error is None

    def test_refresh_forgets_count(self, explorer: SchemaExplorer) -> None:
        orders = explorer.find("main", "orders")
        explorer.row_count(orders)

        explorer.refresh(orders)
        assert orders.row_count is None

    def test_rejects_views(self, explorer: SchemaExplorer) -> None:
        with pytest.raises(SchemaError):
            explorer.row_count(explorer.find("main", "user_orders"))

    def test_missing_table_attaches_error(self, explorer: SchemaExplorer) -> None:
        main = explorer.find("main")
        ghost = explorer.tree.add(SchemaNodeKind.TABLE, "ghost", parent=main.index, schema="main")

        assert explorer.row_count(ghost) is None
        assert ghost.error.kind is SchemaFailure.NOT_FOUND
        assert main.error is None


def test_expansion_queues_behind_running_query(manager: ConnectionManager, slow_sql) -> None:
    engine = QueryEngine(manager, fetch_size=500)
    explorer = SchemaExplorer(manager)
    try:
        slow = engine.submit(slow_sql(ms=50, rows=10))
        time.sleep(0.1)
        start = time.perf_counter()
        explorer.expand(explorer.root)
        waited = time.perf_counter() - start
        assert slow.wait(10)
    finally:
        engine.shutdown()

    assert waited >= 0.2
    assert names(explorer.tree.children(explorer.root)) == ["main"]


def test_cached_nodes_answer_while_an_expansion_waits(manager: ConnectionManager, slow_sql) -> None:
    engine = QueryEngine(manager, fetch_size=500)
    explorer = SchemaExplorer(manager)
    main = explorer.expand(explorer.root)[0]
    try:
        slow = engine.submit(slow_sql(ms=100, rows=10))
        time.sleep(0.1)
        pending = threading.Thread(target=explorer.expand, args=(main,))
        pending.start()
        time.sleep(0.1)

        start = time.perf_counter()
        cached = explorer.expand(explorer.root)
        waited = time.perf_counter() - start

        assert slow.wait(10)
        pending.join(10)
    finally:
        engine.shutdown()

    assert waited < 0.2
    assert names(cached) == ["main"]
    assert names(explorer.tree.children(main)) == ["orders", "user_orders", "users"]
