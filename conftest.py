from __future__ import annotations

import sqlite3
import time
from pathlib import Path

import pytest
from sqlalchemy import event

from sqlterm.config.models import DatabaseConfig, DatabaseType, SessionSettings, SQLTermConfig
from sqlterm.db.connection import ConnectionManager


def _sleep_ms(ms):
    time.sleep((ms or 0) / 1000.0)
    return ms


def register_sleep_function(engine) -> None:
    """Make ``sleep_ms(n)`` available on every SQLite connection of ``engine``."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("sleep_ms", 1, _sleep_ms)


# Returns 50 rows, each taking ``ms`` milliseconds.
def slow_query(ms: int = 100, rows: int = 50) -> str:
    return (
        f"WITH RECURSIVE r(i) AS (SELECT 1 UNION ALL SELECT i + 1 FROM r WHERE i < {rows}) "
        f"SELECT i, sleep_ms({ms}) AS slept FROM r"
    )


@pytest.fixture
def temp_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Provide a temporary directory."""
    return tmp_path_factory.mktemp("sqlterm")


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """SQLite database with a couple of tables and a view."""
    db_path = tmp_path / "sqlterm_test.db"
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            user_id INTEGER,
            amount REAL,
            status TEXT DEFAULT 'pending',
            FOREIGN KEY (user_id) REFERENCES users (id)
        );

        INSERT INTO users (name, email) VALUES
            ('Alice Johnson', 'alice@example.com'),
            ('Bob Smith', NULL),
            ('Carol "CJ" Davis', 'carol@example.com');

        INSERT INTO orders (user_id, amount, status) VALUES
            (1, 150.00, 'completed'),
            (1, 89.99, 'pending'),
            (2, 299.50, 'completed'),
            (3, 45.75, 'cancelled');

        CREATE VIEW user_orders AS
        SELECT u.name, o.amount, o.status
        FROM users u
        JOIN orders o ON u.id = o.user_id;
    """)
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def db_config(sqlite_db: Path) -> DatabaseConfig:
    return DatabaseConfig(type=DatabaseType.SQLITE, path=str(sqlite_db))


@pytest.fixture
def manager(db_config: DatabaseConfig):
    """Connection manager whose connections know ``sleep_ms``."""
    manager = ConnectionManager(db_config, name="test")
    register_sleep_function(manager.adapter.get_engine())
    yield manager
    manager.close()


@pytest.fixture
def sqlterm_config(sqlite_db: Path) -> SQLTermConfig:
    return SQLTermConfig(
        databases={'test': DatabaseConfig(type=DatabaseType.SQLITE, path=str(sqlite_db))},
        session=SessionSettings(fetch_size=2),
    )


@pytest.fixture
def config_file(sqlite_db: Path, tmp_path: Path) -> Path:
    """YAML configuration pointing at the test database."""
    path = tmp_path / "sqlterm.yaml"
    path.write_text(f"""
databases:
  test:
    type: sqlite
    path: {sqlite_db}

default_database: test

session:
  fetch_size: 100
  export_dir: {tmp_path / 'exports'}
""")
    return path


@pytest.fixture
def slow_sql():
    """Builder for statements that take a while on the ``manager`` fixture."""
    return slow_query
