"""Tests for CLI commands."""

import re
from pathlib import Path

import pytest
from click.testing import CliRunner

from sqlterm.cli.main import cli
from sqlterm.cli.utils import MAX_CELL_WIDTH, data_table
from sqlterm.db.results import ResultSetBuilder


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    ansi_escape = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')
    return ansi_escape.sub('', text)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, config_file: Path):
    """Invoke the CLI against the test configuration."""
    def _invoke(*args, input=None):
        return runner.invoke(cli, ['--config', str(config_file), *args], input=input)
    return _invoke


class TestCLIBasic:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ['--help'])
        assert result.exit_code == 0
        assert 'SQLTerm' in result.output
        assert 'query' in result.output

    def test_cli_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert 'SQLTerm v' in result.output

    def test_cli_dashboard_default(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert 'sqlterm shell' in strip_ansi(result.output)

    def test_missing_config_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ['--config', str(tmp_path / 'nope.yaml'), 'query', 'SELECT 1'])
        assert result.exit_code != 0


class TestQueryCommand:

    def test_select(self, invoke) -> None:
        result = invoke('query', 'SELECT name FROM users ORDER BY id')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'Alice Johnson' in output
        assert 'NULL' not in output
        assert '3 row(s)' in output

    def test_null_is_shown(self, invoke) -> None:
        result = invoke('query', 'SELECT email FROM users WHERE id = 2')

        assert result.exit_code == 0
        assert 'NULL' in strip_ansi(result.output)

    def test_max_rows(self, invoke) -> None:
        result = invoke('query', 'SELECT id FROM users', '--max-rows', '1')

        assert result.exit_code == 0
        assert 'showing 1' in strip_ansi(result.output)

    def test_columns_view(self, invoke) -> None:
        result = invoke('query', 'SELECT id, name FROM users', '--view', 'columns')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'Nullable' in output
        assert 'name' in output

    def test_statement_without_rows(self, invoke) -> None:
        result = invoke('query', "UPDATE orders SET status = 'done' WHERE user_id = 1")

        assert result.exit_code == 0
        assert '2 rows affected' in strip_ansi(result.output)

    def test_failure_exit_code(self, invoke) -> None:
        result = invoke('query', 'SELEC 1')

        assert result.exit_code == 1
        assert 'Query Failed' in strip_ansi(result.output)

    def test_export(self, invoke, tmp_path: Path) -> None:
        out_dir = tmp_path / 'out'
        result = invoke('query', 'SELECT id, name FROM users', '--export', 'csv', '--output-dir', str(out_dir))

        assert result.exit_code == 0
        assert 'Exported to' in strip_ansi(result.output)
        files = list(out_dir.glob('export_*.csv'))
        assert len(files) == 1
        assert files[0].read_text(encoding='utf-8').splitlines()[0] == 'id,name'

    def test_unknown_database(self, invoke) -> None:
        result = invoke('query', 'SELECT 1', '-d', 'missing')

        assert result.exit_code == 1
        assert 'Configuration Error' in strip_ansi(result.output)


class TestSchemaCommand:

    def test_tree(self, invoke) -> None:
        result = invoke('schema')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'main' in output
        assert 'users' in output
        assert 'user_orders' in output

    def test_expand_table(self, invoke) -> None:
        result = invoke('schema', 'main.users')

        assert result.exit_code == 0
        assert 'email' in strip_ansi(result.output)

    def test_ddl(self, invoke) -> None:
        result = invoke('schema', '--ddl', 'main.users')

        assert result.exit_code == 0
        assert 'CREATE TABLE "main"."users" (' in result.output

    def test_ddl_missing_table(self, invoke) -> None:
        result = invoke('schema', '--ddl', 'main.ghost')

        assert result.exit_code == 1
        assert 'Table not found' in strip_ansi(result.output)

    def test_search(self, invoke) -> None:
        result = invoke('schema', '--search', 'user')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert '2 matches' in output
        assert output.index('users') < output.index('user_orders')

    def test_row_count(self, invoke) -> None:
        result = invoke('schema', '--count', 'main.orders')

        assert result.exit_code == 0
        assert 'main.orders: 4 rows' in strip_ansi(result.output)

    def test_row_count_of_view_fails(self, invoke) -> None:
        result = invoke('schema', '--count', 'main.user_orders')

        assert result.exit_code == 1
        assert 'not a table' in strip_ansi(result.output)


class TestDatabaseCommands:

    def test_connection_test(self, invoke) -> None:
        result = invoke('db', 'test')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'Login' in output
        assert 'FAILED' not in output

    def test_info(self, invoke) -> None:
        result = invoke('db', 'info')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'SQLite' in output
        assert 'sqlite3' in output


class TestShellCommand:

    def test_query_then_history(self, invoke) -> None:
        result = invoke('shell', input='SELECT 1 AS x\n\\history\n\\q\n')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'completed' in output
        assert 'SELECT 1 AS x' in output

    def test_error_does_not_end_shell(self, invoke) -> None:
        result = invoke('shell', input='SELEC 1\nSELECT 42 AS answer\n')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'Error (' in output
        assert '42' in output

    def test_meta_commands(self, invoke) -> None:
        result = invoke('shell', input='\\stats\nSELECT id FROM users\n\\stats\n\\bogus\n\\help\n')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert 'No results yet' in output
        assert 'Rows:' in output
        assert 'Unknown command' in output
        assert '\\history' in output

    def test_find(self, invoke) -> None:
        result = invoke('shell', input='\\find ORDER\n\\find\n')
        output = strip_ansi(result.output)

        assert result.exit_code == 0
        assert '2 matches' in output
        assert 'user_orders' in output
        assert 'Usage' in output

    def test_export(self, invoke, config_file: Path) -> None:
        result = invoke('shell', input='SELECT id FROM users\n\\export json\n')

        assert result.exit_code == 0
        exports = list((config_file.parent / 'exports').glob('export_*.json'))
        assert len(exports) == 1


class TestRendering:
    """Result tables sized from their contents."""

    @pytest.fixture
    def result_set(self):
        builder = ResultSetBuilder("SELECT id, note FROM notes", ["id", "note"])
        builder.add_rows([(1, "short"), (2, "x" * 100), (3, None)])
        return builder.build(elapsed=0.01)

    def test_columns_sized_to_widest_value(self, result_set) -> None:
        table = data_table(result_set)

        assert [column.min_width for column in table.columns] == [4, MAX_CELL_WIDTH]
        assert table.row_count == 3

    def test_long_values_are_truncated(self, result_set) -> None:
        table = data_table(result_set, max_rows=2)
        long_cell = list(table.columns[1].cells)[1]

        assert table.row_count == 2
        assert long_cell == "x" * (MAX_CELL_WIDTH - 3) + "..."
