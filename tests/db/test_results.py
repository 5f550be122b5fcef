"""Tests for result set building."""

from __future__ import annotations

from decimal import Decimal

import pytest

from sqlterm.db.results import ResultSetBuilder, disambiguate
from sqlterm.db.types import Cell, CellKind, TypeTag


class TestDisambiguate:

    def test_unique_names_unchanged(self) -> None:
        assert disambiguate(["a", "b"]) == ["a", "b"]

    def test_duplicates_numbered_by_position(self) -> None:
        assert disambiguate(["id", "id", "id"]) == ["id", "id_2", "id_3"]

    def test_generated_key_skips_taken_names(self) -> None:
        assert disambiguate(["a", "a", "a_2"]) == ["a", "a_3", "a_2"]

    def test_empty_names(self) -> None:
        assert disambiguate(["", "x", ""]) == ["column_1", "x", "column_3"]


class TestResultSetBuilder:

    def test_display_names_preserved(self) -> None:
        builder = ResultSetBuilder("SELECT 1 AS n, 2 AS n", ["n", "n"])
        builder.add_row((1, 2))
        result = builder.build(elapsed=0.01)

        assert [c.name for c in result.columns] == ["n", "n"]
        assert [c.key for c in result.columns] == ["n", "n_2"]
        assert [c.ordinal for c in result.columns] == [0, 1]

    def test_type_inferred_from_first_value(self) -> None:
        builder = ResultSetBuilder("q", ["a", "b"])
        builder.add_rows([(None, "x"), (1, "y")])
        result = builder.build(elapsed=0)

        assert result.columns[0].type_tag is TypeTag.INTEGER
        assert result.columns[1].type_tag is TypeTag.TEXT

    def test_integer_column_widens_to_decimal(self) -> None:
        builder = ResultSetBuilder("q", ["amount"])
        builder.add_rows([(1,), (Decimal("2.5"),)])
        result = builder.build(elapsed=0)

        assert result.columns[0].type_tag is TypeTag.DECIMAL
        assert [cell.kind for cell in result.column_values(0)] == [CellKind.DECIMAL, CellKind.DECIMAL]

    def test_conflicting_kinds_widen_to_unknown(self) -> None:
        builder = ResultSetBuilder("q", ["mixed"])
        builder.add_rows([("a",), (1,)])
        result = builder.build(elapsed=0)

        assert result.columns[0].type_tag is TypeTag.UNKNOWN
        for cell in result.column_values(0):
            assert result.columns[0].type_tag.accepts(cell)

    def test_declared_types_are_used(self) -> None:
        builder = ResultSetBuilder("q", ["flag"], [(TypeTag.BOOLEAN, "BIT", False)])
        builder.add_row((1,))
        result = builder.build(elapsed=0)

        assert result.cell(0, 0) == Cell(CellKind.BOOLEAN, True)
        assert result.columns[0].display_type == "BIT"
        assert result.columns[0].nullable is False

    def test_null_makes_column_nullable(self) -> None:
        builder = ResultSetBuilder("q", ["v"], [(TypeTag.INTEGER, "INT", False)])
        builder.add_rows([(1,), (None,)])
        result = builder.build(elapsed=0)

        assert result.columns[0].nullable is True

    def test_short_rows_are_padded(self) -> None:
        builder = ResultSetBuilder("q", ["a", "b"])
        builder.add_row((1,))
        result = builder.build(elapsed=0)

        assert result.cell(0, 1).is_null


class TestResultSet:

    @pytest.fixture
    def result(self):
        builder = ResultSetBuilder("SELECT name, email FROM users", ["name", "email"])
        builder.add_rows([("Alice", "alice@example.com"), ("Bob", None)])
        return builder.build(elapsed=0.25)

    def test_counts(self, result) -> None:
        assert result.row_count == 2
        assert result.column_count == 2
        assert result.returns_rows
        assert not result.is_empty

    def test_is_immutable(self, result) -> None:
        with pytest.raises(AttributeError):
            result.rows = ()

    def test_column_widths(self, result) -> None:
        assert result.column_widths() == [5, 17]

    def test_stats(self, result) -> None:
        stats = result.stats()

        assert stats['row_count'] == 2
        assert stats['null_counts'] == {'name': 0, 'email': 1}
        assert stats['elapsed_seconds'] == 0.25

    def test_statement_without_rows(self) -> None:
        result = ResultSetBuilder("DELETE FROM users", []).build(elapsed=0, affected_rows=3)

        assert not result.returns_rows
        assert result.affected_rows == 3
