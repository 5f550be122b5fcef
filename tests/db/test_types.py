"""Tests for value normalization."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pandas as pd
import pytest

from sqlterm.db.types import Cell, CellKind, TypeTag, format_calendar, infer_tag, normalize, tag_for_python_type


@pytest.mark.parametrize("marker", [None, pd.NA, pd.NaT, Cell.null()])
@pytest.mark.parametrize("declared", list(TypeTag))
def test_null_markers_normalize_to_null(marker, declared) -> None:
    cell = normalize(marker, declared)

    assert cell.is_null
    assert normalize(cell, declared) is cell


class TestScalars:
    """Numbers, text and booleans."""

    def test_integer(self) -> None:
        assert normalize(1) == Cell(CellKind.INTEGER, 1)

    def test_bool_is_not_integer(self) -> None:
        assert normalize(True) == Cell(CellKind.BOOLEAN, True)

    def test_integer_under_boolean_column(self) -> None:
        assert normalize(0, TypeTag.BOOLEAN) == Cell(CellKind.BOOLEAN, False)
        assert normalize(2, TypeTag.BOOLEAN).kind is CellKind.INTEGER

    def test_integer_under_decimal_column(self) -> None:
        cell = normalize(5, TypeTag.DECIMAL)
        assert cell.kind is CellKind.DECIMAL
        assert cell.text == "5"

    def test_decimal_keeps_scale(self) -> None:
        assert normalize(Decimal("12.50")).text == "12.50"

    def test_float_has_no_representation_noise(self) -> None:
        cell = normalize(0.1 + 0.2)
        assert cell.kind is CellKind.DECIMAL
        assert cell.text == "0.30000000000000004"
        assert normalize(89.99).text == "89.99"

    def test_text(self) -> None:
        assert normalize("hello") == Cell(CellKind.TEXT, "hello")
        assert normalize("").text == ""
        assert not normalize("").is_null

    def test_text_under_integer_column(self) -> None:
        assert normalize(" 42 ", TypeTag.INTEGER) == Cell(CellKind.INTEGER, 42)
        assert normalize("abc", TypeTag.INTEGER).kind is CellKind.UNKNOWN

    def test_text_under_decimal_column(self) -> None:
        assert normalize("1.10", TypeTag.DECIMAL).text == "1.10"

    def test_uuid_is_text(self) -> None:
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert normalize(value) == Cell(CellKind.TEXT, str(value))


class TestCalendar:
    """Dates and times render in one normalized form."""

    def test_date(self) -> None:
        assert normalize(date(2024, 3, 1)).text == "2024-03-01"

    def test_datetime_without_fraction(self) -> None:
        assert normalize(datetime(2024, 3, 1, 14, 5, 9)).text == "2024-03-01 14:05:09"

    def test_datetime_fraction_is_trimmed(self) -> None:
        assert normalize(datetime(2024, 3, 1, 14, 5, 9, 120000)).text == "2024-03-01 14:05:09.12"

    def test_datetime_with_offset(self) -> None:
        value = datetime(2024, 3, 1, 14, 5, 9, tzinfo=timezone(timedelta(hours=-5, minutes=-30)))
        assert normalize(value).text == "2024-03-01 14:05:09-05:30"

    def test_time(self) -> None:
        assert normalize(time(8, 30)).text == "08:30:00"

    def test_datetime_under_date_column(self) -> None:
        assert normalize(datetime(2024, 3, 1, 10, 0), TypeTag.DATE).text == "2024-03-01"

    def test_timedelta_under_time_column(self) -> None:
        assert normalize(timedelta(hours=1, minutes=2, seconds=3), TypeTag.TIME).text == "01:02:03"

    def test_iso_text_under_datetime_column(self) -> None:
        cell = normalize("2024-03-01T14:05:09", TypeTag.DATETIME)
        assert cell.kind is CellKind.DATETIME
        assert cell.text == "2024-03-01 14:05:09"

    def test_garbage_text_under_date_column(self) -> None:
        cell = normalize("not a date", TypeTag.DATE)
        assert cell.kind is CellKind.UNKNOWN
        assert cell.text == "not a date"

    def test_format_calendar_rejects_other_values(self) -> None:
        with pytest.raises(TypeError):
            format_calendar("2024-01-01")


class TestBinaryAndUnknown:

    def test_binary_renders_as_hex(self) -> None:
        cell = normalize(b"\x00\xffA")
        assert cell.kind is CellKind.BINARY
        assert cell.text == "0x00FF41"
        assert normalize(memoryview(b"\x01")).text == "0x01"

    def test_unmapped_value_never_raises(self) -> None:
        class Odd:
            def __str__(self) -> str:
                return "odd value"

        cell = normalize(Odd())
        assert cell.kind is CellKind.UNKNOWN
        assert cell.text == "odd value"

    def test_unprintable_value_never_raises(self) -> None:
        class Broken:
            def __str__(self) -> str:
                raise RuntimeError("boom")

        cell = normalize(Broken())
        assert cell.kind is CellKind.UNKNOWN
        assert cell.text == "<Broken>"


def test_display_uses_null_text() -> None:
    assert Cell.null().display() == "NULL"
    assert Cell.null().display("") == ""
    assert Cell.null().text == ""
    assert str(normalize(True)) == "true"


def test_type_tags() -> None:
    assert tag_for_python_type(bool) is TypeTag.BOOLEAN
    assert tag_for_python_type(int) is TypeTag.INTEGER
    assert tag_for_python_type(datetime) is TypeTag.DATETIME
    assert tag_for_python_type(date) is TypeTag.DATE
    assert tag_for_python_type(dict) is TypeTag.UNKNOWN
    assert infer_tag(normalize(date(2024, 1, 1))) is TypeTag.DATE
    assert infer_tag(Cell.null()) is None
    assert TypeTag.INTEGER.accepts(Cell.null())
    assert not TypeTag.INTEGER.accepts(normalize("x"))
