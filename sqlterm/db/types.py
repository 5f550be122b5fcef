"""Normalization of driver values into display-stable cells.

Every value a driver hands back passes through :func:`normalize` exactly once,
so date, decimal and binary quirks of the individual drivers stay confined to
this module. The result is a :class:`Cell` whose kind is one of a closed set.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Type

import pandas as pd

logger = logging.getLogger(__name__)


class CellKind(str, Enum):
    """Closed set of cell variants."""
    NULL = "null"
    INTEGER = "integer"
    DECIMAL = "decimal"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    BINARY = "binary"
    UNKNOWN = "unknown"


class TypeTag(str, Enum):
    """Declared column type, as far as the driver tells us."""
    INTEGER = "integer"
    DECIMAL = "decimal"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BINARY = "binary"
    UNKNOWN = "unknown"

    @property
    def cell_kind(self) -> Optional[CellKind]:
        """Cell kind accepted by columns of this type (None accepts any)."""
        return _TAG_KINDS.get(self)

    def accepts(self, cell: "Cell") -> bool:
        """Whether ``cell`` is consistent with a column of this type."""
        if cell.is_null or self is TypeTag.UNKNOWN:
            return True
        return cell.kind is self.cell_kind


_TAG_KINDS = {
    TypeTag.INTEGER: CellKind.INTEGER,
    TypeTag.DECIMAL: CellKind.DECIMAL,
    TypeTag.TEXT: CellKind.TEXT,
    TypeTag.BOOLEAN: CellKind.BOOLEAN,
    TypeTag.DATE: CellKind.DATETIME,
    TypeTag.DATETIME: CellKind.DATETIME,
    TypeTag.TIME: CellKind.DATETIME,
    TypeTag.BINARY: CellKind.BINARY,
}

_CALENDAR_TAGS = (TypeTag.DATE, TypeTag.DATETIME, TypeTag.TIME)


def format_calendar(value: Any) -> str:
    """Render a date, datetime or time in the normalized calendar form.

    ``YYYY-MM-DD``, ``YYYY-MM-DD HH:MM:SS[.fraction][+HH:MM]`` and
    ``HH:MM:SS[.fraction]``. The fraction is only present when non-zero and
    has its trailing zeros trimmed.
    """
    if isinstance(value, datetime):
        text = value.strftime("%Y-%m-%d %H:%M:%S") + _fraction(value.microsecond)
        return text + _offset(value)
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S") + _fraction(value.microsecond)
    raise TypeError(f"Not a calendar value: {value!r}")


def _fraction(microsecond: int) -> str:
    if not microsecond:
        return ""
    return "." + f"{microsecond:06d}".rstrip("0")


def _offset(value: datetime) -> str:
    offset = value.utcoffset()
    if offset is None:
        return ""
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


@dataclass(frozen=True)
class Cell:
    """One normalized value at a row/column intersection."""

    kind: CellKind
    value: Any = None

    @classmethod
    def null(cls) -> "Cell":
        return _NULL

    @property
    def is_null(self) -> bool:
        return self.kind is CellKind.NULL

    @property
    def text(self) -> str:
        """Display-stable rendering; empty for NULL."""
        if self.kind is CellKind.NULL:
            return ""
        if self.kind is CellKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind is CellKind.DATETIME:
            return format_calendar(self.value)
        if self.kind is CellKind.BINARY:
            return "0x" + self.value.hex().upper()
        return str(self.value)

    def display(self, null_text: str = "NULL") -> str:
        """Rendering used by the result table."""
        return null_text if self.is_null else self.text

    def __str__(self) -> str:
        return self.display()


_NULL = Cell(CellKind.NULL)


def is_null_marker(value: Any) -> bool:
    """Whether ``value`` is one of the NULL representations drivers produce."""
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    if isinstance(value, Cell):
        return value.is_null
    return False


def normalize(raw: Any, declared: TypeTag = TypeTag.UNKNOWN) -> Cell:
    """Convert a driver value into a :class:`Cell`.

    Never raises: values without a mapping become ``UNKNOWN`` cells carrying
    a best-effort text rendering.
    """
    if is_null_marker(raw):
        return _NULL
    if isinstance(raw, Cell):
        return raw

    try:
        return _convert(raw, declared)
    except Exception as e:  # malformed values degrade instead of aborting the query
        logger.debug(f"Falling back to UNKNOWN for {type(raw).__name__} value: {e}")
        return Cell(CellKind.UNKNOWN, _best_effort_text(raw))


def _convert(raw: Any, declared: TypeTag) -> Cell:
    # bool is an int subclass, check it first
    if isinstance(raw, bool):
        return Cell(CellKind.BOOLEAN, raw)

    if isinstance(raw, int):
        if declared is TypeTag.BOOLEAN and raw in (0, 1):
            return Cell(CellKind.BOOLEAN, bool(raw))
        if declared is TypeTag.DECIMAL:
            return Cell(CellKind.DECIMAL, Decimal(raw))
        return Cell(CellKind.INTEGER, raw)

    if isinstance(raw, Decimal):
        return Cell(CellKind.DECIMAL, raw)

    if isinstance(raw, float):
        # repr gives the shortest string that round-trips, no extra digits
        return Cell(CellKind.DECIMAL, Decimal(repr(raw)) if math.isfinite(raw) else Decimal(str(raw)))

    if isinstance(raw, (datetime, date, time)):
        return Cell(CellKind.DATETIME, _coerce_calendar(raw, declared))

    if isinstance(raw, timedelta):
        # MySQL drivers hand TIME columns back as durations
        if declared is TypeTag.TIME and timedelta(0) <= raw < timedelta(days=1):
            return Cell(CellKind.DATETIME, (datetime.min + raw).time())
        return Cell(CellKind.UNKNOWN, str(raw))

    if isinstance(raw, (bytes, bytearray, memoryview)):
        return Cell(CellKind.BINARY, bytes(raw))

    if isinstance(raw, uuid.UUID):
        return Cell(CellKind.TEXT, str(raw))

    if isinstance(raw, str):
        return _from_text(raw, declared)

    return Cell(CellKind.UNKNOWN, _best_effort_text(raw))


def _coerce_calendar(value: Any, declared: TypeTag) -> Any:
    if declared is TypeTag.DATE and isinstance(value, datetime):
        return value.date()
    if declared is TypeTag.TIME and isinstance(value, datetime):
        return value.time()
    return value


def _from_text(raw: str, declared: TypeTag) -> Cell:
    if declared in _CALENDAR_TAGS:
        parsed = _parse_calendar(raw, declared)
        if parsed is not None:
            return Cell(CellKind.DATETIME, parsed)
        return Cell(CellKind.UNKNOWN, raw)

    if declared is TypeTag.DECIMAL:
        try:
            return Cell(CellKind.DECIMAL, Decimal(raw.strip()))
        except InvalidOperation:
            return Cell(CellKind.UNKNOWN, raw)

    if declared is TypeTag.INTEGER:
        try:
            return Cell(CellKind.INTEGER, int(raw.strip()))
        except ValueError:
            return Cell(CellKind.UNKNOWN, raw)

    return Cell(CellKind.TEXT, raw)


def _parse_calendar(raw: str, declared: TypeTag) -> Any:
    text = raw.strip()
    try:
        if declared is TypeTag.TIME:
            return time.fromisoformat(text)
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if declared is TypeTag.DATE:
        return parsed.date()
    return parsed


def _best_effort_text(raw: Any) -> str:
    try:
        return str(raw)
    except Exception:
        return f"<{type(raw).__name__}>"


_PYTHON_TYPE_TAGS = (
    (bool, TypeTag.BOOLEAN),
    (int, TypeTag.INTEGER),
    (Decimal, TypeTag.DECIMAL),
    (float, TypeTag.DECIMAL),
    (datetime, TypeTag.DATETIME),
    (date, TypeTag.DATE),
    (time, TypeTag.TIME),
    (str, TypeTag.TEXT),
    (uuid.UUID, TypeTag.TEXT),
    (bytes, TypeTag.BINARY),
    (bytearray, TypeTag.BINARY),
    (memoryview, TypeTag.BINARY),
)


def tag_for_python_type(py_type: Type) -> TypeTag:
    """Map a Python type (pyodbc-style ``type_code``) to a type tag."""
    for candidate, tag in _PYTHON_TYPE_TAGS:
        if issubclass(py_type, candidate):
            return tag
    return TypeTag.UNKNOWN


def infer_tag(cell: Cell) -> Optional[TypeTag]:
    """Type tag implied by a cell, or None for NULL cells."""
    if cell.is_null:
        return None
    if cell.kind is CellKind.DATETIME:
        if isinstance(cell.value, datetime):
            return TypeTag.DATETIME
        if isinstance(cell.value, date):
            return TypeTag.DATE
        return TypeTag.TIME
    return {
        CellKind.INTEGER: TypeTag.INTEGER,
        CellKind.DECIMAL: TypeTag.DECIMAL,
        CellKind.TEXT: TypeTag.TEXT,
        CellKind.BOOLEAN: TypeTag.BOOLEAN,
        CellKind.BINARY: TypeTag.BINARY,
    }.get(cell.kind, TypeTag.UNKNOWN)
