"""Result set model: immutable snapshots of completed executions."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlterm.db.types import Cell, CellKind, TypeTag, infer_tag, normalize


@dataclass(frozen=True)
class ColumnDescriptor:
    """Metadata for one result column.

    ``name`` is what the server sent and may repeat or be empty; ``key`` is
    unique within the result and is what structured exports use.
    """
    name: str
    key: str
    ordinal: int
    type_tag: TypeTag = TypeTag.UNKNOWN
    type_name: str = ""
    nullable: bool = True

    @property
    def display_type(self) -> str:
        return self.type_name or self.type_tag.value.upper()


Row = Tuple[Cell, ...]


@dataclass(frozen=True)
class ResultSet:
    """Rows and column metadata of one completed execution."""
    statement: str
    columns: Tuple[ColumnDescriptor, ...]
    rows: Tuple[Row, ...]
    elapsed: float = 0.0
    affected_rows: Optional[int] = None
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def returns_rows(self) -> bool:
        return bool(self.columns)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def cell(self, row: int, column: int) -> Cell:
        return self.rows[row][column]

    def column_values(self, ordinal: int) -> List[Cell]:
        return [row[ordinal] for row in self.rows]

    def column_widths(self, minimum: int = 4, null_text: str = "NULL") -> List[int]:
        """Display width of every column: header or widest rendered cell."""
        widths = [max(minimum, len(column.name)) for column in self.columns]
        for row in self.rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell.display(null_text)))
        return widths

    def stats(self) -> Dict[str, Any]:
        """Execution statistics shown by the stats view."""
        null_counts = {column.key: 0 for column in self.columns}
        for row in self.rows:
            for column, cell in zip(self.columns, row):
                if cell.is_null:
                    null_counts[column.key] += 1
        return {
            'statement': self.statement,
            'row_count': self.row_count,
            'column_count': self.column_count,
            'affected_rows': self.affected_rows,
            'elapsed_seconds': self.elapsed,
            'completed_at': self.completed_at.isoformat(timespec='seconds'),
            'null_counts': null_counts,
        }


def disambiguate(names: Sequence[str]) -> List[str]:
    """Unique keys for possibly duplicate or empty column names, by position.

    The first occurrence keeps its name, later ones get ``_2``, ``_3`` and so
    on; empty names become ``column_<position>``.
    """
    taken = {name for name in names if name}
    seen: Dict[str, int] = {}
    keys = []
    for position, name in enumerate(names, start=1):
        if not name:
            base, candidate = f"column_{position}", f"column_{position}"
        elif name not in seen:
            seen[name] = 1
            keys.append(name)
            continue
        else:
            base, candidate = name, None

        count = seen.get(base, 1)
        while candidate is None or candidate in taken or candidate in keys:
            count += 1
            candidate = f"{base}_{count}"
        seen[base] = count
        keys.append(candidate)
    return keys


class ResultSetBuilder:
    """Accumulates normalized rows as they stream from the driver.

    Columns whose type the driver did not report are typed from their first
    non-NULL value. A column that turns out to hold values of another kind
    is widened (INTEGER to DECIMAL, anything else to UNKNOWN) so every cell
    stays consistent with its column.
    """

    def __init__(
        self,
        statement: str,
        names: Sequence[str],
        declared: Optional[Sequence[Tuple[TypeTag, str, Optional[bool]]]] = None,
    ) -> None:
        self.statement = statement
        keys = disambiguate(list(names))
        declared = declared or [(TypeTag.UNKNOWN, "", None)] * len(names)
        self._declared = [tag for tag, _, _ in declared]
        self._columns = [
            ColumnDescriptor(
                name=name,
                key=key,
                ordinal=i,
                type_tag=tag,
                type_name=type_name,
                nullable=True if nullable is None else bool(nullable),
            )
            for i, (name, key, (tag, type_name, nullable)) in enumerate(zip(names, keys, declared))
        ]
        self._inferred = [tag is not TypeTag.UNKNOWN for tag in self._declared]
        self._rows: List[Row] = []

    @property
    def row_count(self) -> int:
        return len(self._rows)

    def add_row(self, raw_row: Iterable[Any]) -> Row:
        values = list(raw_row)
        # short rows are padded with NULL so cells stay aligned with columns
        cells = tuple(
            normalize(values[i] if i < len(values) else None, self._declared[i])
            for i in range(len(self._columns))
        )
        for i, cell in enumerate(cells):
            self._observe(i, cell)
        self._rows.append(cells)
        return cells

    def add_rows(self, raw_rows: Iterable[Iterable[Any]]) -> None:
        for raw_row in raw_rows:
            self.add_row(raw_row)

    def _observe(self, i: int, cell: Cell) -> None:
        column = self._columns[i]
        if cell.is_null:
            if not column.nullable:
                self._columns[i] = replace(column, nullable=True)
            return
        if not self._inferred[i]:
            self._inferred[i] = True
            self._columns[i] = replace(column, type_tag=infer_tag(cell) or TypeTag.UNKNOWN)
            return
        if column.type_tag.accepts(cell):
            return
        if column.type_tag is TypeTag.INTEGER and cell.kind is CellKind.DECIMAL:
            widened = TypeTag.DECIMAL
        else:
            widened = TypeTag.UNKNOWN
        self._columns[i] = replace(column, type_tag=widened)

    def build(self, elapsed: float, affected_rows: Optional[int] = None) -> ResultSet:
        rows = tuple(self._rows)
        columns = tuple(self._columns)
        if any(column.type_tag is TypeTag.DECIMAL for column in columns):
            rows = tuple(_promote_integers(row, columns) for row in rows)
        return ResultSet(
            statement=self.statement,
            columns=columns,
            rows=rows,
            elapsed=elapsed,
            affected_rows=affected_rows,
        )


def _promote_integers(row: Row, columns: Sequence[ColumnDescriptor]) -> Row:
    return tuple(
        normalize(cell.value, TypeTag.DECIMAL)
        if column.type_tag is TypeTag.DECIMAL and cell.kind is CellKind.INTEGER
        else cell
        for cell, column in zip(row, columns)
    )
