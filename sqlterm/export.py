"""Export of result sets to CSV, JSON and INSERT statements."""

import csv
import json
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pandas as pd

from sqlterm.db.results import ResultSet
from sqlterm.db.types import Cell, CellKind
from sqlterm.exceptions import ExportError, ExportFailure

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "exported_rows"


class ExportFormat(str, Enum):
    """Supported export formats."""
    CSV = "csv"
    JSON = "json"
    INSERT = "insert"

    @property
    def extension(self) -> str:
        return {"csv": "csv", "json": "json", "insert": "sql"}[self.value]

    @classmethod
    def parse(cls, value: Union[str, "ExportFormat"]) -> "ExportFormat":
        """Resolve a format name.

        Raises:
            ExportError: If the name is not a supported format.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            supported = ", ".join(fmt.value for fmt in cls)
            raise ExportError(
                f"Unsupported export format: {value}. Supported formats: {supported}",
                ExportFailure.UNSUPPORTED_FORMAT,
            ) from None


_ALIASES = {
    "sql": "insert",
    "inserts": "insert",
    "structured": "json",
}


def double_quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def export(
    result_set: ResultSet,
    format: Union[str, ExportFormat],
    encoding: str = "utf-8",
    table_name: str = DEFAULT_TABLE_NAME,
    quote_identifier: Callable[[str], str] = double_quote,
) -> bytes:
    """Serialize a result set.

    Args:
        result_set: Result set to export; it is not modified.
        format: ``csv``, ``json`` or ``insert``.
        encoding: Output encoding.
        table_name: Target table of INSERT statements.
        quote_identifier: Quoting applied to table and column names in
            INSERT statements.

    Returns:
        The encoded export.

    Raises:
        ExportError: If the format is unknown or a value cannot be encoded.
    """
    export_format = ExportFormat.parse(format)
    if export_format is ExportFormat.CSV:
        text = to_csv(result_set)
    elif export_format is ExportFormat.JSON:
        text = to_json(result_set)
    else:
        text = to_insert_statements(result_set, table_name, quote_identifier)

    try:
        return text.encode(encoding)
    except UnicodeEncodeError as e:
        raise ExportError(
            f"Cannot encode {export_format.value} export as {encoding}: {e.reason}",
            ExportFailure.ENCODING_FAILURE,
            details={'encoding': encoding, 'position': e.start},
        ) from e
    except LookupError as e:
        raise ExportError(
            f"Unknown encoding: {encoding}",
            ExportFailure.ENCODING_FAILURE,
            details={'encoding': encoding},
        ) from e


def to_csv(result_set: ResultSet) -> str:
    """Header of column names, then one record per row; NULL is an empty field."""
    if not result_set.returns_rows:
        return ""
    names = [column.name for column in result_set.columns]
    data = [[None if cell.is_null else cell.text for cell in row] for row in result_set.rows]
    df = pd.DataFrame(data, columns=names, dtype=object)
    return df.to_csv(index=False, na_rep="", quoting=csv.QUOTE_MINIMAL, lineterminator="\n")


def to_json(result_set: ResultSet) -> str:
    """Columns and rows as a JSON document; NULL stays ``null``."""
    document = {
        'columns': [
            {
                'name': column.name,
                'key': column.key,
                'type': column.type_tag.value,
                'nullable': column.nullable,
            }
            for column in result_set.columns
        ],
        'rows': [
            {column.key: _json_value(cell) for column, cell in zip(result_set.columns, row)}
            for row in result_set.rows
        ],
    }
    if not result_set.returns_rows:
        document['affected_rows'] = result_set.affected_rows
    return json.dumps(document, indent=2, ensure_ascii=False)


def _json_value(cell: Cell) -> Any:
    if cell.is_null:
        return None
    if cell.kind in (CellKind.INTEGER, CellKind.BOOLEAN):
        return cell.value
    # decimals stay strings so no precision is lost to floats
    return cell.text


def to_insert_statements(
    result_set: ResultSet,
    table_name: str = DEFAULT_TABLE_NAME,
    quote_identifier: Callable[[str], str] = double_quote,
) -> str:
    """One ``INSERT`` statement per row."""
    if not result_set.returns_rows:
        return ""
    target = ".".join(quote_identifier(part) for part in table_name.split("."))
    column_list = ", ".join(quote_identifier(column.name) for column in result_set.columns)
    statements = [
        f"INSERT INTO {target} ({column_list}) VALUES ({', '.join(sql_literal(cell) for cell in row)});"
        for row in result_set.rows
    ]
    return "\n".join(statements) + ("\n" if statements else "")


def sql_literal(cell: Cell) -> str:
    """Render a cell as a SQL literal."""
    if cell.is_null:
        return "NULL"
    if cell.kind is CellKind.INTEGER:
        return str(cell.value)
    if cell.kind is CellKind.DECIMAL:
        value: Decimal = cell.value
        if value.is_finite():
            return cell.text
        return _quote(cell.text)
    if cell.kind is CellKind.BOOLEAN:
        return "1" if cell.value else "0"
    if cell.kind is CellKind.BINARY:
        return cell.text
    return _quote(cell.text)


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def export_filename(format: Union[str, ExportFormat], when: Optional[datetime] = None) -> str:
    """``export_YYYYmmdd_HHMMSS.<ext>``."""
    export_format = ExportFormat.parse(format)
    stamp = (when or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"export_{stamp}.{export_format.extension}"


def write_export(
    result_set: ResultSet,
    format: Union[str, ExportFormat],
    directory: Union[str, Path] = ".",
    **options: Any,
) -> Path:
    """Export a result set to a timestamped file in ``directory``.

    Returns:
        Path of the written file.

    Raises:
        ExportError: If the export cannot be produced or written.
    """
    payload = export(result_set, format, **options)
    output_dir = Path(directory)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / export_filename(format)
        output_path.write_bytes(payload)
    except OSError as e:
        raise ExportError(
            f"Cannot write export to {output_dir}: {e}",
            ExportFailure.WRITE_FAILURE,
            details={'directory': str(output_dir)},
        ) from e

    logger.info(f"Exported {result_set.row_count} rows to {output_path}")
    return output_path
