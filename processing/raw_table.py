"""
RawTable — the rectangular grid of string cells produced by every reader.

Rows are right-padded with empty strings to the header width and never
truncated.  When a row is wider than the header, generic column names are
appended so no cell is lost.
"""

import logging
from dataclasses import dataclass, field

import pandas as pd

from config.column_mapping import GENERIC_COLUMN_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class RawTable:
    """Extracted, not yet mapped, tabular data."""

    columns: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    source_kind: str = ""
    metadata: dict = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_index(self, name: str) -> int:
        """Index of *name* in columns, or -1 when absent."""
        try:
            return self.columns.index(name)
        except ValueError:
            return -1

    def to_dataframe(self) -> pd.DataFrame:
        """Return the table as a DataFrame (all cells as strings)."""
        return pd.DataFrame(self.rows, columns=self.columns, dtype=str)


def build_raw_table(
    columns: list[str],
    rows: list[list[str]],
    source_kind: str,
    metadata: dict | None = None,
) -> RawTable:
    """
    Build a RawTable, enforcing the rectangular-grid invariant.

    Args:
        columns: Header names, in source order.
        rows: Data rows; may be ragged.
        source_kind: "delimited", "spreadsheet", "pdf" or "ocr".
        metadata: Optional reader-specific details.

    Returns:
        RawTable whose every row has exactly len(columns) cells.
    """
    header = [str(name).strip() for name in columns]
    widest = max([len(header)] + [len(row) for row in rows])

    if widest > len(header):
        logger.warning(
            f"{widest - len(header)} data column(s) have no header; "
            "adding generic names"
        )
        for position in range(len(header) + 1, widest + 1):
            header.append(f"{GENERIC_COLUMN_PREFIX} {position}")

    padded_rows: list[list[str]] = []
    for row in rows:
        cells = ["" if cell is None else str(cell) for cell in row]
        cells.extend([""] * (widest - len(cells)))
        padded_rows.append(cells)

    return RawTable(
        columns=header,
        rows=padded_rows,
        source_kind=source_kind,
        metadata=metadata or {},
    )


def generic_columns(count: int) -> list[str]:
    """Synthesize "Column 1" .. "Column N"."""
    return [f"{GENERIC_COLUMN_PREFIX} {index}" for index in range(1, count + 1)]


def with_constant_column(table: RawTable, name: str, value: str) -> RawTable:
    """
    Copy of *table* with column *name* set to *value* on every row.

    Used for values the source does not carry per row, such as the supplier
    of a scanned invoice.  An existing column of that name is overwritten.
    """
    columns = list(table.columns)
    rows = [list(row) for row in table.rows]

    position = table.column_index(name)
    if position == -1:
        columns.append(name)
        for row in rows:
            row.append(value)
    else:
        for row in rows:
            row[position] = value

    return RawTable(
        columns=columns,
        rows=rows,
        source_kind=table.source_kind,
        metadata=dict(table.metadata),
    )
