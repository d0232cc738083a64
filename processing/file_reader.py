"""
Readers for delimited text and spreadsheet price lists.

Both produce a RawTable whose first source row becomes the column header:
  A) Delimited text — newline-separated lines, quote-aware field splitting.
  B) Spreadsheet — first worksheet of an .xlsx workbook, fully blank rows
     dropped.

Public API:
    read_delimited_text(text, delimiter) → RawTable
    read_delimited_file(file_path, delimiter, encoding) → RawTable
    read_spreadsheet(source) → RawTable
"""

import io
import logging
from datetime import date, datetime
from pathlib import Path

import openpyxl

from processing.errors import EmptySourceError, ExtractionError
from processing.raw_table import RawTable, build_raw_table, generic_columns

logger = logging.getLogger(__name__)

_QUOTE = '"'


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def read_delimited_text(text: str, delimiter: str = ",") -> RawTable:
    """
    Parse delimited text into a RawTable.

    Lines are split on newlines and blank lines are ignored.  A double quote
    toggles "inside-field" mode, so a delimiter inside quotes is part of
    the cell.  A doubled quote inside a quoted section is a literal quote.

    Args:
        text: Decoded file contents.
        delimiter: Single-character field separator.

    Returns:
        RawTable with the first line as headers.

    Raises:
        EmptySourceError: No header line or no data lines.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise EmptySourceError()

    header = _split_delimited_line(lines[0], delimiter)
    rows = [_split_delimited_line(line, delimiter) for line in lines[1:]]

    logger.info(
        f"Read delimited text: {len(header)} columns, {len(rows)} rows"
    )
    return build_raw_table(header, rows, "delimited", {"delimiter": delimiter})


def read_delimited_file(
    file_path: Path,
    delimiter: str | None = None,
    encoding: str = "utf-8",
) -> RawTable:
    """
    Read a delimited text file from disk.

    When *delimiter* is None it is inferred from the extension (".tsv" →
    tab) or, failing that, from the header line (";" if it outnumbers ",").
    """
    try:
        text = Path(file_path).read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        raise ExtractionError(f"Cannot read '{Path(file_path).name}': {exc}") from exc

    if delimiter is None:
        delimiter = _guess_delimiter(text, Path(file_path).suffix.lower())

    return read_delimited_text(text, delimiter)


def read_spreadsheet(source: Path | bytes) -> RawTable:
    """
    Read the first worksheet of a workbook into a RawTable.

    Args:
        source: Path to an .xlsx file, or the workbook's raw bytes.

    Returns:
        RawTable whose header is the first non-blank row.

    Raises:
        ExtractionError: The workbook cannot be opened.
        EmptySourceError: The first sheet has no header or no data rows.
    """
    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source

    try:
        workbook = openpyxl.load_workbook(handle, data_only=True, read_only=True)
    except Exception as exc:
        raise ExtractionError(f"Cannot open workbook: {exc}") from exc

    try:
        worksheet = workbook.worksheets[0]
        sheet_name = worksheet.title
        grid: list[list[str]] = []
        for values in worksheet.iter_rows(values_only=True):
            cells = [_render_cell(value) for value in values]
            # Fully blank rows are dropped
            if not any(cell.strip() for cell in cells):
                continue
            grid.append(_trim_trailing_blanks(cells))
    finally:
        workbook.close()

    if len(grid) < 2:
        raise EmptySourceError()

    header = _fill_blank_headers(grid[0])
    logger.info(
        f"Read sheet '{sheet_name}': {len(header)} columns, {len(grid) - 1} rows"
    )
    return build_raw_table(
        header, grid[1:], "spreadsheet", {"sheet_name": sheet_name}
    )


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _split_delimited_line(line: str, delimiter: str) -> list[str]:
    """Split one line on *delimiter*, honoring double-quote toggling."""
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    index = 0

    while index < len(line):
        char = line[index]
        if char == _QUOTE:
            # "" inside a quoted section is an escaped quote
            if in_quotes and index + 1 < len(line) and line[index + 1] == _QUOTE:
                current.append(_QUOTE)
                index += 2
                continue
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        index += 1

    cells.append("".join(current).strip())
    return cells


def _guess_delimiter(text: str, suffix: str) -> str:
    if suffix == ".tsv":
        return "\t"
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    if first_line.count("\t") > max(first_line.count(","), first_line.count(";")):
        return "\t"
    if first_line.count(";") > first_line.count(","):
        return ";"
    return ","


def _render_cell(value: object) -> str:
    """Render a spreadsheet cell as the string a user would see."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _trim_trailing_blanks(cells: list[str]) -> list[str]:
    end = len(cells)
    while end > 0 and not cells[end - 1].strip():
        end -= 1
    return cells[:end]


def _fill_blank_headers(header: list[str]) -> list[str]:
    """Replace blank header cells with the matching generic column name."""
    generic = generic_columns(len(header))
    return [name if name.strip() else generic[idx] for idx, name in enumerate(header)]
