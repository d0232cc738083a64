"""
Table reconstruction from positioned text (text-bearing PDFs).

A PDF page is a bag of text fragments with coordinates.  Fragments are
grouped into rows by bucketing their y-coordinate (tolerating baseline
jitter from font metrics), ordered left to right by x, and rows with fewer
than two fragments are dropped as not table-like.  The header is the
best-scoring of the first few rows against known header keywords.

Scanned PDFs have no text layer at all; that condition is signalled with
NoExtractableTextError so the caller can retry through OCR.

Public API:
    extract_positioned_table(pages, y_axis_up, tolerance) → RawTable
    read_pdf(source) → RawTable
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path

import pdfplumber

from config.column_mapping import HEADER_CANDIDATE_ROWS, HEADER_KEYWORD_PATTERNS
from config.settings import ROW_Y_TOLERANCE
from processing.errors import EmptySourceError, ExtractionError, NoExtractableTextError
from processing.raw_table import RawTable, build_raw_table, generic_columns

logger = logging.getLogger(__name__)

# Rows with fewer fragments than this are not table rows.
MIN_FRAGMENTS_PER_ROW: int = 2


@dataclass(frozen=True)
class TextFragment:
    """One run of text at a position on a page."""

    text: str
    x: float
    y: float


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def extract_positioned_table(
    pages: list[list[TextFragment | dict]],
    y_axis_up: bool = True,
    tolerance: float = ROW_Y_TOLERANCE,
) -> RawTable:
    """
    Rebuild a table from per-page positioned text fragments.

    Args:
        pages: One list of fragments per page.  Dicts with "text", "x",
               "y" keys are accepted alongside TextFragment.
        y_axis_up: True when y grows upwards (PDF user space, so the top
                   row has the largest y); False for top-down coordinates.
        tolerance: Vertical bucket size for grouping fragments into rows.

    Returns:
        RawTable with detected (or generic) headers.

    Raises:
        EmptySourceError: No pages at all.
        NoExtractableTextError: Pages exist but none carries any text.
        ExtractionError: Text exists but no table-like rows were found.
    """
    if not pages:
        raise EmptySourceError()

    all_rows: list[list[str]] = []
    fragment_count = 0
    pages_with_rows = 0

    for page_number, raw_fragments in enumerate(pages, start=1):
        fragments = [_coerce_fragment(item) for item in raw_fragments]
        fragments = [frag for frag in fragments if frag.text]
        fragment_count += len(fragments)

        page_rows = _group_into_rows(fragments, y_axis_up, tolerance)
        if page_rows:
            pages_with_rows += 1
        logger.debug(
            f"Page {page_number}: {len(fragments)} fragments, "
            f"{len(page_rows)} table rows"
        )
        all_rows.extend(page_rows)

    if fragment_count == 0:
        logger.warning(f"No text fragments on any of {len(pages)} pages")
        raise NoExtractableTextError(page_count=len(pages))

    if not all_rows:
        raise ExtractionError("No table data found in document")

    header_index, score = _detect_header_row(all_rows)

    if header_index is None:
        width = max(len(row) for row in all_rows)
        columns = generic_columns(width)
        data_rows = all_rows
        logger.info("No header keywords found; using generic column names")
    else:
        columns = all_rows[header_index]
        # Drop the header itself and repeats of it on later pages
        data_rows = [
            row for idx, row in enumerate(all_rows)
            if idx != header_index and row != columns
        ]
        logger.info(f"Header detected at row {header_index} (score={score}): {columns}")

    return build_raw_table(
        columns,
        data_rows,
        "pdf",
        {
            "pages": len(pages),
            "tables": pages_with_rows,
            "has_text": True,
            "header_score": score,
        },
    )


def read_pdf(source: Path | bytes) -> RawTable:
    """
    Extract a table from a text-bearing PDF with pdfplumber.

    Args:
        source: Path to the PDF or its raw bytes.

    Raises:
        NoExtractableTextError: The PDF has no text layer (scanned).
        ExtractionError: The file cannot be opened or holds no table rows.
    """
    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source

    try:
        with pdfplumber.open(handle) as pdf:
            pages = [
                [
                    TextFragment(text=word["text"].strip(), x=word["x0"], y=word["top"])
                    for word in page.extract_words(keep_blank_chars=True)
                ]
                for page in pdf.pages
            ]
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"Cannot open PDF: {exc}") from exc

    # pdfplumber's "top" is measured from the top of the page
    return extract_positioned_table(pages, y_axis_up=False)


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _coerce_fragment(item: TextFragment | dict) -> TextFragment:
    if isinstance(item, TextFragment):
        return TextFragment(text=item.text.strip(), x=item.x, y=item.y)
    return TextFragment(
        text=str(item.get("text", "")).strip(),
        x=float(item.get("x", 0.0)),
        y=float(item.get("y", 0.0)),
    )


def _bucket(y: float, tolerance: float) -> float:
    return round(y / tolerance) * tolerance


def _group_into_rows(
    fragments: list[TextFragment],
    y_axis_up: bool,
    tolerance: float,
) -> list[list[str]]:
    """
    Group one page's fragments into rows of cell text.

    Returns:
        Rows ordered top to bottom, each with cells ordered left to right.
        Rows with fewer than MIN_FRAGMENTS_PER_ROW cells are discarded.
    """
    buckets: dict[float, list[TextFragment]] = {}
    for fragment in fragments:
        buckets.setdefault(_bucket(fragment.y, tolerance), []).append(fragment)

    rows: list[list[str]] = []
    for y_key in sorted(buckets, reverse=y_axis_up):
        cells = sorted(buckets[y_key], key=lambda frag: frag.x)
        if len(cells) < MIN_FRAGMENTS_PER_ROW:
            continue
        rows.append([frag.text for frag in cells])

    return rows


def _score_header_candidate(row: list[str]) -> int:
    """Count (cell, keyword pattern) matches in a candidate header row."""
    score = 0
    for cell in row:
        for pattern in HEADER_KEYWORD_PATTERNS:
            if pattern.search(cell):
                score += 1
    return score


def _detect_header_row(rows: list[list[str]]) -> tuple[int | None, int]:
    """
    Pick the best-scoring of the first HEADER_CANDIDATE_ROWS rows.

    Returns:
        (row_index, score); row_index is None when nothing scores above 0.
        Ties keep the earliest row.
    """
    best_index: int | None = None
    best_score = 0

    for idx, row in enumerate(rows[:HEADER_CANDIDATE_ROWS]):
        score = _score_header_candidate(row)
        if score > best_score:
            best_index = idx
            best_score = score

    return best_index, best_score
