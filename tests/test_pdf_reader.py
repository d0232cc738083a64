"""
Tests for processing/pdf_reader.py

Covers: row grouping by y-bucket, left-to-right ordering, dropping of
single-fragment rows, header scoring and generic fallback, repeated page
headers, y-axis orientation, and the no-text (scanned PDF) signal.
pdfplumber is mocked for read_pdf().
"""

from unittest.mock import MagicMock, patch

import pytest

from processing.errors import EmptySourceError, ExtractionError, NoExtractableTextError
from processing.pdf_reader import (
    TextFragment,
    _bucket,
    _detect_header_row,
    _score_header_candidate,
    extract_positioned_table,
    read_pdf,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _frag(text: str, x: float, y: float) -> dict:
    return {"text": text, "x": x, "y": y}


def _price_list_page(header_y: float = 800.0) -> list[dict]:
    """Header row, two data rows and a page footer, PDF (y-up) coordinates."""
    return [
        _frag("Precio", 200, header_y),
        _frag("Producto", 10, header_y),
        _frag("Formato", 300, header_y),
        _frag("Harina", 10, header_y - 20),
        _frag("12,50", 200, header_y - 20),
        _frag("25 kg", 300, header_y - 20),
        _frag("Sal", 10, header_y - 40),
        _frag("0,50", 200, header_y - 40),
        _frag("1 kg", 300, header_y - 40),
        _frag("Página 1", 280, 30),
    ]


def _mock_pdf(pages_words: list[list[dict]]) -> MagicMock:
    pdf = MagicMock()
    pages = []
    for words in pages_words:
        page = MagicMock()
        page.extract_words.return_value = words
        pages.append(page)
    pdf.pages = pages
    opened = MagicMock()
    opened.__enter__.return_value = pdf
    opened.__exit__.return_value = False
    return opened


# ═══════════════════════════════════════════════════════════════════════════
# Table reconstruction
# ═══════════════════════════════════════════════════════════════════════════

class TestExtractPositionedTable:
    def test_header_and_rows(self):
        table = extract_positioned_table([_price_list_page()])
        assert table.columns == ["Producto", "Precio", "Formato"]
        assert table.rows == [
            ["Harina", "12,50", "25 kg"],
            ["Sal", "0,50", "1 kg"],
        ]
        assert table.source_kind == "pdf"

    def test_single_fragment_rows_dropped(self):
        table = extract_positioned_table([_price_list_page()])
        assert all("Página 1" not in row for row in table.rows)

    def test_baseline_jitter_lands_on_same_row(self):
        page = [
            _frag("Producto", 10, 800), _frag("Precio", 200, 800),
            _frag("Harina", 10, 781.0), _frag("12,50", 200, 779.0),
        ]
        table = extract_positioned_table([page])
        assert table.rows == [["Harina", "12,50"]]

    def test_top_down_coordinates(self):
        page = [
            _frag("Harina", 10, 70), _frag("12,50", 200, 70),
            _frag("Producto", 10, 50), _frag("Precio", 200, 50),
        ]
        table = extract_positioned_table([page], y_axis_up=False)
        assert table.columns == ["Producto", "Precio"]
        assert table.rows == [["Harina", "12,50"]]

    def test_accepts_text_fragments(self):
        page = [
            TextFragment("Producto", 10, 800), TextFragment("Precio", 200, 800),
            TextFragment("Sal", 10, 780), TextFragment("0,50", 200, 780),
        ]
        table = extract_positioned_table([page])
        assert table.rows == [["Sal", "0,50"]]

    def test_generic_columns_without_header_keywords(self):
        page = [
            _frag("Harina", 10, 800), _frag("12,50", 200, 800),
            _frag("Sal", 10, 780), _frag("0,50", 200, 780),
        ]
        table = extract_positioned_table([page])
        assert table.columns == ["Column 1", "Column 2"]
        assert table.rows == [["Harina", "12,50"], ["Sal", "0,50"]]
        assert table.metadata["header_score"] == 0

    def test_repeated_header_on_later_page_dropped(self):
        table = extract_positioned_table([_price_list_page(), _price_list_page()])
        assert ["Producto", "Precio", "Formato"] not in table.rows
        assert len(table.rows) == 4
        assert table.metadata["pages"] == 2
        assert table.metadata["tables"] == 2

    def test_header_below_title_row(self):
        page = [
            _frag("Tarifa", 10, 820), _frag("Enero", 200, 820),
        ] + _price_list_page(header_y=800)
        table = extract_positioned_table([page])
        assert table.columns == ["Producto", "Precio", "Formato"]
        assert table.metadata["header_score"] == 3

    def test_zero_fragments_signals_no_text(self):
        with pytest.raises(NoExtractableTextError) as exc_info:
            extract_positioned_table([[], []])
        assert exc_info.value.page_count == 2

    def test_blank_fragments_count_as_no_text(self):
        with pytest.raises(NoExtractableTextError):
            extract_positioned_table([[_frag("   ", 10, 10)]])

    def test_no_pages_is_empty_source(self):
        with pytest.raises(EmptySourceError):
            extract_positioned_table([])

    def test_text_without_table_rows(self):
        with pytest.raises(ExtractionError) as exc_info:
            extract_positioned_table([[_frag("Factura", 10, 800), _frag("Gracias", 10, 700)]])
        assert not isinstance(exc_info.value, NoExtractableTextError)


class TestHeaderDetection:
    def test_score_counts_keyword_matches(self):
        assert _score_header_candidate(["Producto", "Precio", "IGIC"]) == 3
        assert _score_header_candidate(["Harina", "12,50"]) == 0

    def test_best_of_first_rows(self):
        rows = [["Tarifa", "Enero"], ["Producto", "Precio"], ["Harina", "1"]]
        assert _detect_header_row(rows) == (1, 2)

    def test_only_first_three_rows_considered(self):
        rows = [["a", "b"], ["c", "d"], ["e", "f"], ["Producto", "Precio"]]
        assert _detect_header_row(rows) == (None, 0)

    def test_tie_keeps_earliest(self):
        rows = [["Producto", "x"], ["Precio", "y"]]
        assert _detect_header_row(rows) == (0, 1)

    def test_bucket(self):
        assert _bucket(781.0, 5.0) == 780.0
        assert _bucket(779.0, 5.0) == 780.0


# ═══════════════════════════════════════════════════════════════════════════
# pdfplumber integration
# ═══════════════════════════════════════════════════════════════════════════

class TestReadPdf:
    @patch("processing.pdf_reader.pdfplumber.open")
    def test_scanned_pdf_signals_no_text(self, mock_open):
        mock_open.return_value = _mock_pdf([[], []])
        with pytest.raises(NoExtractableTextError) as exc_info:
            read_pdf(b"%PDF-1.4 scanned")
        assert exc_info.value.page_count == 2

    @patch("processing.pdf_reader.pdfplumber.open")
    def test_words_become_rows(self, mock_open):
        mock_open.return_value = _mock_pdf([[
            {"text": "Producto", "x0": 10, "top": 50},
            {"text": "Precio", "x0": 200, "top": 50},
            {"text": "Harina", "x0": 10, "top": 70},
            {"text": "12,50", "x0": 200, "top": 70},
        ]])
        table = read_pdf(b"%PDF-1.4")
        assert table.columns == ["Producto", "Precio"]
        assert table.rows == [["Harina", "12,50"]]

    @patch("processing.pdf_reader.pdfplumber.open", side_effect=ValueError("broken"))
    def test_unreadable_pdf(self, mock_open):
        with pytest.raises(ExtractionError, match="Cannot open PDF"):
            read_pdf(b"not a pdf")
