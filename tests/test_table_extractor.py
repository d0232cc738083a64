"""
Tests for processing/table_extractor.py

Covers: dispatch by extension, OCR retry for scanned PDFs, images without
an OCR engine, unknown extensions and missing files.
"""

from unittest.mock import MagicMock, patch

import openpyxl
import pytest

from processing.errors import ExtractionError, NoExtractableTextError, UnsupportedSourceError
from processing.ocr_reader import OcrEngine
from processing.raw_table import build_raw_table
from processing.table_extractor import read_source


class TestDispatch:
    def test_csv(self, tmp_path):
        path = tmp_path / "lista.csv"
        path.write_text("Producto,Precio\nSal,0.50\n", encoding="utf-8")
        assert read_source(path).source_kind == "delimited"

    def test_xlsx(self, tmp_path):
        path = tmp_path / "lista.xlsx"
        workbook = openpyxl.Workbook()
        workbook.active.append(["Producto", "Precio"])
        workbook.active.append(["Sal", 0.5])
        workbook.save(path)
        assert read_source(path).source_kind == "spreadsheet"

    def test_extension_case_insensitive(self, tmp_path):
        path = tmp_path / "LISTA.CSV"
        path.write_text("Producto,Precio\nSal,0.50\n", encoding="utf-8")
        assert read_source(path).rows == [["Sal", "0.50"]]

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "lista.docx"
        path.write_bytes(b"PK")
        with pytest.raises(UnsupportedSourceError):
            read_source(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExtractionError, match="File not found"):
            read_source(tmp_path / "nada.csv")


class TestOcrFallback:
    @patch("processing.table_extractor.read_pdf", side_effect=NoExtractableTextError(3))
    def test_scanned_pdf_without_engine_propagates(self, mock_read_pdf, tmp_path):
        path = tmp_path / "factura.pdf"
        path.write_bytes(b"%PDF-1.4")
        with pytest.raises(NoExtractableTextError):
            read_source(path)

    @patch("processing.table_extractor.read_scanned_pdf")
    @patch("processing.table_extractor.read_pdf", side_effect=NoExtractableTextError(1))
    def test_scanned_pdf_retried_with_ocr(self, mock_read_pdf, mock_scanned, tmp_path):
        path = tmp_path / "factura.pdf"
        path.write_bytes(b"%PDF-1.4")
        ocr_table = build_raw_table(["Producto", "Precio"], [["Harina", "0,89"]], "ocr")
        mock_scanned.return_value = ocr_table
        engine = MagicMock(spec=OcrEngine)

        table = read_source(path, ocr_engine=engine)

        assert table is ocr_table
        mock_scanned.assert_called_once_with(path, engine)

    @patch("processing.table_extractor.read_scanned_pdf")
    @patch("processing.table_extractor.read_pdf")
    def test_text_pdf_does_not_use_ocr(self, mock_read_pdf, mock_scanned, tmp_path):
        path = tmp_path / "tarifa.pdf"
        path.write_bytes(b"%PDF-1.4")
        mock_read_pdf.return_value = build_raw_table(["A", "B"], [["1", "2"]], "pdf")

        read_source(path, ocr_engine=MagicMock(spec=OcrEngine))

        mock_scanned.assert_not_called()

    def test_image_requires_engine(self, tmp_path):
        path = tmp_path / "ticket.jpg"
        path.write_bytes(b"\xff\xd8\xff")
        with pytest.raises(UnsupportedSourceError, match="OCR engine"):
            read_source(path)

    @patch("processing.table_extractor.read_image")
    def test_image_with_engine(self, mock_read_image, tmp_path):
        path = tmp_path / "ticket.png"
        path.write_bytes(b"\x89PNG")
        engine = MagicMock(spec=OcrEngine)
        read_source(path, ocr_engine=engine)
        mock_read_image.assert_called_once_with(path, engine)
