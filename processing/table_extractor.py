"""
Table extractor — picks the right reader for a source file.

Dispatches on file extension:
  .csv / .txt / .tsv   → delimited text reader
  .xlsx / .xlsm        → spreadsheet reader
  .pdf                 → positioned-text reader, OCR retry if scanned
  image extensions     → OCR reader

Public API:
    read_source(file_path, ocr_engine) → RawTable
"""

import logging
from pathlib import Path

from config.settings import (
    DELIMITED_EXTENSIONS,
    IMAGE_EXTENSIONS,
    PDF_EXTENSIONS,
    SPREADSHEET_EXTENSIONS,
)
from processing.errors import ExtractionError, NoExtractableTextError, UnsupportedSourceError
from processing.file_reader import read_delimited_file, read_spreadsheet
from processing.ocr_reader import OcrEngine, read_image, read_scanned_pdf
from processing.pdf_reader import read_pdf
from processing.raw_table import RawTable

logger = logging.getLogger(__name__)


def read_source(file_path: Path, ocr_engine: OcrEngine | None = None) -> RawTable:
    """
    Extract a RawTable from any supported source file.

    Args:
        file_path: Path to the price list.
        ocr_engine: Open OCR engine.  Required for images; for PDFs it
                    enables the retry when the document has no text layer.

    Returns:
        RawTable from the matching reader.

    Raises:
        UnsupportedSourceError: Unknown extension, or an image without an
            OCR engine.
        NoExtractableTextError: Scanned PDF and no OCR engine supplied.
        ExtractionError: Any other extraction failure.
    """
    file_path = Path(file_path)
    suffix = file_path.suffix.lower()

    if not file_path.exists():
        raise ExtractionError(f"File not found: '{file_path}'")

    logger.info(f"Extracting '{file_path.name}'")

    if suffix in DELIMITED_EXTENSIONS:
        return read_delimited_file(file_path)

    if suffix in SPREADSHEET_EXTENSIONS:
        return read_spreadsheet(file_path)

    if suffix in PDF_EXTENSIONS:
        try:
            return read_pdf(file_path)
        except NoExtractableTextError:
            if ocr_engine is None:
                raise
            logger.warning(
                f"'{file_path.name}' has no embedded text — retrying with OCR"
            )
            return read_scanned_pdf(file_path, ocr_engine)

    if suffix in IMAGE_EXTENSIONS:
        if ocr_engine is None:
            raise UnsupportedSourceError(
                f"'{file_path.name}' is an image; an OCR engine is required"
            )
        return read_image(file_path, ocr_engine)

    raise UnsupportedSourceError(f"Unsupported file type: '{suffix or file_path.name}'")
