"""
OCR fallback — recovers (ingredient, price, unit) rows from scanned sources.

Unstructured OCR text has no reliable columns, so each line is matched
against price-line patterns ("Aceite de oliva 15,50 €/L") and every match
becomes one row under a fixed synthetic header.

The Tesseract engine is an explicitly owned resource: acquire it with
``with OcrEngine() as engine:`` and it is shut down on exit.  There is no
module-level worker.

Public API:
    OcrEngine(language, config)            — context-managed OCR engine
    extract_ocr_prices(text, confidence)   → RawTable
    read_image(source, engine)             → RawTable
    read_scanned_pdf(source, engine)       → RawTable
"""

import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import pdfplumber
import pytesseract
from PIL import Image

from config.column_mapping import OCR_COLUMNS
from config.normalization_rules import OCR_PRICE_PATTERNS, OCR_UNKNOWN_INGREDIENT
from config.settings import OCR_LANGUAGE, OCR_RENDER_RESOLUTION, OCR_TESSERACT_CONFIG
from processing.errors import EmptySourceError, ExtractionError
from processing.raw_table import RawTable, build_raw_table

logger = logging.getLogger(__name__)

# Names shorter than this are OCR debris, not ingredient names.
_MIN_NAME_LENGTH = 4
_NAME_TRIM_CHARS = " \t-–:·.,;|*"


@dataclass
class OcrPage:
    """Text recognised on one image, with Tesseract's mean word confidence."""

    text: str
    confidence: float


# ═══════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════

class OcrEngine:
    """Tesseract wrapper with an explicit open/close lifecycle."""

    def __init__(self, language: str = OCR_LANGUAGE, config: str = OCR_TESSERACT_CONFIG):
        self.language = language
        self.config = config
        self._open = False

    def __enter__(self) -> "OcrEngine":
        self.open()
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        self.close()

    def open(self) -> None:
        try:
            version = pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError as exc:
            raise ExtractionError(f"Tesseract is not installed: {exc}") from exc
        self._open = True
        logger.info(f"OCR engine ready (tesseract {version}, lang={self.language})")

    def close(self) -> None:
        if self._open:
            logger.info("OCR engine shut down")
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def recognize(self, image: Image.Image) -> OcrPage:
        """
        Run OCR over one image.

        Returns:
            OcrPage with the text rebuilt line by line and the mean
            confidence (0-100) of recognised words.
        """
        if not self._open:
            raise ExtractionError("OCR engine is not open")

        data = pytesseract.image_to_data(
            image,
            lang=self.language,
            config=self.config,
            output_type=pytesseract.Output.DICT,
        )
        return _assemble_page(data)


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def extract_ocr_prices(text: str, confidence: float | None = None) -> RawTable:
    """
    Extract price rows from a plain OCR text blob.

    Each line is tried against OCR_PRICE_PATTERNS in order; the first
    pattern that matches a line wins, and all of its matches on that line
    become rows.

    Args:
        text: OCR output.
        confidence: Optional mean OCR confidence, kept in metadata.

    Returns:
        RawTable with columns OCR_COLUMNS.

    Raises:
        EmptySourceError: The text is blank.
        ExtractionError: No line looks like a price line.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        raise EmptySourceError()

    rows: list[list[str]] = []
    for line in lines:
        rows.extend(_match_price_line(line))

    if not rows:
        raise ExtractionError(
            f"No price lines recognised in OCR text ({len(lines)} lines)"
        )

    logger.info(f"OCR text: {len(rows)} price rows from {len(lines)} lines")
    metadata = {"lines": len(lines)}
    if confidence is not None:
        metadata["confidence"] = confidence
    return build_raw_table(OCR_COLUMNS, rows, "ocr", metadata)


def read_image(source: Path | bytes, engine: OcrEngine) -> RawTable:
    """OCR an image file (or its bytes) and extract price rows."""
    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        with Image.open(handle) as image:
            page = engine.recognize(image.convert("RGB"))
    except OSError as exc:
        raise ExtractionError(f"Cannot open image: {exc}") from exc

    return extract_ocr_prices(page.text, page.confidence)


def read_scanned_pdf(source: Path | bytes, engine: OcrEngine) -> RawTable:
    """Render each PDF page to an image, OCR it, and extract price rows."""
    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    pages: list[OcrPage] = []

    try:
        with pdfplumber.open(handle) as pdf:
            for page_number, page in enumerate(pdf.pages, start=1):
                rendered = page.to_image(resolution=OCR_RENDER_RESOLUTION)
                pages.append(engine.recognize(rendered.original.convert("RGB")))
                logger.debug(f"OCR page {page_number}: {len(pages[-1].text)} chars")
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"Cannot render PDF for OCR: {exc}") from exc

    if not pages:
        raise EmptySourceError()

    text = "\n".join(page.text for page in pages)
    confidence = sum(page.confidence for page in pages) / len(pages)
    table = extract_ocr_prices(text, confidence)
    table.metadata["pages"] = len(pages)
    table.metadata["ocr_used"] = True
    return table


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _match_price_line(line: str) -> list[list[str]]:
    for pattern in OCR_PRICE_PATTERNS:
        matches = list(pattern.finditer(line))
        if not matches:
            continue
        rows = []
        for match in matches:
            unit = match.group("unit").lower()
            rows.append([
                _clean_name(match.group("name") or ""),
                match.group("price"),
                unit,
                f"1 {unit}",
                match.group(0).strip(),
            ])
        return rows
    return []


def _clean_name(raw_name: str) -> str:
    name = re.sub(r"\s+", " ", raw_name).strip(_NAME_TRIM_CHARS)
    if len(name) < _MIN_NAME_LENGTH:
        return OCR_UNKNOWN_INGREDIENT
    return name


def _assemble_page(data: dict) -> OcrPage:
    """Rebuild text lines and mean confidence from image_to_data output."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    for idx, word in enumerate(data.get("text", [])):
        word = str(word).strip()
        if not word:
            continue
        key = (data["block_num"][idx], data["par_num"][idx], data["line_num"][idx])
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][idx])
        # Tesseract reports -1 for non-word boxes
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return OcrPage(text=text, confidence=round(confidence, 1))
