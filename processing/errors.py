"""
Error taxonomy for the ingestion pipeline.

Extraction and mapping errors are raised and surface immediately to the
caller.  Row-level problems are recorded, not raised: ValidationError is a
plain record accumulated by the normalizer, while ResolutionError and
InvariantViolationError are caught per row by the importer and reported in
the batch result.
"""

from dataclasses import dataclass


class IngestError(Exception):
    """Base class for every error raised by the pipeline."""


# ── Extraction ─────────────────────────────────────────────────────────

class ExtractionError(IngestError):
    """A source could not be turned into a RawTable."""


class EmptySourceError(ExtractionError):
    def __init__(self, message: str = "source contains no data"):
        super().__init__(message)


class NoExtractableTextError(ExtractionError):
    """A text-bearing document had no text at all; retry through OCR."""

    def __init__(self, page_count: int = 0):
        self.page_count = page_count
        super().__init__(
            f"no embedded text; OCR fallback required ({page_count} pages)"
        )


class UnsupportedSourceError(ExtractionError):
    pass


# ── Mapping ────────────────────────────────────────────────────────────

class MappingError(IngestError):
    """The column mapping is incomplete or refers to unknown columns."""


# ── Row-level ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ValidationError:
    """One violated validation rule on one source row (recorded, never raised)."""

    row: int
    field: str
    value: str
    message: str

    def __str__(self) -> str:
        return f"Row {self.row}, {self.field} '{self.value}': {self.message}"


class ResolutionError(IngestError):
    """Persisting one row's ingredient/supplier/product failed."""


class InvariantViolationError(IngestError):
    """The deactivate-then-insert price switch failed; prior price retained."""

    def __init__(self, supplier_product_id: int, cause: Exception | None = None):
        self.supplier_product_id = supplier_product_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"price update for supplier product {supplier_product_id} "
            f"rolled back{detail}"
        )
