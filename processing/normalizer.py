"""
Row normalizer — turns mapped raw rows into validated NormalizedRow records.

For each raw row, the mapped cells are read and converted:
  - product / supplier: trimmed text, required.
  - price: locale number, required and > 0.
  - content: parsed from the pack description (or content amount + unit)
    and expressed in the base unit (kg, L, ud).
  - tax_percent: locale number; the organization default applies only when
    the cell is blank.  A present but unparseable value is an error.
  - area: substring match on known tokens, "both" otherwise.

Normalization never raises for row problems.  Each violated rule appends a
message to the row's errors, a structured ValidationError to the result,
and marks the row invalid.

Public API:
    normalize_row(cells, columns, mapping, default_tax_percent, row_index)
        → (NormalizedRow, list[ValidationError])
    normalize_table(table, mapping, default_tax_percent) → NormalizationResult
"""

import logging
from dataclasses import dataclass, field

from config.normalization_rules import AREA_TOKENS
from config.schema import DEFAULT_AREA, DEFAULT_TAX_PERCENT
from processing.column_mapper import ColumnMapping
from processing.errors import ValidationError
from processing.numeric_converter import parse_locale_number
from processing.pack_parser import (
    BareNumber,
    Unresolved,
    calculate_unit_price,
    normalize_unit,
    parse_pack,
    to_base_units,
)
from processing.raw_table import RawTable

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NormalizedRow:
    """One canonical price-list record.  Immutable once built."""

    row_index: int
    product: str
    supplier: str
    pack_label: str
    content_amount: float
    unit: str
    price: float
    tax_percent: float = DEFAULT_TAX_PERCENT
    area: str = DEFAULT_AREA
    reference: str | None = None
    category: str | None = None
    is_valid: bool = True
    errors: tuple[str, ...] = ()

    @property
    def unit_price(self) -> float:
        """Price per base unit; 0 when the content is not positive."""
        return calculate_unit_price(self.price, self.content_amount)


@dataclass
class NormalizationResult:
    """Output of normalize_table()."""

    rows: list[NormalizedRow] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def valid_rows(self) -> list[NormalizedRow]:
        return [row for row in self.rows if row.is_valid]

    @property
    def invalid_rows(self) -> list[NormalizedRow]:
        return [row for row in self.rows if not row.is_valid]

    @property
    def valid_count(self) -> int:
        return len(self.valid_rows)

    @property
    def invalid_count(self) -> int:
        return len(self.invalid_rows)


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def normalize_table(
    table: RawTable,
    mapping: ColumnMapping,
    default_tax_percent: float = DEFAULT_TAX_PERCENT,
) -> NormalizationResult:
    """
    Normalize every row of an extracted table.

    Args:
        table: RawTable from the extractor.
        mapping: Finalized column mapping.
        default_tax_percent: Organization default tax, in percent.

    Returns:
        NormalizationResult with one NormalizedRow per raw row (valid or
        not) and every validation error found.

    Raises:
        MappingError: The mapping is incomplete or names unknown columns.
    """
    mapping.require_complete()
    mapping.require_columns(table.columns)

    result = NormalizationResult()

    for position, cells in enumerate(table.rows, start=1):
        row, errors = normalize_row(
            cells, table.columns, mapping, default_tax_percent, position
        )
        result.rows.append(row)
        result.errors.extend(errors)

    logger.info(
        f"Normalization complete: {result.valid_count} valid, "
        f"{result.invalid_count} invalid, {len(result.errors)} errors"
    )
    return result


def normalize_row(
    cells: list[str],
    columns: list[str],
    mapping: ColumnMapping,
    default_tax_percent: float = DEFAULT_TAX_PERCENT,
    row_index: int = 0,
) -> tuple[NormalizedRow, list[ValidationError]]:
    """
    Normalize and validate one raw row.

    Args:
        cells: The row's cell values, aligned with *columns*.
        columns: RawTable column names.
        mapping: Finalized column mapping.
        default_tax_percent: Used only when the tax cell is blank.
        row_index: 1-based data row number, for error reporting.

    Returns:
        (NormalizedRow, validation errors).  Never raises for bad data.
    """
    values = _MappedCells(cells, columns, mapping)
    errors: list[ValidationError] = []

    def fail(field_key: str, value: str, message: str) -> None:
        errors.append(ValidationError(row_index, field_key, value, message))

    # ── Required text fields ──────────────────────────────────────
    product = values.get("product")
    if not product:
        fail("product", "", "product is required")

    supplier = values.get("supplier")
    if not supplier:
        fail("supplier", "", "supplier is required")

    # ── Price ─────────────────────────────────────────────────────
    price_raw = values.get("price")
    price = 0.0
    if not price_raw:
        fail("price", "", "price is required")
    else:
        parsed_price = parse_locale_number(price_raw)
        if parsed_price is None:
            fail("price", price_raw, "price is not a valid number")
        elif parsed_price <= 0:
            fail("price", price_raw, "price must be greater than 0")
        else:
            price = parsed_price

    # ── Content (pack) ────────────────────────────────────────────
    pack_label, content_amount, unit, content_error = _resolve_content(values)
    if content_error:
        fail("pack_description", pack_label, content_error)

    # ── Tax ───────────────────────────────────────────────────────
    tax_raw = values.get("tax_percent")
    tax_percent = default_tax_percent
    if tax_raw:
        parsed_tax = parse_locale_number(tax_raw)
        if parsed_tax is None:
            fail("tax_percent", tax_raw, "tax_percent is not a valid number")
        elif parsed_tax < 0:
            fail("tax_percent", tax_raw, "tax_percent must not be negative")
        else:
            tax_percent = parsed_tax

    row = NormalizedRow(
        row_index=row_index,
        product=product,
        supplier=supplier,
        pack_label=pack_label,
        content_amount=content_amount,
        unit=unit,
        price=price,
        tax_percent=tax_percent,
        area=normalize_area(values.get("area")),
        reference=values.get("reference") or None,
        category=values.get("category") or None,
        is_valid=not errors,
        errors=tuple(error.message for error in errors),
    )

    if errors:
        logger.debug(f"Row {row_index} invalid: {[str(e) for e in errors]}")

    return row, errors


def normalize_area(area_text: str | None) -> str:
    """Map free area text onto kitchen / dining / both."""
    if not area_text:
        return DEFAULT_AREA

    lowered = area_text.strip().lower()
    for token, area in AREA_TOKENS:
        if token in lowered:
            return area
    return DEFAULT_AREA


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

class _MappedCells:
    """Read a row's cells by target field name."""

    def __init__(self, cells: list[str], columns: list[str], mapping: ColumnMapping):
        self._cells = cells
        self._columns = columns
        self._mapping = mapping

    def get(self, target: str) -> str:
        """Trimmed cell value for *target*, or "" when unmapped/blank."""
        source = self._mapping.source_for(target)
        if source is None or source not in self._columns:
            return ""
        index = self._columns.index(source)
        if index >= len(self._cells) or self._cells[index] is None:
            return ""
        return str(self._cells[index]).strip()


def _resolve_content(values: _MappedCells) -> tuple[str, float, str, str | None]:
    """
    Work out the pack content in base units.

    The pack description wins when present; otherwise the content amount
    and unit cells are combined.  A bare number takes its unit from the
    unit cell when one is mapped.

    Returns:
        (pack_label, content_amount, base_unit, error_message_or_None)
    """
    unit_raw = values.get("unit")
    pack_label = values.get("pack_description")

    if not pack_label:
        content_raw = values.get("content_amount")
        pack_label = f"{content_raw} {unit_raw}".strip() if content_raw else ""

    if not pack_label:
        return "", 0.0, "ud", "pack/content is required"

    pack = parse_pack(pack_label)

    if isinstance(pack, Unresolved):
        return pack_label, 0.0, "ud", "pack/content could not be resolved"

    if isinstance(pack, BareNumber) and unit_raw:
        content_amount = to_base_units(pack.amount, unit_raw)
        unit = normalize_unit(unit_raw)
    else:
        content_amount = pack.base_total
        unit = pack.base_unit

    if content_amount <= 0:
        return pack_label, 0.0, unit, "pack/content must be greater than 0"

    return pack_label, content_amount, unit, None
