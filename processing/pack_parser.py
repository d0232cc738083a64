"""
Pack parser — turns free-text pack notation into explicit quantities.

Each label resolves to exactly one tagged outcome, tried in priority order:
  1. MultiPack   "6×1 L", "Caja 12x500ml"  → total = count × amount
  2. SimplePack  "500 g", "0,75 L"         → total = amount
  3. BareNumber  "12"                      → total = amount, unit "ud"
  4. Unresolved  "granel"                  → no quantity

Totals are reported in the unit the label was written in ("12x500g" →
6000 g); base_total converts to the base unit (6 kg).

Public API:
    parse_pack(label) → MultiPack | SimplePack | BareNumber | Unresolved
    normalize_unit(token) → "kg" | "L" | "ud"
    unit_scale(token) → float
    to_base_units(amount, token) → float
    unit_quantity_or_default(label) → (float, str)
    calculate_unit_price(price, content_amount) → float
"""

import logging
from dataclasses import dataclass

from config.normalization_rules import (
    BARE_NUMBER_PATTERN,
    MULTI_PACK_PATTERN,
    SIMPLE_PACK_PATTERN,
    SOURCE_UNIT_SYMBOLS,
    SUB_UNIT_DIVISOR,
    SUB_UNIT_SYMBOLS,
    SUB_UNIT_TOKENS,
    UNIT_SYNONYMS,
)
from processing.numeric_converter import parse_locale_number

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Tagged outcomes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MultiPack:
    count: int
    amount: float
    unit: str
    label: str = ""

    @property
    def total(self) -> float:
        return self.count * self.amount

    @property
    def base_unit(self) -> str:
        return normalize_unit(self.unit)

    @property
    def base_total(self) -> float:
        return to_base_units(self.total, self.unit)


@dataclass(frozen=True)
class SimplePack:
    amount: float
    unit: str
    label: str = ""

    @property
    def total(self) -> float:
        return self.amount

    @property
    def base_unit(self) -> str:
        return normalize_unit(self.unit)

    @property
    def base_total(self) -> float:
        return to_base_units(self.amount, self.unit)


@dataclass(frozen=True)
class BareNumber:
    amount: float
    label: str = ""
    unit: str = "ud"

    @property
    def total(self) -> float:
        return self.amount

    @property
    def base_unit(self) -> str:
        return "ud"

    @property
    def base_total(self) -> float:
        return self.amount


@dataclass(frozen=True)
class Unresolved:
    label: str = ""
    unit: str = "ud"
    total: float = 0.0
    base_unit: str = "ud"
    base_total: float = 0.0


ParsedPack = MultiPack | SimplePack | BareNumber | Unresolved


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def parse_pack(label: str | None) -> ParsedPack:
    """
    Parse a pack label into one tagged outcome.

    Args:
        label: Free-text pack description, e.g. "Caja 6×1 L".

    Returns:
        MultiPack, SimplePack, BareNumber, or Unresolved when the label
        holds no number at all.
    """
    if not label or not str(label).strip():
        return Unresolved(label="")

    text = str(label).strip()

    multi = MULTI_PACK_PATTERN.search(text)
    if multi:
        amount = parse_locale_number(multi.group(2))
        if amount is not None:
            return MultiPack(
                count=int(multi.group(1)),
                amount=amount,
                unit=source_unit_symbol(multi.group(3)),
                label=text,
            )

    simple = SIMPLE_PACK_PATTERN.search(text)
    if simple:
        amount = parse_locale_number(simple.group(1))
        if amount is not None:
            return SimplePack(
                amount=amount,
                unit=source_unit_symbol(simple.group(2)),
                label=text,
            )

    bare = BARE_NUMBER_PATTERN.search(text)
    if bare:
        amount = parse_locale_number(bare.group(1))
        if amount is not None:
            return BareNumber(amount=amount, label=text)

    logger.debug(f"Pack label '{text}' has no quantity")
    return Unresolved(label=text)


def normalize_unit(token: str | None) -> str:
    """Map a unit token onto its base unit ("kg", "L" or "ud")."""
    if not token:
        return "ud"
    return UNIT_SYNONYMS.get(str(token).strip().lower(), "ud")


def is_sub_unit(token: str | None) -> bool:
    """True for gram and millilitre tokens (thousandths of a base unit)."""
    return bool(token) and str(token).strip().lower() in SUB_UNIT_TOKENS


def unit_scale(token: str | None) -> float:
    """Factor converting an amount in *token* units into its base unit."""
    return 1.0 / SUB_UNIT_DIVISOR if is_sub_unit(token) else 1.0


def to_base_units(amount: float, token: str | None) -> float:
    """Express *amount* of *token* in its base unit (500 g → 0.5)."""
    if amount is None or amount <= 0:
        return 0.0
    if is_sub_unit(token):
        return amount / SUB_UNIT_DIVISOR
    return amount


def source_unit_symbol(token: str) -> str:
    """Canonical short symbol for the unit a label was written in."""
    base_unit = normalize_unit(token)
    if is_sub_unit(token):
        return SUB_UNIT_SYMBOLS[base_unit]
    return SOURCE_UNIT_SYMBOLS[base_unit]


def unit_quantity_or_default(label: str | None) -> tuple[float, str]:
    """
    Base-unit quantity of a label, defaulting to one unit.

    Only for display helpers: row validation must treat an unresolved pack
    as an error instead of accepting this default.
    """
    pack = parse_pack(label)
    if isinstance(pack, Unresolved) or pack.base_total <= 0:
        return 1.0, "ud"
    return pack.base_total, pack.base_unit


def calculate_unit_price(price: float | None, content_amount: float | None) -> float:
    """
    Price per base unit.  0 when either input is missing or not positive.
    """
    if not price or price <= 0 or not content_amount or content_amount <= 0:
        return 0.0
    return price / content_amount
