"""
Numeric converter — parses locale-formatted numbers from price list cells.

Spanish price lists write "12,50" for twelve and a half and "1.234,56" for
one thousand two hundred and thirty-four.  When a comma is present it is the
decimal separator and any dots are thousands separators; otherwise a dot is
the decimal separator.  A string without digits is invalid, never zero.

Public API:
    parse_locale_number(value) → float | None
"""

import logging
import math
import re

logger = logging.getLogger(__name__)

# Currency symbols and percent signs carry no numeric information
_NOISE_PATTERN = re.compile(r"[£€$%\s ]")
_NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")


def parse_locale_number(value: object) -> float | None:
    """
    Parse a cell value as a number using the Spanish convention.

    Examples:
        "12,50"     → 12.5
        "€ 1.234,56" → 1234.56
        "8.90"      → 8.9
        "7%"        → 7.0
        ""          → None
        "n/a"       → None

    Args:
        value: Raw cell value (str, int, float or None).

    Returns:
        The parsed float, or None when the value holds no valid number.
    """
    if value is None:
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return None if math.isnan(value) else float(value)

    raw_str = str(value).strip()
    if not any(char.isdigit() for char in raw_str):
        return None

    cleaned = _NOISE_PATTERN.sub("", raw_str)

    if "," in cleaned:
        # Dots are thousands separators, the (last) comma is the decimal point
        cleaned = cleaned.replace(".", "")
        integer_part, _, fraction = cleaned.rpartition(",")
        cleaned = f"{integer_part.replace(',', '')}.{fraction}"

    if not _NUMBER_PATTERN.match(cleaned):
        logger.debug(f"Cannot parse '{raw_str}' as a number")
        return None

    return float(cleaned)
