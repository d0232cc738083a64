"""
Catalog schema definitions shared by the normalizer and the importer.

Defines the canonical base units, area classifications, and the defaults
applied when a price list leaves a field blank.
"""

# Canonical units every quantity is normalized into.
BASE_UNITS: tuple[str, ...] = ("kg", "L", "ud")

# Area classification of an ingredient or supplier product.
AREAS: tuple[str, ...] = ("kitchen", "dining", "both")
DEFAULT_AREA: str = "both"

# IGIC (Canary Islands) general rate, in percent.
DEFAULT_TAX_PERCENT: float = 7.0

DEFAULT_CATEGORY: str = "General"
DEFAULT_LEAD_TIME_DAYS: int = 1

# Persisted SupplierPrice defaults
DEFAULT_DISCOUNT_PCT: float = 0.0

# Two final prices closer than this are a tie for "best price".
PRICE_TIE_TOLERANCE: float = 1e-9
