"""
Column mapping configuration.

Lists the target fields a source column can be mapped onto, which of them
are required, and the keyword patterns used to recognise a header row in
PDF text where no explicit header exists.
"""

import re

# ---------------------------------------------------------------------------
# Target fields: key → human-readable label (used in error messages)
# ---------------------------------------------------------------------------
TARGET_FIELDS: dict[str, str] = {
    "product": "Producto",
    "supplier": "Proveedor",
    "pack_description": "Formato",
    "content_amount": "Contenido",
    "unit": "Unidad",
    "price": "Precio",
    "tax_percent": "IGIC",
    "area": "Área",
    "reference": "Referencia",
    "category": "Categoría",
}

# Always required
REQUIRED_FIELDS: tuple[str, ...] = ("product", "supplier", "price")

# At least one of these groups must be fully mapped to resolve the content.
CONTENT_FIELD_GROUPS: tuple[tuple[str, ...], ...] = (
    ("pack_description",),
    ("content_amount", "unit"),
)

# ---------------------------------------------------------------------------
# Header keyword patterns for positioned (PDF) text.  A candidate row scores
# one point per (cell, pattern) match.
# ---------------------------------------------------------------------------
HEADER_KEYWORD_PATTERNS: list[re.Pattern] = [
    re.compile(r"referencia|código|codigo|code|ref", re.IGNORECASE),
    re.compile(r"descripción|descripcion|producto|nombre|name|description", re.IGNORECASE),
    re.compile(r"formato|presentación|presentacion|format|pack", re.IGNORECASE),
    re.compile(r"precio|price|pvp|importe", re.IGNORECASE),
    re.compile(r"unidad|unit|medida", re.IGNORECASE),
    re.compile(r"iva|igic|tax", re.IGNORECASE),
    re.compile(r"proveedor|supplier|distribuidor", re.IGNORECASE),
]

# Number of leading rows considered as header candidates.
HEADER_CANDIDATE_ROWS: int = 3

# Prefix for synthesized column names ("Column 1", "Column 2", ...).
GENERIC_COLUMN_PREFIX: str = "Column"

# Fixed header emitted for rows recovered from unstructured OCR text.
# OCR prices are per unit, so "Formato" always holds "1 <unit>".
OCR_COLUMNS: list[str] = ["Producto", "Precio", "Unidad", "Formato", "Texto"]
