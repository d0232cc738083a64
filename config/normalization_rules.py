"""
Deterministic normalization lookup tables.

Unit synonyms map (lowercased, stripped) tokens onto the three base units.
Sub-unit tokens (grams, millilitres) carry a scale factor so the amount can
be expressed in the base unit.  Unknown tokens fall back to "ud".
"""

import re

# ---------------------------------------------------------------------------
# Unit synonyms → base unit
# ---------------------------------------------------------------------------
UNIT_SYNONYMS: dict[str, str] = {
    "kg": "kg",
    "kgs": "kg",
    "kilo": "kg",
    "kilos": "kg",
    "kilogramo": "kg",
    "kilogramos": "kg",
    "g": "kg",
    "gr": "kg",
    "grs": "kg",
    "gramo": "kg",
    "gramos": "kg",

    "l": "L",
    "lt": "L",
    "lts": "L",
    "litro": "L",
    "litros": "L",
    "ml": "L",
    "mililitro": "L",
    "mililitros": "L",

    "ud": "ud",
    "uds": "ud",
    "u": "ud",
    "unidad": "ud",
    "unidades": "ud",
    "pza": "ud",
    "pieza": "ud",
    "piezas": "ud",
    "botella": "ud",
    "botellas": "ud",
    "paquete": "ud",
    "paquetes": "ud",
}

# Tokens measured in thousandths of their base unit.
SUB_UNIT_TOKENS: set[str] = {
    "g", "gr", "grs", "gramo", "gramos",
    "ml", "mililitro", "mililitros",
}
SUB_UNIT_DIVISOR: float = 1000.0

# Canonical short symbol for each token family, used to report a pack in the
# unit it was written in ("500 g" → unit "g").
SOURCE_UNIT_SYMBOLS: dict[str, str] = {
    "kg": "kg",
    "L": "L",
    "ud": "ud",
}
SUB_UNIT_SYMBOLS: dict[str, str] = {
    "kg": "g",
    "L": "ml",
}

# Container words that may prefix a multi-pack ("Caja 6x1 L").
CONTAINER_WORDS: tuple[str, ...] = ("caja", "pack", "bandeja", "saco", "paquete", "fardo")

# ---------------------------------------------------------------------------
# Pack notation patterns
# ---------------------------------------------------------------------------
_NUMBER = r"\d+(?:[.,]\d+)?"
# Longest alternatives first so "kg" wins over "g" and "ml" over "l".
_UNIT_TOKEN = "|".join(
    sorted((re.escape(token) for token in UNIT_SYNONYMS), key=len, reverse=True)
)

MULTI_PACK_PATTERN = re.compile(
    rf"(?:(?:{'|'.join(CONTAINER_WORDS)})\s+(?:de\s+)?)?"
    rf"(\d+)\s*[x×]\s*({_NUMBER})\s*({_UNIT_TOKEN})\b",
    re.IGNORECASE,
)
SIMPLE_PACK_PATTERN = re.compile(
    rf"({_NUMBER})\s*({_UNIT_TOKEN})\b",
    re.IGNORECASE,
)
BARE_NUMBER_PATTERN = re.compile(rf"({_NUMBER})")

# ---------------------------------------------------------------------------
# Area tokens: substring → area.  Checked in order; first hit wins.
# ---------------------------------------------------------------------------
AREA_TOKENS: list[tuple[str, str]] = [
    ("cocina", "kitchen"),
    ("kitchen", "kitchen"),
    ("sala", "dining"),
    ("comedor", "dining"),
    ("dining", "dining"),
]

# ---------------------------------------------------------------------------
# OCR price-line patterns.  Named groups: name (optional), price, unit.
# ---------------------------------------------------------------------------
OCR_PRICE_PATTERNS: list[re.Pattern] = [
    # "Aceite de oliva 15,50 €/L"
    re.compile(
        r"(?P<name>[^\d€$£]*[A-Za-zÁÉÍÓÚÑáéíóúñü][^\d€$£]*?)\s+"
        r"(?P<price>\d+[.,]\d{2})\s*€?\s*/\s*(?P<unit>kg|l|ud|unidad|litro|kilo)\b",
        re.IGNORECASE,
    ),
    # "Harina € 0,89 /kg"
    re.compile(
        r"(?P<name>[^\d€$£]*[A-Za-zÁÉÍÓÚÑáéíóúñü][^\d€$£]*?)\s*"
        r"€\s*(?P<price>\d+[.,]\d{2})\s*/?\s*(?P<unit>kg|l|ud)\b",
        re.IGNORECASE,
    ),
    # "Tomate pera 1,20 kg" (no currency sign, no slash)
    re.compile(
        r"(?P<name>[^\d€$£]*[A-Za-zÁÉÍÓÚÑáéíóúñü][^\d€$£]*?)\s+"
        r"(?P<price>\d+[.,]\d{2})\s*€?\s+(?P<unit>kg|l|ud|unidad|litro|kilo)\b",
        re.IGNORECASE,
    ),
]

# Placeholder used when an OCR line has a price but no legible name.
OCR_UNKNOWN_INGREDIENT: str = "Ingrediente no identificado"
