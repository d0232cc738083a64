"""
Runtime settings for the ingestion pipeline.

Values come from the environment (optionally via a local .env file) and
fall back to the defaults below.  Import the constants where needed; no
other runtime logic lives here.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from config.schema import DEFAULT_TAX_PERCENT

PROJECT_ROOT = Path(__file__).resolve().parents[1]

load_dotenv(PROJECT_ROOT / ".env")

DATABASE_URL: str = os.getenv(
    "PRICE_INGEST_DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'catalog.db'}"
)

# Importer worker pool.  1 = process rows sequentially.
MAX_WORKERS: int = int(os.getenv("PRICE_INGEST_MAX_WORKERS", "1"))

# Seconds allowed per imported row; 0 disables the timeout.
ROW_TIMEOUT_SECONDS: float = float(os.getenv("PRICE_INGEST_ROW_TIMEOUT", "30"))

# Organization default tax percent, used when the tax column is blank.
ORGANIZATION_TAX_PERCENT: float = float(
    os.getenv("PRICE_INGEST_DEFAULT_TAX", str(DEFAULT_TAX_PERCENT))
)

# Tesseract language pack and page-mode configuration.
OCR_LANGUAGE: str = os.getenv("PRICE_INGEST_OCR_LANG", "spa")
OCR_TESSERACT_CONFIG: str = r"--oem 3 --psm 6"
OCR_RENDER_RESOLUTION: int = 300

# Positioned text within this many units vertically lands on the same row.
ROW_Y_TOLERANCE: float = 5.0

# Extensions handled by each reader.
DELIMITED_EXTENSIONS: set[str] = {".csv", ".txt", ".tsv"}
SPREADSHEET_EXTENSIONS: set[str] = {".xlsx", ".xlsm"}
PDF_EXTENSIONS: set[str] = {".pdf"}
IMAGE_EXTENSIONS: set[str] = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff"}

# Near-duplicate ingredient names at or above this score are logged.
DUPLICATE_NAME_THRESHOLD: int = 90
