#!/usr/bin/env python3
"""
Supplier Price List Import

Extracts a supplier price list (CSV, spreadsheet, PDF or scanned image),
normalizes it with an explicit column mapping, prints the validation
report, and imports the valid rows into the ingredient catalog.

Usage:
    python3 ingest.py lista.csv --org rest-01 \\
        --map product=Producto --map supplier=Proveedor \\
        --map price=Precio --map pack_description=Formato
    python3 ingest.py factura.pdf --org rest-01 --ocr --supplier "Mercado Central" \\
        --map product=Producto --map price=Precio --map pack_description=Formato
"""

import argparse
import logging
import signal
import sys
import threading
from contextlib import ExitStack
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from config.column_mapping import TARGET_FIELDS
from config.settings import (
    DATABASE_URL,
    MAX_WORKERS,
    ORGANIZATION_TAX_PERCENT,
    ROW_TIMEOUT_SECONDS,
)
from processing.column_mapper import ColumnMapping
from processing.errors import ExtractionError, MappingError
from processing.importer import ImportResult, import_rows
from processing.normalizer import normalize_table
from processing.ocr_reader import OcrEngine
from processing.quality_checker import build_validation_report
from processing.raw_table import with_constant_column
from processing.table_extractor import read_source
from storage.database import create_catalog_engine, init_db, make_session_factory
from storage.repository import CatalogRepository
from utils.log_config import setup_logging

logger = logging.getLogger("ingest")

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_ROW_FAILURES = 2

# Column added by --supplier
SUPPLIER_COLUMN = "Proveedor asignado"


def parse_mapping(pairs: list[str]) -> ColumnMapping:
    """Build a ColumnMapping from "field=Source column" arguments."""
    fields = {}
    for pair in pairs:
        target, separator, source = pair.partition("=")
        if not separator:
            raise MappingError(f"Invalid --map value '{pair}', expected field=column")
        fields[target.strip()] = source.strip()
    return ColumnMapping.from_dict(fields)


def print_import_summary(result: ImportResult) -> None:
    print("\n" + "-" * 60)
    print("IMPORT")
    print("-" * 60)
    print(f"  Processed: {result.processed_count}")
    print(f"  Failed:    {result.failed_count}")
    print(f"  Cancelled: {result.cancelled_count}")
    print(f"  Skipped:   {result.skipped_count}")
    if result.errors:
        print("\nERRORS:")
        for error in result.errors:
            print(f"  - {error}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import a supplier price list into the ingredient catalog"
    )
    parser.add_argument("file", type=Path, help="Price list file")
    parser.add_argument("--org", required=True, help="Organization identifier")
    parser.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="FIELD=COLUMN",
        help=f"Map a target field to a source column; fields: {', '.join(TARGET_FIELDS)}",
    )
    parser.add_argument(
        "--supplier",
        help="Supplier of every row, for sources without a supplier column (e.g. OCR scans)",
    )
    parser.add_argument(
        "--tax",
        type=float,
        default=ORGANIZATION_TAX_PERCENT,
        help=f"Default tax percent for blank tax cells (default: {ORGANIZATION_TAX_PERCENT:g})",
    )
    parser.add_argument(
        "--database-url",
        default=DATABASE_URL,
        help="SQLAlchemy database URL",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=MAX_WORKERS,
        help=f"Import worker threads (default: {MAX_WORKERS})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate only; do not write to the catalog",
    )
    parser.add_argument(
        "--ocr",
        action="store_true",
        help="Enable OCR for images and scanned PDFs",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument("--quiet", action="store_true", help="Warnings only")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, quiet=args.quiet)

    # Extract and normalize
    try:
        pairs = list(args.map)
        if args.supplier:
            pairs.append(f"supplier={SUPPLIER_COLUMN}")
        mapping = parse_mapping(pairs)
        with ExitStack() as stack:
            engine = stack.enter_context(OcrEngine()) if args.ocr else None
            table = read_source(args.file, ocr_engine=engine)
        if args.supplier:
            table = with_constant_column(table, SUPPLIER_COLUMN, args.supplier)
        print(f"Extracted {table.row_count} rows ({table.source_kind}) from {args.file.name}")

        normalization = normalize_table(table, mapping, default_tax_percent=args.tax)
    except (ExtractionError, MappingError) as e:
        print(f"\nError: {e}")
        return EXIT_INPUT_ERROR

    report = build_validation_report(normalization)
    print("\n" + "=" * 60)
    print("VALIDATION REPORT")
    print("=" * 60)
    for line in report.lines():
        print(line)

    if args.dry_run:
        print("\nDry run: nothing imported")
        return EXIT_OK

    # Import
    db_engine = create_catalog_engine(args.database_url)
    init_db(db_engine)
    repository = CatalogRepository(make_session_factory(db_engine))

    # Ctrl-C cancels rows not yet started; committed rows are kept
    cancel_event = threading.Event()
    previous_handler = signal.signal(
        signal.SIGINT, lambda signum, frame: cancel_event.set()
    )
    try:
        result = import_rows(
            normalization.rows,
            args.org,
            repository,
            max_workers=args.workers,
            row_timeout=ROW_TIMEOUT_SECONDS,
            cancel_event=cancel_event,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    try:
        repository.refresh_ingredient_stats(args.org)
    except SQLAlchemyError as e:
        logger.warning(f"Could not refresh ingredient stats: {e}")

    print_import_summary(result)
    return EXIT_ROW_FAILURES if result.has_failures else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
