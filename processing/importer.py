"""
Price importer — persists validated rows into the catalog.

Each valid NormalizedRow goes through four steps:
  1. resolve the ingredient (organization, product name)
  2. resolve the supplier (organization, supplier name)
  3. resolve the supplier product (supplier, ingredient)
  4. replace the supplier product's active price

Steps 1-3 are idempotent create-or-fetch calls; step 4 is the atomic
deactivate-then-insert switch.  A failing row is recorded and the batch
carries on.  Rows for the same supplier and product never run at the same
time, so a batch containing the same offer twice ends with exactly one
active price (the later row's when running sequentially).

Public API:
    ImportResult
    import_row(row, organization_id, repository, now) → SupplierPrice
    import_rows(rows, organization_id, repository, max_workers, row_timeout,
                cancel_event) → ImportResult
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from processing.errors import IngestError
from processing.normalizer import NormalizedRow
from storage.models import SupplierPrice, name_key
from storage.repository import CatalogRepository, PriceObservation
from utils.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

# How often a queued row is checked for having started
_QUEUED_POLL_SECONDS = 0.05


class _RowCancelled(Exception):
    """The batch was cancelled before this row started."""


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ImportResult:
    """Aggregate outcome of one import batch."""

    processed_count: int = 0
    failed_count: int = 0
    cancelled_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed_count > 0


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def import_row(
    row: NormalizedRow,
    organization_id: str,
    repository: CatalogRepository,
    now: datetime | None = None,
) -> SupplierPrice:
    """
    Persist one valid row.

    Raises:
        ResolutionError: Steps 1-3 failed.
        InvariantViolationError: The price switch was rolled back.
    """
    ingredient = repository.resolve_ingredient(
        organization_id,
        row.product,
        category=row.category,
        unit_base=row.unit,
        area=row.area,
    )
    supplier = repository.resolve_supplier(organization_id, row.supplier)
    supplier_product = repository.resolve_supplier_product(
        supplier.id, ingredient.id, area=row.area
    )

    observation = PriceObservation(
        pack_description=row.pack_label or _fallback_pack_description(row),
        pack_unit=row.unit,
        pack_net_qty=row.content_amount,
        pack_price=row.price,
        tax_pct=row.tax_percent / 100,
    )
    return repository.replace_active_price(supplier_product.id, observation, now)


def import_rows(
    rows: list[NormalizedRow],
    organization_id: str,
    repository: CatalogRepository,
    max_workers: int = 1,
    row_timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> ImportResult:
    """
    Import a batch of normalized rows.

    Invalid rows are skipped and reported.  Valid rows run on a thread
    pool; rows sharing a supplier product are serialized.

    Args:
        rows: Output rows of the normalizer.
        organization_id: Catalog scope.
        repository: Catalog persistence.
        max_workers: Worker threads (1 = sequential).
        row_timeout: Seconds each row may run, counted from when it starts
                     (time spent queued behind other rows does not count);
                     None or 0 waits forever.  A timed-out row is reported
                     as failed and the batch carries on.
        cancel_event: When set, rows not yet started are cancelled; rows
                      already committed stay committed.

    Returns:
        ImportResult with counts and one "Row N (product): message" entry
        per skipped or failed row.
    """
    result = ImportResult()
    cancel_event = cancel_event or threading.Event()
    row_locks = KeyedLock()

    valid_rows = []
    for row in rows:
        if row.is_valid:
            valid_rows.append(row)
        else:
            result.skipped_count += 1
            result.errors.append(
                _row_message(row, f"skipped, invalid: {'; '.join(row.errors)}")
            )

    if not valid_rows:
        logger.info(f"Import: nothing to import ({result.skipped_count} invalid rows)")
        return result

    started: dict[int, float] = {}

    def run(position: int, row: NormalizedRow) -> SupplierPrice:
        key = (name_key(row.supplier), name_key(row.product))
        with row_locks.hold(key):
            if cancel_event.is_set():
                raise _RowCancelled()
            started[position] = time.monotonic()
            return import_row(row, organization_id, repository)

    timeout = row_timeout or None
    timed_out: list[tuple[int, NormalizedRow, Future]] = []
    with ThreadPoolExecutor(
        max_workers=max(1, max_workers), thread_name_prefix="import"
    ) as pool:
        futures = [
            (row, pool.submit(run, position, row))
            for position, row in enumerate(valid_rows)
        ]

        for position, (row, future) in enumerate(futures):
            try:
                _wait_for_row(future, started, position, timeout)
                result.processed_count += 1
            except _RowCancelled:
                result.cancelled_count += 1
            except FutureTimeoutError:
                result.failed_count += 1
                message = _row_message(row, f"timed out after {timeout}s")
                timed_out.append((len(result.errors), row, future))
                result.errors.append(message)
                logger.error(message)
            except (IngestError, SQLAlchemyError) as exc:
                result.failed_count += 1
                message = _row_message(row, str(exc))
                result.errors.append(message)
                logger.error(message)

    # The pool has drained; a timed-out row may still have completed
    for index, row, future in timed_out:
        if future.exception() is None:
            result.errors[index] += "; it finished later and its price was committed"
            logger.warning(_row_message(row, "finished after timing out; price committed"))

    logger.info(
        f"Import complete: {result.processed_count} processed, "
        f"{result.failed_count} failed, {result.cancelled_count} cancelled, "
        f"{result.skipped_count} skipped"
    )
    return result


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _wait_for_row(
    future: Future,
    started: dict[int, float],
    position: int,
    timeout: float | None,
) -> SupplierPrice:
    """
    Wait for one row's future, timing it from when the row started.

    A row still queued behind other rows is never timed out.

    Raises:
        concurrent.futures.TimeoutError: The row ran longer than *timeout*.
    """
    if timeout is None:
        return future.result()

    while position not in started:
        try:
            return future.result(timeout=_QUEUED_POLL_SECONDS)
        except FutureTimeoutError:
            continue

    remaining = started[position] + timeout - time.monotonic()
    return future.result(timeout=max(remaining, 0))


def _row_message(row: NormalizedRow, message: str) -> str:
    return f"Row {row.row_index} ({row.product or '?'}): {message}"


def _fallback_pack_description(row: NormalizedRow) -> str:
    return f"{row.product} - {row.content_amount:g} {row.unit}"
