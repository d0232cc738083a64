"""
Quality checker — summarizes normalization results for the user.

Aggregates the per-row validation errors into a report detailed enough to
fix the source file: totals, error counts per field, and the list of
errors for each failing row (row index, field, value, message).

Public API:
    build_validation_report(result) → ValidationReport
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from processing.normalizer import NormalizationResult

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ValidationReport:
    """Aggregate validation outcome of one normalized table."""

    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    errors_per_field: dict[str, int] = field(default_factory=dict)
    row_errors: dict[int, list[dict]] = field(default_factory=dict)
    is_clean: bool = True

    def lines(self) -> list[str]:
        """Human-readable report lines."""
        output = [
            f"Rows: {self.total_rows} total, {self.valid_rows} valid, "
            f"{self.invalid_rows} invalid",
        ]
        for field_key, count in sorted(self.errors_per_field.items()):
            output.append(f"  {field_key}: {count} error(s)")
        for row_index in sorted(self.row_errors):
            for error in self.row_errors[row_index]:
                output.append(
                    f"  Row {row_index} [{error['field']}] "
                    f"'{error['value']}': {error['message']}"
                )
        return output


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def build_validation_report(result: NormalizationResult) -> ValidationReport:
    """
    Build the validation report for a normalization result.

    Args:
        result: Output of normalize_table().

    Returns:
        ValidationReport; is_clean is True only when no row has errors.
    """
    report = ValidationReport()
    report.total_rows = len(result.rows)
    report.valid_rows = result.valid_count
    report.invalid_rows = result.invalid_count

    field_counter: Counter[str] = Counter()
    for error in result.errors:
        field_counter[error.field] += 1
        report.row_errors.setdefault(error.row, []).append({
            "field": error.field,
            "value": error.value,
            "message": error.message,
        })

    report.errors_per_field = dict(field_counter)
    report.is_clean = report.invalid_rows == 0

    logger.info(
        f"Validation report: {report.total_rows} rows, clean={report.is_clean}, "
        f"{len(result.errors)} errors across {len(report.row_errors)} rows"
    )
    return report
