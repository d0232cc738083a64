"""
Column mapper — the finalized association of target fields to source columns.

The mapping itself is decided outside the core (the user confirms it in the
ingestion wizard); this module only represents it as an immutable value and
enforces that it is complete before normalization runs:
  1. Every key must be a known target field.
  2. product, supplier and price must be mapped.
  3. Content must be resolvable: pack_description, or content_amount + unit.
  4. Every mapped source column must exist in the extracted table.

Public API:
    ColumnMapping.from_dict(mapping) → ColumnMapping
    ColumnMapping.missing_required() → list[str]
    ColumnMapping.require_complete()
    ColumnMapping.require_columns(columns)
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from config.column_mapping import CONTENT_FIELD_GROUPS, REQUIRED_FIELDS, TARGET_FIELDS
from processing.errors import MappingError
from utils.fuzzy_match import best_match

logger = logging.getLogger(__name__)

# Minimum fuzzy score for suggesting a source column after a mismatch
COLUMN_SUGGESTION_THRESHOLD = 80


# ═══════════════════════════════════════════════════════════════════════════
# Value object
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ColumnMapping:
    """Immutable target-field → source-column association."""

    fields: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, mapping: Mapping[str, str | None]) -> "ColumnMapping":
        """
        Build a mapping, dropping blank entries.

        Raises:
            MappingError: A key is not a known target field.
        """
        unknown = sorted(key for key in mapping if key not in TARGET_FIELDS)
        if unknown:
            raise MappingError(
                f"Unknown target field(s): {unknown}. "
                f"Valid fields: {list(TARGET_FIELDS)}"
            )

        cleaned = {
            key: str(source).strip()
            for key, source in mapping.items()
            if source is not None and str(source).strip()
        }
        return cls(fields=MappingProxyType(cleaned))

    def source_for(self, target: str) -> str | None:
        return self.fields.get(target)

    def is_mapped(self, target: str) -> bool:
        return target in self.fields

    def missing_required(self) -> list[str]:
        """
        Target fields that still need a source column.

        When neither content group is complete, the missing fields of the
        closest group are reported (pack_description if nothing is mapped).
        """
        missing = [key for key in REQUIRED_FIELDS if key not in self.fields]

        group_gaps = [
            [key for key in group if key not in self.fields]
            for group in CONTENT_FIELD_GROUPS
        ]
        if all(group_gaps):
            partial = [
                gaps for gaps, group in zip(group_gaps, CONTENT_FIELD_GROUPS)
                if len(gaps) < len(group)
            ]
            missing.extend(partial[0] if partial else group_gaps[0])

        return missing

    def require_complete(self) -> None:
        """Raise MappingError naming every missing required field."""
        missing = self.missing_required()
        if missing:
            labels = ", ".join(f"{TARGET_FIELDS[key]} ({key})" for key in missing)
            logger.error(f"Incomplete column mapping, missing: {labels}")
            raise MappingError(f"Missing required fields: {labels}")

    def require_columns(self, columns: list[str]) -> None:
        """Raise MappingError when a mapped source column is not in *columns*."""
        absent = {
            target: source
            for target, source in self.fields.items()
            if source not in columns
        }
        if absent:
            hints = []
            for source in absent.values():
                suggestion, _ = best_match(source, columns, threshold=COLUMN_SUGGESTION_THRESHOLD)
                if suggestion:
                    hints.append(f"'{source}' → '{suggestion}'?")
            hint = f" Did you mean: {', '.join(hints)}" if hints else ""
            raise MappingError(
                f"Mapped columns not found in source: {absent}. "
                f"Available columns: {columns}.{hint}"
            )
