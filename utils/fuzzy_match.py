"""
Fuzzy string matching utilities.

Wraps the thefuzz library to flag likely duplicate catalog names (e.g.
"Tomate pera" vs "tomate  de pera") when a new ingredient is created, and
to suggest the intended source column when a mapped column is missing.
Matches are advisory only; nothing is merged or remapped automatically.
"""

import logging
from collections.abc import Iterable

from thefuzz import fuzz

logger = logging.getLogger(__name__)


def best_match(
    value: str,
    candidates: Iterable[str],
    threshold: int = 90,
) -> tuple[str | None, int]:
    """
    Find the best fuzzy match for *value* among *candidates*.

    Uses token_sort_ratio which handles word reordering well (e.g.
    "Aceite oliva virgen" vs "Virgen aceite oliva").

    Args:
        value: The string to match (compared lowercased).
        candidates: Names to compare against.
        threshold: Minimum score (0-100) to accept a match.

    Returns:
        (candidate, score) if a match is found at or above threshold,
        or (None, 0) if no match qualifies.
    """
    if not value:
        return None, 0

    value_lower = value.strip().lower()

    best_candidate: str | None = None
    best_score: int = 0

    for candidate in candidates:
        score = fuzz.token_sort_ratio(value_lower, candidate.strip().lower())
        if score > best_score:
            best_score = score
            best_candidate = candidate

    if best_score >= threshold:
        logger.debug(
            f"Fuzzy matched '{value}' → '{best_candidate}' (score={best_score})"
        )
        return best_candidate, best_score

    return None, 0


def find_similar_names(
    value: str,
    candidates: Iterable[str],
    threshold: int = 90,
) -> list[tuple[str, int]]:
    """
    Every candidate scoring at or above *threshold*, best first.

    Exact (case-insensitive) matches are excluded; those are the same name,
    not a possible duplicate.
    """
    if not value:
        return []

    value_lower = value.strip().lower()
    similar = []
    for candidate in candidates:
        candidate_lower = candidate.strip().lower()
        if candidate_lower == value_lower:
            continue
        score = fuzz.token_sort_ratio(value_lower, candidate_lower)
        if score >= threshold:
            similar.append((candidate, score))

    similar.sort(key=lambda item: item[1], reverse=True)
    return similar
