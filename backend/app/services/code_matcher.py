"""Typo suggestions for discount codes that failed lookup."""

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.discount_code import normalize_code
from app.repositories.discount_code_repository import DiscountCodeRepository

logger = logging.getLogger(__name__)


def levenshtein_distance(first: str, second: str) -> int:
    """Minimum number of single-character insertions, deletions and substitutions.

    Keeps two rows of the DP table, sized by the shorter string.
    """
    if len(first) < len(second):
        first, second = second, first
    if not second:
        return len(first)

    previous = list(range(len(second) + 1))
    for i, left in enumerate(first, start=1):
        current = [i] + [0] * len(second)
        for j, right in enumerate(second, start=1):
            cost = 0 if left == right else 1
            current[j] = min(
                previous[j] + 1,  # deletion
                current[j - 1] + 1,  # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current
    return previous[-1]


def suggest_code(
    input_code: str,
    active_codes: Iterable[str],
    max_distance: int | None = None,
    max_ratio: float | None = None,
) -> str | None:
    """Return the closest active code, or None when nothing is close enough.

    A candidate qualifies only if its distance is at most ``max_distance`` and
    strictly below ``max_ratio`` times the input length, so short inputs do not
    match long unrelated codes. Codes are scanned in sorted order and the first
    of equally close candidates wins.
    """
    max_distance = settings.SUGGESTION_MAX_DISTANCE if max_distance is None else max_distance
    max_ratio = settings.SUGGESTION_MAX_RATIO if max_ratio is None else max_ratio

    normalized = normalize_code(input_code)
    if not normalized:
        return None

    best: str | None = None
    best_distance = max_distance + 1
    for candidate in sorted(active_codes):
        distance = levenshtein_distance(normalized, candidate)
        if distance > max_distance or distance >= len(normalized) * max_ratio:
            continue
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


class CodeMatcher:
    """Looks up active codes and proposes the nearest one. Never raises."""

    def __init__(self, db: Session):
        self.db = db
        self.code_repo = DiscountCodeRepository(db)

    def suggest(self, input_code: str) -> str | None:
        try:
            active_codes = self.code_repo.list_active_codes()
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Could not load active codes for suggestion", exc_info=True)
            return None
        return suggest_code(input_code, active_codes)
