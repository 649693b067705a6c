"""
Bounded per-instrument price history.

A history is an ascending tuple of QuotePoint with unique dates. New points
overwrite same-day entries, so a refetch corrects rather than duplicates.
"""

from datetime import date
from typing import Dict, Iterable, Tuple

from fund_ingest.services.data.types import QuotePoint


DEFAULT_MAX_HISTORY = 120


def merge(
    existing: Iterable[QuotePoint],
    new_points: Iterable[QuotePoint],
    max_history: int = DEFAULT_MAX_HISTORY
) -> Tuple[QuotePoint, ...]:
    """
    Merge new observations into an existing history.

    Args:
        existing: Current history (any order, duplicates tolerated)
        new_points: Fresh observations; win over existing on the same date
        max_history: Maximum entries kept (oldest dropped first)

    Returns:
        Ascending, date-unique history of at most max_history points
    """
    if max_history < 1:
        raise ValueError(f"max_history must be >= 1, got {max_history}")

    by_date: Dict[date, QuotePoint] = {}
    for point in existing:
        by_date[point.date_key] = point
    for point in new_points:
        by_date[point.date_key] = point

    ordered = [by_date[d] for d in sorted(by_date)]
    return tuple(ordered[-max_history:])
