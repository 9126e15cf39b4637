"""
Ranking of scored entities.

Ranks are positional and 1-based after a stable descending sort, so equal
scores keep their input order: [(A, 90), (B, 90), (C, 50)] ranks A=1, B=2,
C=3. Each ranking window is an independent pass over the subset of rows
whose date falls inside it; one RankedEntity carries every window's rank.
"""

import logging
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Sequence

from .config import RANK_WINDOWS, TRAILING_WINDOW_DAYS
from .models import ComputedMetrics, RankedEntity

logger = logging.getLogger(__name__)


def _score(entity: Any, score_field: str) -> float:
    value = entity[score_field] if isinstance(entity, dict) else getattr(entity, score_field)
    return float(value or 0.0)


def rank(
    entities: Iterable[Any],
    score_field: str = "total_score",
    key: Callable[[Any], Any] | None = None,
) -> list[tuple[int, Any]]:
    """Sort descending by score_field and attach 1-based positional ranks.

    Parameters
    ----------
    entities : ComputedMetrics (or any object / dict exposing score_field).
    score_field : Attribute or key to rank on.
    key : Optional accessor returning the object holding score_field.

    Returns
    -------
    List of (rank, entity) in rank order.
    """
    access = key or (lambda e: e)
    ordered = sorted(entities, key=lambda e: _score(access(e), score_field), reverse=True)
    return [(position, entity) for position, entity in enumerate(ordered, start=1)]


def window_predicate(window: str, today: date) -> Callable[[date], bool]:
    """Date filter for a named ranking window relative to today."""
    if window == "overall":
        return lambda d: True
    if window == "trailing_7_days":
        start = today - timedelta(days=TRAILING_WINDOW_DAYS)
        return lambda d: d >= start
    if window == "current_week":
        monday = today - timedelta(days=today.weekday())
        sunday = monday + timedelta(days=6)
        return lambda d: monday <= d <= sunday
    if window == "current_month":
        return lambda d: d.year == today.year and d.month == today.month
    raise ValueError(f"Unknown ranking window: {window!r}")


def rank_windows(
    metrics: Sequence[ComputedMetrics],
    today: date | None = None,
    windows: dict[str, str] = RANK_WINDOWS,
    score_field: str = "total_score",
) -> list[RankedEntity]:
    """Rank every entity in each window and collect the labels per entity.

    An entity outside a window simply has no label for it. Output follows
    the first window's rank order (overall by default).
    """
    today = today or date.today()
    ranked = [RankedEntity(metrics=m) for m in metrics]

    first_order: list[RankedEntity] | None = None
    for window, label in windows.items():
        inside = window_predicate(window, today)
        subset = [entry for entry in ranked if inside(entry.metrics.date)]
        positions = rank(subset, score_field, key=lambda e: e.metrics)
        for position, entry in positions:
            entry.ranks[label] = position
        if first_order is None:
            first_order = [entry for _, entry in positions]
        logger.info("Ranked %d entities in window %s", len(positions), window)

    return first_order if first_order is not None else ranked
