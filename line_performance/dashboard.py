"""
Dashboard-ready output functions.

These are the primary entry points for a front end. Each function returns
plain dicts or DataFrames suitable for rendering cards, ranking tables and
distribution charts.
"""

import logging
from collections import Counter
from datetime import date
from typing import Sequence

import pandas as pd

from .aggregation import aggregate, by_line_shift, summarize
from .config import DEFAULT_RATING, PLANT_NAME, RATING_THRESHOLDS
from .models import ComputedMetrics, WorkflowRule
from .ranking import rank, rank_windows
from .workflow import workflow_statistics

logger = logging.getLogger(__name__)

TOP_PERFORMER_COUNT = 3


def get_ranking_overview(
    metrics: Sequence[ComputedMetrics],
    today: date | None = None,
) -> pd.DataFrame:
    """One row per scored entity with its overall, daily, weekly and monthly ranks.

    Rows are in overall rank order; a window the entity falls outside of
    leaves its rank empty.
    """
    ranked = rank_windows(metrics, today=today)
    if not ranked:
        logger.warning("No scored rows to rank")
        return pd.DataFrame()
    return pd.DataFrame([entity.to_dict() for entity in ranked])


def get_line_shift_averages(metrics: Sequence[ComputedMetrics]) -> pd.DataFrame:
    """Per line/shift averages of the headline metrics, best total score first."""
    df = aggregate(metrics, by_line_shift)
    if df.empty:
        return df
    df = df.sort_values("total_score_avg", ascending=False, kind="stable")
    return df.reset_index(drop=True)


def get_top_performers(
    metrics: Sequence[ComputedMetrics],
    count: int = TOP_PERFORMER_COUNT,
) -> list[dict]:
    return [
        {"rank": position, **m.to_dict()}
        for position, m in rank(metrics)[:count]
    ]


def get_rating_distribution(metrics: Sequence[ComputedMetrics]) -> dict[str, int]:
    """Count of entities per performance rating, best rating first."""
    counts = Counter(m.performance_rating for m in metrics)
    labels = [label for _, label in RATING_THRESHOLDS] + [DEFAULT_RATING]
    return {label: counts.get(label, 0) for label in labels}


def get_manager_overview(
    metrics: Sequence[ComputedMetrics],
    rules: Sequence[WorkflowRule] = (),
    today: date | None = None,
) -> dict:
    """Single entry point a front end would call to populate cards and tables.

    Parameters
    ----------
    metrics : Scored rows for the selected window.
    rules : Workflow definitions, for the automation status card.
    today : Reference date for the ranking windows.

    Returns
    -------
    dict with plant, record_count, averages, ranking, top_performers,
    rating_distribution and workflows.
    """
    overview = {
        "plant": PLANT_NAME,
        "record_count": len(metrics),
        "averages": summarize(metrics),
        "ranking": [entity.to_dict() for entity in rank_windows(metrics, today=today)],
        "top_performers": get_top_performers(metrics),
        "rating_distribution": get_rating_distribution(metrics),
        "workflows": workflow_statistics(rules),
    }
    logger.info("Built manager overview with %d rows", len(metrics))
    return overview
