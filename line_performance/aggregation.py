"""
Group-wise aggregation of scored rows.

Rows are flattened into a DataFrame and grouped with sort=False so groups
come back in first-seen order. Each requested field yields
<field>_sum, <field>_avg, <field>_min, <field>_max and <field>_std, where
std is the sample deviation (ddof=1) and is reported as 0 for groups of
fewer than two rows.
"""

import logging
from typing import Any, Callable, Iterable, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = (
    "efficiency",
    "plan_completion",
    "cph",
    "absent_rate",
    "separation_rate",
    "oee",
    "total_score",
)

STATS = (("sum", "sum"), ("avg", "mean"), ("min", "min"), ("max", "max"), ("std", "std"))

GROUP_COLUMN = "group"


def by_line_shift(row: dict) -> Any:
    return row["line_shift"]


def by_date(row: dict) -> Any:
    return row["date"]


def by_checkpoint(row: dict) -> Any:
    return row["checkpoint_id"]


def to_frame(items: Iterable[Any]) -> pd.DataFrame:
    """Flatten dataclass records (or plain dicts) into a DataFrame."""
    rows = [item if isinstance(item, dict) else item.to_dict() for item in items]
    return pd.DataFrame(rows)


def _stat_columns(fields: Sequence[str]) -> list[str]:
    return ["count"] + [f"{f}_{label}" for f in fields for label, _ in STATS]


def aggregate(
    items: Iterable[Any],
    key: str | Callable[[dict], Any],
    fields: Sequence[str] = DEFAULT_FIELDS,
) -> pd.DataFrame:
    """Aggregate rows per group.

    Parameters
    ----------
    items : ComputedMetrics, RankedEntity, QualityMeasurement or dict rows.
    key : Column name, or a function of the flattened row returning the
        group key (see by_line_shift, by_date, by_checkpoint).
    fields : Numeric columns to aggregate.

    Returns
    -------
    DataFrame with one row per group in first-seen order: the group key
    column, count, then the five statistics per field.
    """
    df = to_frame(items)
    if df.empty:
        logger.warning("aggregate called with no rows")
        return pd.DataFrame(columns=[GROUP_COLUMN] + _stat_columns(fields))

    if callable(key):
        df[GROUP_COLUMN] = [key(row) for row in df.to_dict("records")]
        key_col = GROUP_COLUMN
    else:
        key_col = key

    missing = [f for f in fields if f not in df.columns]
    for f in missing:
        df[f] = 0.0
    if missing:
        logger.warning("aggregate: fields %s absent from rows, treated as 0", missing)

    named = {"count": (fields[0], "size")}
    for f in fields:
        for label, func in STATS:
            named[f"{f}_{label}"] = (f, func)

    df[list(fields)] = df[list(fields)].apply(pd.to_numeric, errors="coerce").fillna(0.0).astype(float)
    out = df.groupby(key_col, sort=False, dropna=False).agg(**named).reset_index()
    out = out.fillna(0.0)

    logger.info("Built aggregate over %s with %d groups", key_col, len(out))
    return out


def summarize(items: Iterable[Any], fields: Sequence[str] = DEFAULT_FIELDS) -> dict:
    """Single-group aggregate over every row; zeroed when there are none."""
    items = list(items)
    if not items:
        return {col: 0 if col == "count" else 0.0 for col in _stat_columns(fields)}

    out = aggregate(items, lambda _row: "all", fields)
    record = out.drop(columns=[GROUP_COLUMN]).to_dict("records")[0]
    return {k: (int(v) if k == "count" else float(v)) for k, v in record.items()}


def records(df: pd.DataFrame) -> list[dict]:
    """DataFrame rows as plain-Python dicts, column order preserved."""
    return [
        {k: (v.item() if hasattr(v, "item") else v) for k, v in row.items()}
        for row in df.to_dict("records")
    ]
