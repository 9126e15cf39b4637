"""
Shared utilities for workbook ingestion: header detection, date and value
coercion, column renaming.
"""

import logging
import re
from datetime import date, datetime
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "y", "pass", "ok", "conforming"}


def normalise_date(val: Any) -> date | None:
    """Convert an Excel serial number, datetime or string to a date.

    Excel serial numbers use the 1899-12-30 epoch. Returns None for
    unparseable values.
    """
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    if isinstance(val, (int, float)):
        try:
            return (pd.Timestamp("1899-12-30") + pd.Timedelta(days=int(val))).date()
        except (ValueError, OverflowError):
            logger.warning("Could not convert serial number %s to date", val)
            return None
    try:
        return pd.Timestamp(val).date()
    except (ValueError, TypeError):
        logger.warning("Could not parse date value: %s", val)
        return None


def to_snake_case(name: str) -> str:
    """Convert a sheet header to snake_case ("OT Hours" -> "ot_hours")."""
    s = str(name).strip()
    s = s.replace("%", "pct").replace("/", "_per_").replace("(", "").replace(")", "")
    s = re.sub(r"([a-z])([A-Z])", r"\1_\2", s)
    s = re.sub(r"[^a-zA-Z0-9]+", "_", s)
    return re.sub(r"_+", "_", s.lower()).strip("_")


def find_header_row(
    sheet,
    signature: set[str],
    max_rows: int = 20,
    min_matches: int = 2,
) -> int | None:
    """Scan an openpyxl sheet for the row holding the column headers.

    Header cells are compared in snake_case form against `signature`.
    Returns the 1-based row index of the first row with at least
    `min_matches` hits, or None if not found within `max_rows`.
    """
    for row_idx, row in enumerate(sheet.iter_rows(max_row=max_rows, values_only=True), start=1):
        matches = sum(1 for v in row if v is not None and to_snake_case(v) in signature)
        if matches >= min_matches:
            return row_idx
    return None


def safe_float(val: Any, default: float | None = None) -> float | None:
    """Coerce a cell to float, returning `default` for non-numeric values."""
    if val is None:
        return default
    if isinstance(val, bool):
        return float(val)
    if isinstance(val, str):
        val = val.strip().replace(",", "")
        # Formula strings and blank cells
        if val.startswith("=") or not val:
            return default
        if val.endswith("%"):
            val = val[:-1]
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


def safe_int(val: Any, default: int = 0) -> int:
    number = safe_float(val)
    return default if number is None else int(round(number))


def parse_bool(val: Any) -> bool:
    """Interpret conformance flags written as 1/0, yes/no, pass/fail."""
    if isinstance(val, bool):
        return val
    if isinstance(val, (int, float)):
        return val != 0
    return str(val).strip().lower() in _TRUE_STRINGS
