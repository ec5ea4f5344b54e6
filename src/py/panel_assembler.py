"""Filter each quarter's employer rows by headcount and stack them into one panel."""

from __future__ import annotations

import logging
from typing import Iterable

import pandas as pd

from employer_aggregator import AGGREGATE_COLUMNS
from temporal_joiner import RATE_COLUMNS

logger = logging.getLogger(__name__)

PANEL_COLUMNS = AGGREGATE_COLUMNS + list(RATE_COLUMNS)

_INT_COLUMNS = ("year", "quarter", "num_employees", "hires", "separations", "fq_num_employees")
_ID_COLUMNS = ("employer_id", "industry_code")


def empty_panel() -> pd.DataFrame:
    return pd.DataFrame(
        {
            c: pd.Series(dtype="object" if c in _ID_COLUMNS else "int64" if c in _INT_COLUMNS else "float64")
            for c in PANEL_COLUMNS
        }
    )


def filter_min_employees(rows: pd.DataFrame, min_employees: int) -> pd.DataFrame:
    """Keep employer-quarter rows with at least *min_employees* distinct workers."""
    if min_employees < 1:
        raise ValueError(f"min_employees must be >= 1, got {min_employees}")
    return rows.loc[rows["num_employees"] >= min_employees]


def assemble_panel(quarters: Iterable[pd.DataFrame], min_employees: int) -> pd.DataFrame:
    """Filter every quarter on its own, then concatenate in the order given.

    No deduplication is done; rows within a quarter are sorted by employer id
    and industry code.
    """
    parts = []
    for rows in quarters:
        kept = filter_min_employees(rows, min_employees)
        logger.debug("Kept %s of %s employer rows", f"{len(kept):,}", f"{len(rows):,}")
        if kept.empty:
            continue
        parts.append(
            kept[PANEL_COLUMNS].sort_values(
                ["employer_id", "industry_code"], kind="mergesort", na_position="last"
            )
        )

    if not parts:
        return empty_panel()
    return pd.concat(parts, ignore_index=True)
