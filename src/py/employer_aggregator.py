"""Collapse tagged wage records to employer × industry × quarter aggregates."""

from __future__ import annotations

import logging
import math
from typing import Iterable

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

GROUP_KEYS = ["employer_id", "industry_code", "year", "quarter"]

AGGREGATE_COLUMNS = GROUP_KEYS + [
    "num_employees",
    "avg_earnings",
    "total_earnings",
    "p25_earnings",
    "p75_earnings",
    "hires",
    "separations",
    "fq_num_employees",
    "fq_avg_earnings",
    "fq_total_earnings",
]


def nearest_rank(values: Iterable[float], p: float) -> float:
    """Nearest-rank percentile: the ceil(p·n)-th smallest observed value.

    Never interpolates, so the result is always one of *values*.  NaN inputs
    are ignored; an empty input returns NaN.
    """
    if not 0 <= p <= 1:
        raise ValueError(f"Percentile must lie in [0, 1], got {p}")
    if not isinstance(values, (np.ndarray, pd.Series)):
        values = list(values)
    arr = np.asarray(values, dtype=float)
    arr = np.sort(arr[~np.isnan(arr)])
    if arr.size == 0:
        return float("nan")
    # round() guards against p*n landing a hair above an integer
    rank = max(int(math.ceil(round(p * arr.size, 9))), 1)
    return float(arr[rank - 1])


def _empty_aggregate() -> pd.DataFrame:
    return pd.DataFrame({c: pd.Series(dtype="float64") for c in AGGREGATE_COLUMNS}).astype(
        {"employer_id": "object", "industry_code": "object", "year": "int64", "quarter": "int64",
         "num_employees": "int64", "hires": "int64", "separations": "int64", "fq_num_employees": "int64"}
    )


def aggregate_quarter(tagged: pd.DataFrame) -> pd.DataFrame:
    """One row per (employer, industry, year, quarter) present in *tagged*.

    Full-quarter fields cover only records employed in both adjacent
    quarters; groups without any such record get ``fq_num_employees = 0`` and
    NaN full-quarter earnings.
    """
    if tagged.empty:
        return _empty_aggregate()

    # fixed order keeps sums and percentile ties reproducible
    df = tagged.sort_values(GROUP_KEYS + ["worker_id", "wages"], kind="mergesort", na_position="last")
    df = df.assign(
        is_hire=df["is_hire"].astype("int64"),
        is_separation=df["is_separation"].astype("int64"),
    )

    grouped = df.groupby(GROUP_KEYS, dropna=False, sort=True)
    out = grouped.agg(
        num_employees=("worker_id", "nunique"),
        total_earnings=("wages", "sum"),
        p25_earnings=("wages", lambda w: nearest_rank(w, 0.25)),
        p75_earnings=("wages", lambda w: nearest_rank(w, 0.75)),
        hires=("is_hire", "sum"),
        separations=("is_separation", "sum"),
    ).reset_index()
    out["avg_earnings"] = out["total_earnings"] / out["num_employees"]

    full = df[
        df["employed_prior_quarter"].fillna(False).astype(bool)
        & df["employed_next_quarter"].fillna(False).astype(bool)
    ]
    if full.empty:
        out["fq_num_employees"] = 0
        out["fq_total_earnings"] = np.nan
        out["fq_avg_earnings"] = np.nan
    else:
        fq = (
            full.groupby(GROUP_KEYS, dropna=False, sort=True)
            .agg(fq_num_employees=("worker_id", "nunique"), fq_total_earnings=("wages", "sum"))
            .reset_index()
        )
        fq["fq_avg_earnings"] = fq["fq_total_earnings"] / fq["fq_num_employees"]
        out = out.merge(fq, on=GROUP_KEYS, how="left")
        out["fq_num_employees"] = out["fq_num_employees"].fillna(0).astype("int64")

    out = out[AGGREGATE_COLUMNS]
    logger.debug(
        "Aggregated %s records into %s employer groups", f"{len(tagged):,}", f"{len(out):,}"
    )
    return out
