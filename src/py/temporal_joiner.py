"""Attach Davis–Haltiwanger growth rates against the previous quarter.

    rate = 2 (x_t − x_{t−1}) / (x_t + x_{t−1})

is bounded in [-2, 2] for non-negative counts.  The previous quarter is
matched on ``employer_id`` only, so an employer that appears under several
industry codes in t−1 matches every one of those rows.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

RATE_COLUMNS = {
    "employment_rate": "num_employees",
    "hire_rate": "hires",
    "separation_rate": "separations",
}

PRIOR_COLUMNS = {
    "num_employees": "prior_num_employees",
    "hires": "prior_hires",
    "separations": "prior_separations",
}


def dh_growth_rate(current, prior) -> pd.Series:
    """Symmetric growth rate; 0 when both sides are 0, NaN when either is missing."""
    cur = pd.to_numeric(pd.Series(current), errors="coerce").astype("float64")
    pri_values = prior.to_numpy() if isinstance(prior, pd.Series) else prior
    pri = pd.Series(np.broadcast_to(np.asarray(pri_values, dtype=object), cur.shape), index=cur.index)
    pri = pd.to_numeric(pri, errors="coerce").astype("float64")
    denom = cur + pri
    rate = 2.0 * (cur - pri) / denom.replace(0.0, np.nan)
    return rate.mask(denom == 0, 0.0)


def prior_summary(prior_aggregate: pd.DataFrame) -> pd.DataFrame:
    """Headcount, hires and separations of t−1, keyed by employer id.

    Rows without an employer id are left out so they never match each other.
    """
    prior_aggregate = prior_aggregate[prior_aggregate["employer_id"].notna()]
    return prior_aggregate[["employer_id", *PRIOR_COLUMNS]].rename(columns=PRIOR_COLUMNS)


def join_prior(current: pd.DataFrame, prior_aggregate: pd.DataFrame | None) -> pd.DataFrame:
    """Return *current* with ``employment_rate``, ``hire_rate`` and ``separation_rate``.

    ``prior_aggregate=None`` marks the first quarter of the window: there is no
    t−1 data at all and every rate is left undefined.
    """
    if prior_aggregate is None:
        out = current.copy()
        for rate in RATE_COLUMNS:
            out[rate] = np.nan
        return out

    merged = current.merge(prior_summary(prior_aggregate), on="employer_id", how="left")
    for rate, measure in RATE_COLUMNS.items():
        merged[rate] = dh_growth_rate(merged[measure], merged[PRIOR_COLUMNS[measure]])
    return merged.drop(columns=list(PRIOR_COLUMNS.values()))
