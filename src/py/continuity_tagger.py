"""Tag each wage record with employment continuity at the same employer.

A record for quarter *t* gets

* ``employed_prior_quarter`` – the worker/employer pair also appears in *t-1*
* ``employed_next_quarter``  – the pair also appears in *t+1*
* ``is_hire``                – not employed in *t-1*
* ``is_separation``          – not employed in *t+1*

When the neighbouring quarter is outside the analysis window the employment
flag is unknown (``<NA>``) and the record counts as a hire / separation.
"""

from __future__ import annotations

import pandas as pd

from wage_quarters import Quarter, QuarterWindow
from wage_store import WageStore

PAIR_KEYS = ["worker_id", "employer_id"]

TAG_COLUMNS = ["employed_prior_quarter", "employed_next_quarter", "is_hire", "is_separation"]


def _presence(records: pd.DataFrame, neighbour: pd.DataFrame | None) -> pd.Series:
    """Nullable boolean: does each record's pair appear in *neighbour*?"""
    if neighbour is None:
        return pd.Series(pd.NA, index=records.index, dtype="boolean")

    # a missing id never identifies a job; pandas would otherwise match NaN to NaN
    known = neighbour["worker_id"].notna() & neighbour["employer_id"].notna()
    keys = neighbour.loc[known, PAIR_KEYS].drop_duplicates()
    keys = keys.assign(_hit=True)
    # left merge on de-duplicated keys keeps one output row per record, in order
    hit = records[PAIR_KEYS].merge(keys, on=PAIR_KEYS, how="left")["_hit"]
    return pd.Series(hit.notna().to_numpy(), index=records.index, dtype="boolean")


def tag_quarter(
    records: pd.DataFrame,
    prior_records: pd.DataFrame | None = None,
    next_records: pd.DataFrame | None = None,
) -> pd.DataFrame:
    """Return a copy of *records* with the four continuity columns added.

    ``None`` for a neighbour means that quarter has no data in the window,
    which is different from an empty frame (data exists, nobody matched).
    """
    tagged = records.copy()
    tagged["employed_prior_quarter"] = _presence(records, prior_records)
    tagged["employed_next_quarter"] = _presence(records, next_records)
    tagged["is_hire"] = ~tagged["employed_prior_quarter"].fillna(False)
    tagged["is_separation"] = ~tagged["employed_next_quarter"].fillna(False)
    return tagged


def probe_continuity(
    store: WageStore,
    worker_id: str,
    employer_id: str,
    quarter: Quarter,
    window: QuarterWindow,
) -> dict[str, object]:
    """Continuity flags for a single job, answered with point lookups."""

    def _employed(neighbour: Quarter | None):
        if neighbour is None:
            return pd.NA
        return not store.lookup_jobs(worker_id, employer_id, neighbour).empty

    prior = _employed(window.prior(quarter))
    following = _employed(window.following(quarter))
    return {
        "worker_id": str(worker_id),
        "employer_id": str(employer_id),
        "quarter": quarter.label,
        "present": not store.lookup_jobs(worker_id, employer_id, quarter).empty,
        "employed_prior_quarter": prior,
        "employed_next_quarter": following,
        "is_hire": prior is not True,
        "is_separation": following is not True,
    }
