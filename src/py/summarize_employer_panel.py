#!/usr/bin/env python3
"""Per-quarter descriptive statistics for the employer × quarter panel.

Reads the panel from its DuckDB table (or a Parquet / CSV export) and writes
one row per quarter:

    employers, employment, mean_employees, payroll, fq_share,
    {employment,hire,separation}_rate_{mean,median,n}

``fq_share`` is full-quarter workers over all workers.  Rate statistics only
use defined (non-missing) rates; ``*_n`` counts them.

Usage
-----
python src/py/summarize_employer_panel.py --database data/ui_wages.duckdb \
       --table employer_quarter_panel --output data/clean/panel_summary.csv
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import duckdb
import pandas as pd

from project_paths import DATA_CLEAN, DEFAULT_DATABASE, ensure_dir
from temporal_joiner import RATE_COLUMNS
from wage_store import quote_ident

DEFAULT_OUTPUT = DATA_CLEAN / "employer_panel_summary.csv"


def summarize_panel(panel: pd.DataFrame) -> pd.DataFrame:
    if panel.empty:
        cols = ["year", "quarter", "employers", "employment", "mean_employees", "payroll", "fq_share"]
        for rate in RATE_COLUMNS:
            cols += [f"{rate}_mean", f"{rate}_median", f"{rate}_n"]
        return pd.DataFrame(columns=cols)

    grouped = panel.groupby(["year", "quarter"], sort=True)
    out = grouped.agg(
        employers=("employer_id", "nunique"),
        employment=("num_employees", "sum"),
        mean_employees=("num_employees", "mean"),
        payroll=("total_earnings", "sum"),
        fq_employment=("fq_num_employees", "sum"),
    )
    out["fq_share"] = out["fq_employment"] / out["employment"]
    out = out.drop(columns="fq_employment")

    for rate in RATE_COLUMNS:
        stats = grouped[rate].agg(["mean", "median", "count"])
        out[f"{rate}_mean"] = stats["mean"]
        out[f"{rate}_median"] = stats["median"]
        out[f"{rate}_n"] = stats["count"].astype(int)

    return out.reset_index()


def _load_panel(ns: argparse.Namespace) -> pd.DataFrame:
    if ns.input:
        ext = os.path.splitext(ns.input)[1].lower()
        if ext in {".parquet", ".pq"}:
            return pd.read_parquet(ns.input)
        return pd.read_csv(ns.input, dtype={"employer_id": str, "industry_code": str})

    if not Path(ns.database).exists():
        raise FileNotFoundError(f"DuckDB database not found: {ns.database}")
    con = duckdb.connect(str(ns.database), read_only=True)
    try:
        return con.execute(f"SELECT * FROM {quote_ident(ns.table)}").df()
    finally:
        con.close()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Summarise the employer-quarter panel by quarter")
    p.add_argument("--database", default=str(DEFAULT_DATABASE), help="DuckDB database holding the panel")
    p.add_argument("--table", default="employer_quarter_panel", help="Panel table name")
    p.add_argument("--input", help="Read the panel from a Parquet/CSV export instead")
    p.add_argument("--output", default=str(DEFAULT_OUTPUT), help="Destination CSV")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    ns = _parse_args(argv)
    try:
        panel = _load_panel(ns)
    except (FileNotFoundError, duckdb.Error) as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1

    summary = summarize_panel(panel)
    out = Path(ns.output)
    ensure_dir(out.parent)
    summary.to_csv(out, index=False)

    with pd.option_context("display.width", 160, "display.max_columns", None):
        print(summary.to_string(index=False, float_format=lambda v: f"{v:,.3f}"))
    print(f"✓ Summary written to {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
