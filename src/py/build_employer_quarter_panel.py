#!/usr/bin/env python3
"""Build the employer × quarter panel from quarterly UI wage records.

For every quarter in the analysis window the script

1.  Fetches that quarter's wage records (non-null worker id) from DuckDB.
2.  Tags each record with employment at the same employer in the previous
    and next quarter, deriving hire / separation flags.  The first quarter of
    the window counts every worker as a hire, the last every worker as a
    separation.
3.  Aggregates to employer × industry × quarter: headcount, payroll, mean and
    nearest-rank 25th / 75th percentile earnings, hires, separations, and the
    same headcount / payroll restricted to full-quarter workers.
4.  Joins the previous quarter's aggregate on employer id and computes the
    Davis–Haltiwanger employment, hire and separation growth rates.

Employer-quarters with fewer than ``min_employees`` distinct workers are
dropped quarter by quarter, the rest are stacked into one panel and written
to a permanent DuckDB table (optionally also to Parquet / CSV).

Usage
-----
python src/py/build_employer_quarter_panel.py \
       --database data/ui_wages.duckdb  \
       --source   wage_records          \
       --window   2018Q1:2020Q1

    or, with every setting in YAML:

python src/py/build_employer_quarter_panel.py --config configs/employer_panel.yaml

Optional flags:
    --output PATH        also export the panel (.parquet or .csv)
    --min-employees N    headcount threshold (default 5)
    --threads N          number of DuckDB threads
    --probe W E Q        print continuity flags for worker W at employer E in quarter Q
"""

from __future__ import annotations

import argparse
import logging
import sys

import pandas as pd
from tqdm import tqdm

from continuity_tagger import probe_continuity, tag_quarter
from employer_aggregator import aggregate_quarter
from panel_assembler import assemble_panel
from panel_config import PanelConfig, add_config_arguments, config_from_args
from temporal_joiner import join_prior
from wage_quarters import Quarter
from wage_store import DataAccessError, WageStore

logger = logging.getLogger(__name__)


def build_panel(store: WageStore, config: PanelConfig, progress: bool = False) -> pd.DataFrame:
    """Run tagger → aggregator → joiner over the window and assemble the panel."""
    window = config.window
    records: dict[Quarter, pd.DataFrame] = {}
    aggregates: dict[Quarter, pd.DataFrame] = {}
    joined: list[pd.DataFrame] = []

    def _records(quarter: Quarter | None) -> pd.DataFrame | None:
        if quarter is None:
            return None
        if quarter not in records:
            records[quarter] = store.fetch_quarter(quarter)
        return records[quarter]

    for quarter in tqdm(window, desc="Quarters", unit="qtr", disable=not progress):
        prior_q = window.prior(quarter)
        next_q = window.following(quarter)
        try:
            current = _records(quarter)
            tagged = tag_quarter(current, _records(prior_q), _records(next_q))
        except DataAccessError as exc:
            logger.error("Aborting %s: %s", quarter, exc)
            raise DataAccessError(
                f"Quarter {quarter} aborted: {exc}", quarter, read_quarter=exc.read_quarter
            ) from exc

        agg = aggregate_quarter(tagged)
        aggregates[quarter] = agg
        joined.append(join_prior(agg, aggregates.get(prior_q) if prior_q else None))

        logger.info(
            "%s: %s records, %s employer groups, %s hires, %s separations",
            quarter,
            f"{len(current):,}",
            f"{len(agg):,}",
            f"{int(agg['hires'].sum()):,}",
            f"{int(agg['separations'].sum()):,}",
        )

        # records older than the current quarter are no longer needed as neighbours
        for stale in [q for q in records if q.index < quarter.index]:
            del records[stale]
        if prior_q is not None:
            aggregates.pop(prior_q.prev(), None)

    panel = assemble_panel(joined, config.min_employees)
    logger.info(
        "Panel: %s rows over %d quarters (min_employees=%d)",
        f"{len(panel):,}",
        len(window),
        config.min_employees,
    )
    return panel


def run(config: PanelConfig, progress: bool = False) -> pd.DataFrame:
    """Build the panel inside one DuckDB session and persist it."""
    with WageStore.open(config) as store:
        panel = build_panel(store, config, progress=progress)
        store.write_panel(panel, config.output_table)
        if config.output_path is not None:
            store.export_table(config.output_table, config.output_path)
            logger.info("Exported panel to %s", config.output_path)
    return panel


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawTextHelpFormatter)
    add_config_arguments(p)
    p.add_argument(
        "--probe",
        nargs=3,
        metavar=("WORKER", "EMPLOYER", "QUARTER"),
        help="Print continuity flags for one job instead of building the panel",
    )
    p.add_argument("--no-progress", action="store_true", help="Hide the per-quarter progress bar")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    ns = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = config_from_args(ns)
    except (ValueError, FileNotFoundError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}")

    if ns.probe:
        worker, employer, label = ns.probe
        try:
            quarter = Quarter.parse(label)
        except ValueError as exc:
            raise SystemExit(str(exc))
        try:
            with WageStore.open(config) as store:
                flags = probe_continuity(store, worker, employer, quarter, config.window)
        except DataAccessError as exc:
            print(f"✗ {exc}", file=sys.stderr)
            return 1
        for key, value in flags.items():
            print(f"{key:>24}: {value}")
        return 0

    try:
        panel = run(config, progress=not ns.no_progress)
    except DataAccessError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1

    print(f"✓ Panel written to table {config.output_table}\n  rows: {len(panel):,}")
    if config.output_path is not None:
        print(f"✓ Export → {config.output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
