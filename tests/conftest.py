from __future__ import annotations

import duckdb
import pandas as pd
import pytest

from panel_config import ColumnMap, PanelConfig
from wage_quarters import Quarter, QuarterWindow
from wage_store import WageStore

WINDOW = QuarterWindow.from_range("2019Q1", "2019Q4")

# the raw table uses UI-file style names; the store maps them to canonical ones
SOURCE_COLUMNS = ColumnMap(worker_id="ssn", employer_id="ein", industry_code="naics")


def job_rows(ein: str, naics: str | None, label: str, wages_by_worker: dict) -> list[dict]:
    q = Quarter.parse(label)
    return [
        {"ssn": w, "ein": ein, "naics": naics, "year": q.year, "quarter": q.quarter, "wages": float(v)}
        for w, v in wages_by_worker.items()
    ]


def build_wage_records() -> pd.DataFrame:
    rows: list[dict] = []

    # E: 6 workers in 2019Q3, four of them full-quarter, 5 workers in 2019Q2
    rows += job_rows("E", "5411", "2019Q1", {"w1": 9000, "w2": 9000, "w3": 9000, "w7": 7000})
    rows += job_rows("E", "5411", "2019Q2", {"w1": 9500, "w2": 9500, "w3": 9500, "w4": 9500, "w7": 7000})
    rows += job_rows(
        "E",
        "5411",
        "2019Q3",
        {"w1": 10000, "w2": 11000, "w3": 11000, "w4": 12000, "w5": 8000, "w6": 8000},
    )
    rows += job_rows("E", "5411", "2019Q4", {"w1": 10000, "w2": 11000, "w3": 11000, "w4": 12000})

    # F: only in the first quarter of the window
    rows += job_rows("F", "4451", "2019Q1", {f"f{i}": 5000 for i in range(1, 6)})

    # G: dips to 4 workers in 2019Q3
    g_full = {f"g{i}": 6000 for i in range(1, 6)}
    rows += job_rows("G", "2361", "2019Q2", g_full)
    rows += job_rows("G", "2361", "2019Q3", {f"g{i}": 6000 for i in range(1, 5)})
    rows += job_rows("G", "2361", "2019Q4", g_full)

    # H: the same five workers every quarter
    for label in WINDOW.labels:
        rows += job_rows("H", "6221", label, {f"h{i}": 20000 for i in range(1, 6)})

    # missing worker id, must never be fetched
    rows.append({"ssn": None, "ein": "E", "naics": "5411", "year": 2019, "quarter": 3, "wages": 99999.0})
    # before the window, must not make w1 a continuing worker in 2019Q1
    rows += job_rows("E", "5411", "2018Q4", {"w1": 1.0})

    return pd.DataFrame(rows)


@pytest.fixture
def wage_records() -> pd.DataFrame:
    return build_wage_records()


@pytest.fixture
def store(wage_records):
    con = duckdb.connect()
    con.register("ui_wages", wage_records)
    yield WageStore(con, "ui_wages", SOURCE_COLUMNS)
    con.close()


@pytest.fixture
def config() -> PanelConfig:
    return PanelConfig(window=WINDOW, source="ui_wages", columns=SOURCE_COLUMNS)


@pytest.fixture
def wage_db(tmp_path, wage_records):
    """A DuckDB file holding the records as a permanent ``wage_records`` table."""
    path = tmp_path / "ui_wages.duckdb"
    con = duckdb.connect(str(path))
    con.register("records_df", wage_records)
    con.execute("CREATE TABLE wage_records AS SELECT * FROM records_df")
    con.close()
    return path
