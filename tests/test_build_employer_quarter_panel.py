import duckdb
import pandas as pd
import pytest

import build_employer_quarter_panel as builder
from conftest import SOURCE_COLUMNS, WINDOW
from panel_assembler import PANEL_COLUMNS
from panel_config import PanelConfig
from wage_quarters import Quarter
from wage_store import DataAccessError


@pytest.fixture
def panel(store, config):
    return builder.build_panel(store, config)


def _row(panel, employer, label):
    q = Quarter.parse(label)
    rows = panel[(panel["employer_id"] == employer) & (panel["year"] == q.year) & (panel["quarter"] == q.quarter)]
    assert len(rows) == 1, f"expected one row for {employer} {label}, got {len(rows)}"
    return rows.iloc[0]


def test_panel_shape_and_order(panel):
    assert list(panel.columns) == PANEL_COLUMNS
    keys = list(zip(panel["quarter"], panel["employer_id"]))
    assert keys == [
        (1, "F"), (1, "H"),
        (2, "E"), (2, "G"), (2, "H"),
        (3, "E"), (3, "H"),
        (4, "G"), (4, "H"),
    ]


def test_employer_e_scenario(panel):
    row = _row(panel, "E", "2019Q3")
    assert row["num_employees"] == 6
    assert row["total_earnings"] == pytest.approx(60000)
    assert row["avg_earnings"] == pytest.approx(10000)
    assert row["fq_num_employees"] == 4
    assert row["fq_total_earnings"] == pytest.approx(44000)
    assert row["fq_avg_earnings"] == pytest.approx(11000)
    assert row["hires"] == 2
    assert row["separations"] == 2
    assert row["employment_rate"] == pytest.approx(2 / 11)
    assert row["hire_rate"] == pytest.approx(2 / 3)
    assert row["separation_rate"] == pytest.approx(2 / 3)


def test_prior_quarter_uses_unfiltered_aggregate(panel):
    # E had only 4 workers in 2019Q1 (dropped from the panel) but still feeds 2019Q2 rates
    row = _row(panel, "E", "2019Q2")
    assert row["hires"] == 1 and row["separations"] == 1
    assert row["employment_rate"] == pytest.approx(2 * (5 - 4) / 9)
    assert row["hire_rate"] == pytest.approx(2 * (1 - 4) / 5)
    assert row["separation_rate"] == pytest.approx(2.0)


def test_first_quarter_employer_has_undefined_rates(panel):
    row = _row(panel, "F", "2019Q1")
    assert row["hires"] == 5
    assert row["separations"] == 5
    assert row["fq_num_employees"] == 0
    assert pd.isna(row["fq_avg_earnings"])
    for rate in ("employment_rate", "hire_rate", "separation_rate"):
        assert pd.isna(row[rate])


def test_employer_below_threshold_is_dropped_for_that_quarter_only(panel):
    g = panel[panel["employer_id"] == "G"]
    assert g["quarter"].tolist() == [2, 4]
    # G's 2019Q4 rate compares with the 4 workers it had in 2019Q3
    assert _row(panel, "G", "2019Q4")["employment_rate"] == pytest.approx(2 * (5 - 4) / 9)


def test_zero_flows_give_zero_rates(panel):
    row = _row(panel, "H", "2019Q3")
    assert row["hire_rate"] == 0.0
    assert row["separation_rate"] == 0.0
    assert row["employment_rate"] == 0.0
    assert row["fq_num_employees"] == 5

    last = _row(panel, "H", "2019Q4")
    assert last["separations"] == 5
    assert last["separation_rate"] == pytest.approx(2.0)


def test_panel_invariants(panel):
    assert (panel["num_employees"] >= 5).all()
    assert (panel["fq_num_employees"] <= panel["num_employees"]).all()
    for rate in ("employment_rate", "hire_rate", "separation_rate"):
        defined = panel[rate].dropna()
        assert defined.between(-2, 2).all()


def test_lower_threshold_admits_small_employers(store, config):
    from dataclasses import replace

    panel = builder.build_panel(store, replace(config, min_employees=4))
    assert set(panel.loc[panel["quarter"] == 3, "employer_id"]) == {"E", "G", "H"}


def test_failed_read_aborts_with_quarter(config):
    class BrokenStore:
        def fetch_quarter(self, quarter):
            if quarter == Quarter(2019, 3):
                raise DataAccessError("connection lost", quarter)
            return pd.DataFrame(columns=["worker_id", "employer_id", "industry_code", "year", "quarter", "wages"])

    with pytest.raises(DataAccessError) as info:
        builder.build_panel(BrokenStore(), config)
    # 2019Q3 is first read as the neighbour of 2019Q2
    assert info.value.quarter == Quarter(2019, 2)
    assert info.value.read_quarter == Quarter(2019, 3)
    assert "connection lost" in str(info.value)


def test_run_persists_and_exports(wage_db, tmp_path):
    out = tmp_path / "panel.parquet"
    config = PanelConfig(
        window=WINDOW,
        database=str(wage_db),
        source="wage_records",
        columns=SOURCE_COLUMNS,
        output_path=out,
    )
    panel = builder.run(config)

    con = duckdb.connect(str(wage_db), read_only=True)
    stored = con.execute("SELECT * FROM employer_quarter_panel").df()
    con.close()

    assert len(stored) == len(panel) == 9
    assert list(stored.columns) == PANEL_COLUMNS
    assert out.exists()
    assert len(pd.read_parquet(out)) == 9


def test_cli_reports_unmapped_columns(wage_db, capsys):
    code = builder.main(
        [
            "--database", str(wage_db),
            "--source", "wage_records",
            "--window", "2019Q1:2019Q4",
            "--output-table", "panel_cli",
            "--no-progress",
        ]
    )
    # default column names do not match the ssn/ein/naics table
    assert code == 1
    assert "✗" in capsys.readouterr().err


def test_cli_probe(tmp_path, capsys, wage_records):
    db = tmp_path / "canonical.duckdb"
    con = duckdb.connect(str(db))
    canonical = wage_records.rename(columns={"ssn": "worker_id", "ein": "employer_id", "naics": "industry_code"})
    con.register("records_df", canonical)
    con.execute("CREATE TABLE wage_records AS SELECT * FROM records_df")
    con.close()

    code = builder.main(["--database", str(db), "--window", "2019Q1:2019Q4", "--probe", "w5", "E", "2019Q3"])
    assert code == 0
    out = capsys.readouterr().out
    assert "is_hire: True" in out
    assert "employed_prior_quarter: False" in out

    code = builder.main(["--database", str(db), "--window", "2019Q1:2019Q4", "--no-progress"])
    assert code == 0
    assert "rows: 9" in capsys.readouterr().out
