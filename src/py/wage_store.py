"""DuckDB handle over the quarterly UI wage records.

The store exposes the wage records under canonical column names through a
temporary view (``wage_records_v``) and offers the two reads the pipeline
needs: a whole-quarter fetch and a (worker, employer) point lookup.  The
source can be a table/view already present in the DuckDB database, a pandas
frame registered on the connection, or a CSV / Parquet file that DuckDB scans
directly.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import duckdb
import pandas as pd

from panel_config import ColumnMap, PanelConfig
from project_paths import ensure_dir
from wage_quarters import Quarter

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ["worker_id", "employer_id", "industry_code", "year", "quarter", "wages"]
VIEW_NAME = "wage_records_v"


class DataAccessError(RuntimeError):
    """A query against the wage-record store failed.

    ``quarter`` is the quarter being processed; ``read_quarter`` the quarter
    whose read actually failed (a neighbour may fail while processing another).
    """

    def __init__(
        self,
        message: str,
        quarter: Quarter | None = None,
        read_quarter: Quarter | None = None,
    ):
        super().__init__(message)
        self.quarter = quarter
        self.read_quarter = read_quarter if read_quarter is not None else quarter


def quote_ident(name: str) -> str:
    """Quote a (possibly schema-qualified) identifier for DuckDB."""
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


def _quote_literal(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def _source_relation(source: str) -> str:
    ext = os.path.splitext(source)[1].lower()
    path = Path(source).as_posix()
    if ext in {".parquet", ".pq"}:
        return f"read_parquet({_quote_literal(path)})"
    if ext in {".csv", ".gz", ".txt"}:
        return f"read_csv_auto({_quote_literal(path)}, header=true)"
    return quote_ident(source)


class WageStore:
    """Read access to the wage records plus persistence of the output panel."""

    def __init__(
        self,
        con: duckdb.DuckDBPyConnection,
        source: str,
        columns: ColumnMap | None = None,
        state: str | None = None,
    ):
        self.con = con
        self.source = source
        self.columns = columns or ColumnMap()
        self.state = state
        if state is not None and self.columns.state is None:
            raise ValueError("A state filter needs columns.state to name the state column")
        self._create_view()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    @contextmanager
    def open(cls, config: PanelConfig) -> Iterator["WageStore"]:
        """Connect to DuckDB for the duration of one pipeline run."""
        database = config.database or ":memory:"
        try:
            con = duckdb.connect(database)
        except duckdb.Error as exc:
            raise DataAccessError(f"Cannot open DuckDB database {database}: {exc}") from exc

        try:
            tmp_dir = config.temp_dir or os.environ.get("DUCKDB_TEMP_DIRECTORY")
            if tmp_dir:
                os.makedirs(tmp_dir, exist_ok=True)
                safe_tmp = tmp_dir.replace("'", "''")
                con.execute(f"PRAGMA temp_directory='{safe_tmp}';")
            if config.threads:
                con.execute(f"PRAGMA threads={int(config.threads)};")

            store = cls(con, config.source, config.columns, config.state)
            logger.info("Opened wage store %s (source: %s)", database, config.source)
            yield store
        finally:
            con.close()

    def _create_view(self) -> None:
        c = self.columns
        where = ""
        if self.state is not None:
            where = f"WHERE CAST({quote_ident(c.state)} AS VARCHAR) = {_quote_literal(self.state)}"
        sql = f"""
            CREATE OR REPLACE TEMP VIEW {VIEW_NAME} AS
            SELECT
                CAST({quote_ident(c.worker_id)} AS VARCHAR)     AS worker_id,
                CAST({quote_ident(c.employer_id)} AS VARCHAR)   AS employer_id,
                CAST({quote_ident(c.industry_code)} AS VARCHAR) AS industry_code,
                CAST({quote_ident(c.year)} AS INTEGER)          AS year,
                CAST({quote_ident(c.quarter)} AS INTEGER)       AS quarter,
                CAST({quote_ident(c.wages)} AS DOUBLE)          AS wages
            FROM {_source_relation(self.source)}
            {where};
        """
        try:
            self.con.execute(sql)
        except duckdb.Error as exc:
            raise DataAccessError(f"Cannot read wage records from {self.source}: {exc}") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_quarter(self, quarter: Quarter) -> pd.DataFrame:
        """All records for *quarter* with a non-null worker id."""
        try:
            df = self.con.execute(
                f"""
                SELECT {", ".join(RECORD_COLUMNS)}
                FROM {VIEW_NAME}
                WHERE year = ? AND quarter = ? AND worker_id IS NOT NULL
                """,
                [quarter.year, quarter.quarter],
            ).df()
        except duckdb.Error as exc:
            raise DataAccessError(f"Failed to fetch records for {quarter}: {exc}", quarter) from exc
        logger.debug("Fetched %s records for %s", f"{len(df):,}", quarter)
        return df

    def lookup_jobs(
        self,
        worker_id: str,
        employer_id: str,
        quarter: Quarter | None = None,
    ) -> pd.DataFrame:
        """Records for one (worker, employer) pair, optionally in one quarter."""
        sql = f"SELECT {', '.join(RECORD_COLUMNS)} FROM {VIEW_NAME} WHERE worker_id = ? AND employer_id = ?"
        params: list = [str(worker_id), str(employer_id)]
        if quarter is not None:
            sql += " AND year = ? AND quarter = ?"
            params += [quarter.year, quarter.quarter]
        sql += " ORDER BY year, quarter"
        try:
            return self.con.execute(sql, params).df()
        except duckdb.Error as exc:
            raise DataAccessError(
                f"Lookup failed for worker {worker_id} at employer {employer_id}: {exc}", quarter
            ) from exc

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write_panel(self, panel: pd.DataFrame, table: str) -> None:
        """Persist *panel* as a permanent table, replacing any previous run."""
        try:
            self.con.register("panel_df", panel)
            try:
                self.con.execute(f"CREATE OR REPLACE TABLE {quote_ident(table)} AS SELECT * FROM panel_df;")
            finally:
                self.con.unregister("panel_df")
        except duckdb.Error as exc:
            raise DataAccessError(f"Failed to write panel table {table}: {exc}") from exc
        logger.info("Wrote %s panel rows to table %s", f"{len(panel):,}", table)

    def read_table(self, table: str) -> pd.DataFrame:
        try:
            return self.con.execute(f"SELECT * FROM {quote_ident(table)}").df()
        except duckdb.Error as exc:
            raise DataAccessError(f"Failed to read table {table}: {exc}") from exc

    def export_table(self, table: str, path: str | Path, fmt: str | None = None) -> Path:
        """COPY *table* to Parquet or CSV (format inferred from the extension)."""
        out = Path(path)
        out_format = infer_output_format(out, fmt)
        ensure_dir(out.parent)
        target = _quote_literal(out.as_posix())
        if out_format == "parquet":
            sql = f"COPY {quote_ident(table)} TO {target} (FORMAT 'parquet');"
        else:
            sql = f"COPY {quote_ident(table)} TO {target} (HEADER, DELIMITER ',');"
        try:
            self.con.execute(sql)
        except duckdb.Error as exc:
            raise DataAccessError(f"Failed to export {table} to {out}: {exc}") from exc
        return out


def infer_output_format(path: str | Path, explicit: str | None = None) -> str:
    if explicit:
        return explicit.lower()
    ext = os.path.splitext(str(path))[1].lower()
    if ext in {".parquet", ".pq"}:
        return "parquet"
    if ext in {".csv", ".gz"}:
        return "csv"
    raise ValueError("Cannot infer output format; please pass a .parquet or .csv path")
