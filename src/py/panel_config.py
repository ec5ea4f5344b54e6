"""Run configuration for the employer-quarter panel build.

Settings come from a YAML file (see ``configs/employer_panel.yaml``) and may be
overridden from the command line.  String values in the YAML file have ``~``
and ``$VAR`` / ``${VAR}`` expanded.  Relative database, export and file-source
paths resolve against the project root.  Colon labels such as ``2019:1`` must
be quoted in YAML, which otherwise reads them as base-60 integers.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from project_paths import DEFAULT_CONFIG, relative_to_project
from wage_quarters import QuarterWindow

DEFAULT_MIN_EMPLOYEES = 5
DEFAULT_SOURCE = "wage_records"
DEFAULT_OUTPUT_TABLE = "employer_quarter_panel"

# sources with these suffixes are files scanned by DuckDB, anything else is a table
SOURCE_FILE_SUFFIXES = {".parquet", ".pq", ".csv", ".gz", ".txt"}


@dataclass(frozen=True)
class ColumnMap:
    """Source column names for each canonical wage-record field."""

    worker_id: str = "worker_id"
    employer_id: str = "employer_id"
    industry_code: str = "industry_code"
    year: str = "year"
    quarter: str = "quarter"
    wages: str = "wages"
    state: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> "ColumnMap":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown column mapping keys: {unknown}")
        return cls(**{k: (str(v) if v is not None else None) for k, v in data.items()})


@dataclass(frozen=True)
class PanelConfig:
    window: QuarterWindow
    min_employees: int = DEFAULT_MIN_EMPLOYEES
    source: str = DEFAULT_SOURCE
    database: str | None = None
    output_table: str = DEFAULT_OUTPUT_TABLE
    output_path: Path | None = None
    columns: ColumnMap = field(default_factory=ColumnMap)
    state: str | None = None
    threads: int | None = None
    temp_dir: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.window, QuarterWindow):
            object.__setattr__(self, "window", QuarterWindow(self.window))
        if int(self.min_employees) < 1:
            raise ValueError(f"min_employees must be >= 1, got {self.min_employees}")
        object.__setattr__(self, "min_employees", int(self.min_employees))
        if self.threads is not None and int(self.threads) < 1:
            raise ValueError(f"threads must be >= 1, got {self.threads}")
        if self.state is not None and self.columns.state is None:
            raise ValueError("A state filter needs columns.state to name the state column")
        if not self.output_table:
            raise ValueError("output_table must not be empty")
        if self.output_path is not None and not isinstance(self.output_path, Path):
            object.__setattr__(self, "output_path", Path(self.output_path))


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def _expand(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _expand(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(os.path.expanduser(obj))
    return obj


def _label(value: Any) -> str:
    # YAML 1.1 reads an unquoted 2019:1 as the base-60 integer 121141
    if isinstance(value, int) and not isinstance(value, bool):
        raise ValueError(
            f"Quarter label {value!r} was read as a number; quote labels such as '2019:1' in YAML"
        )
    return str(value)


def _window_from(raw: Any) -> QuarterWindow:
    if isinstance(raw, QuarterWindow):
        return raw
    if isinstance(raw, str):
        return QuarterWindow.parse(raw)
    if isinstance(raw, dict):
        if "start" not in raw or "end" not in raw:
            raise ValueError("window mapping needs 'start' and 'end'")
        return QuarterWindow.from_range(_label(raw["start"]), _label(raw["end"]))
    if isinstance(raw, list):
        return QuarterWindow(_label(q) if not isinstance(q, (list, tuple)) else q for q in raw)
    raise ValueError(f"Cannot interpret window: {raw!r}")


def config_from_mapping(data: dict[str, Any]) -> PanelConfig:
    data = _expand(dict(data))
    if "window" not in data:
        raise ValueError("Configuration is missing 'window'")
    known = {f.name for f in fields(PanelConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")

    kwargs: dict[str, Any] = {k: v for k, v in data.items() if k not in {"window", "columns"}}
    kwargs["window"] = _window_from(data["window"])
    kwargs["columns"] = ColumnMap.from_mapping(data.get("columns"))
    if kwargs.get("output_path"):
        kwargs["output_path"] = relative_to_project(kwargs["output_path"])
    if kwargs.get("database") and kwargs["database"] != ":memory:":
        kwargs["database"] = str(relative_to_project(kwargs["database"]))
    source = kwargs.get("source")
    if source and os.path.splitext(str(source))[1].lower() in SOURCE_FILE_SUFFIXES:
        kwargs["source"] = str(relative_to_project(source))
    if kwargs.get("state") is not None:
        kwargs["state"] = str(kwargs["state"])
    return PanelConfig(**kwargs)


def load_config(path: str | Path | None = None) -> PanelConfig:
    cfg_path = Path(path) if path else DEFAULT_CONFIG
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")
    data = yaml.safe_load(cfg_path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {cfg_path} must be a mapping at the top level")
    return config_from_mapping(data)


# ---------------------------------------------------------------------------
# Command-line overrides
# ---------------------------------------------------------------------------


def add_config_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help=f"YAML run configuration (default: {DEFAULT_CONFIG})")
    p.add_argument("--window", help="Quarters to analyse, e.g. 2018Q1:2020Q1 or 2018Q1,2018Q2")
    p.add_argument("--min-employees", type=int, help="Minimum distinct workers per employer-quarter")
    p.add_argument("--source", help="Wage-record table/view name, or a .csv/.parquet file")
    p.add_argument("--database", help="DuckDB database file (default: in-memory)")
    p.add_argument("--output-table", help="Name of the persisted panel table")
    p.add_argument("--output", dest="output_path", help="Optional Parquet/CSV export of the panel")
    p.add_argument("--state", help="Restrict records to one state (needs columns.state)")
    p.add_argument("--threads", type=int, help="DuckDB threads (default: DuckDB decides)")
    p.add_argument(
        "--temp-dir",
        help="Directory for DuckDB temporary spill files (overrides PRAGMA temp_directory).",
    )


def config_from_args(ns: argparse.Namespace) -> PanelConfig:
    """Build a config from ``--config`` (if any) with CLI flags on top."""
    overrides = {
        name: getattr(ns, name)
        for name in (
            "min_employees",
            "source",
            "database",
            "output_table",
            "output_path",
            "state",
            "threads",
            "temp_dir",
        )
        if getattr(ns, name, None) is not None
    }
    if "output_path" in overrides:
        overrides["output_path"] = Path(overrides["output_path"])

    if ns.config or (DEFAULT_CONFIG.exists() and not ns.window):
        base = load_config(ns.config)
        if ns.window:
            overrides["window"] = QuarterWindow.parse(ns.window)
        return replace(base, **overrides)

    if not ns.window:
        raise ValueError("No --window given and no configuration file found")
    return PanelConfig(window=QuarterWindow.parse(ns.window), **overrides)
