#!/usr/bin/env python3
"""Centralised helpers for resolving project-relative paths."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable


def _root_from_repo_layout() -> Path:
    """Return the repo root assuming this file lives under PROJECT_ROOT/src/py/.

    Installed copies (no ``pyproject.toml`` two levels up) fall back to the
    current working directory.
    """
    here = Path(__file__).resolve()
    root = here.parents[2]
    if (root / "pyproject.toml").exists():
        return root
    return Path.cwd()


def resolve_project_root() -> Path:
    """Return the absolute project root.

    Priority:
      1. PROJECT_ROOT environment variable
      2. Known repo layout (assumes this module sits inside PROJECT_ROOT/src/py/)
    """
    env_root = os.getenv("PROJECT_ROOT")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return _root_from_repo_layout()


def ensure_dir(path: Path) -> Path:
    """Create *path* (and parents) if missing, then return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


PROJECT_ROOT: Path = resolve_project_root()
DATA_DIR: Path = PROJECT_ROOT / "data"
DATA_CLEAN: Path = DATA_DIR / "clean"
CONFIG_DIR: Path = PROJECT_ROOT / "configs"

DEFAULT_DATABASE: Path = DATA_DIR / "ui_wages.duckdb"
DEFAULT_CONFIG: Path = CONFIG_DIR / "employer_panel.yaml"


def relative_to_project(path: Path | str) -> Path:
    """Return *path* resolved relative to the project root."""
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return PROJECT_ROOT / candidate


__all__: Iterable[str] = [
    "PROJECT_ROOT",
    "DATA_DIR",
    "DATA_CLEAN",
    "CONFIG_DIR",
    "DEFAULT_DATABASE",
    "DEFAULT_CONFIG",
    "ensure_dir",
    "resolve_project_root",
    "relative_to_project",
]
