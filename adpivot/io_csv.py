"""CSV / Excel read-write helpers."""

from __future__ import annotations

from datetime import datetime, time
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from adpivot.quality import QualityReport

SUPPORTED_INPUT_SUFFIXES = (".csv", ".xlsx", ".xls")
SUPPORTED_OUTPUT_SUFFIXES = (".csv", ".xlsx")

QUALITY_COLUMNS = ["dimension", "source", "total", "matched", "missing", "match_rate"]


class InputSchemaError(ValueError):
    """Raised when an input file cannot be read as ad rows."""


def _cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, datetime):
        # Excel date cells; a bare date drops the midnight time part
        return value.strftime("%Y-%m-%d") if value.time() == time(0) else value.isoformat(sep=" ")
    if hasattr(value, "item"):
        return value.item()
    return value


def _numeric_column(col: pd.Series) -> pd.Series:
    """Numeric when every filled cell is a number; zero-padded identifiers stay text."""
    filled = col.dropna()
    if filled.empty or filled.str.match(r"^\s*[-+]?0\d").any():
        return col
    if pd.to_numeric(filled, errors="coerce").isna().any():
        return col
    return pd.to_numeric(col, errors="coerce").astype(float)


def read_raw_rows(path: str | Path) -> List[Dict[str, Any]]:
    """Read a CSV/XLSX/XLS export into raw rows; blank cells become ``None``.

    CSV cells are read as text first so ids like ``0042`` keep their zeros;
    columns that hold only numbers are then converted to float.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix not in SUPPORTED_INPUT_SUFFIXES:
        raise InputSchemaError(
            f"Unsupported input file type '{suffix or p.name}'. "
            f"Use one of: {', '.join(SUPPORTED_INPUT_SUFFIXES)}"
        )
    if not p.exists():
        raise InputSchemaError(f"Input file not found: {p}")

    try:
        if suffix == ".csv":
            df = pd.read_csv(p, dtype=str)
            df = df.apply(_numeric_column)
        else:
            df = pd.read_excel(p)
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise InputSchemaError(f"Could not read {p.name}: {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    return [
        {col: _cell(val) for col, val in zip(df.columns, values)}
        for values in df.itertuples(index=False, name=None)
    ]


def write_matrix(matrix: List[List[Any]], path: str | Path) -> Path:
    """Write a header-included matrix; ``.xlsx`` goes through openpyxl, else UTF-8 CSV."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(matrix)
    if p.suffix.lower() == ".xlsx":
        df.to_excel(p, index=False, header=False, engine="openpyxl")
    else:
        df.to_csv(p, index=False, header=False, encoding="utf-8")
    return p


def write_quality(report: QualityReport, path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(report.to_rows(), columns=QUALITY_COLUMNS)
    if p.suffix.lower() == ".xlsx":
        df.to_excel(p, index=False, engine="openpyxl")
    else:
        df.to_csv(p, index=False, encoding="utf-8")
    return p


def write_report(text: str, path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p
