"""Flatten a pivot result into a 2-D matrix for CSV / spreadsheet export."""

from __future__ import annotations

import math
from typing import Any, List, Optional

from adpivot.schema import (
    ALL_KEY,
    ALL_LABEL,
    GRAND_TOTAL_LABEL,
    TOTAL_KEY,
    Key,
    PivotResult,
    PivotRow,
)

Matrix = List[List[Any]]


def format_value(value: Optional[float], unit: str = "") -> str:
    """Unit-aware display string; ``None`` renders blank."""
    if value is None:
        return ""
    if not math.isfinite(value):
        value = 0.0
    if unit == "$":
        return f"${value:,.2f}"
    if unit == "%":
        return f"{value * 100:.2f}%"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _label(value: str) -> str:
    if value == ALL_KEY:
        return ALL_LABEL
    if value == TOTAL_KEY:
        return GRAND_TOTAL_LABEL
    return value


def _column_label(col_key: Key, level: int) -> str:
    if col_key == (TOTAL_KEY,):
        return GRAND_TOTAL_LABEL if level == 0 else ""
    return _label(col_key[level]) if level < len(col_key) else ""


def header_rows(result: PivotResult) -> Matrix:
    """One row per column dimension, then the row-dimension / value-key row."""
    width = max(len(result.row_dims), 1)
    headers: Matrix = []
    for level, dim in enumerate(result.col_dims):
        row: List[Any] = [""] * (width - 1) + [dim]
        for ck in result.col_keys:
            row.extend(_column_label(ck, level) for _ in result.value_keys)
        headers.append(row)

    last: List[Any] = list(result.row_dims) or [""]
    for _ in result.col_keys:
        last.extend(result.value_keys)
    headers.append(last)
    return headers


def _row_labels(row: PivotRow, previous: Optional[Key]) -> List[str]:
    labels = [_label(v) for v in row.labels]
    if row.kind == "subtotal":
        # parent labels of a subtotal always repeat the group it closes
        return [""] * row.level + labels[row.level:]
    if row.kind != "data" or previous is None:
        return labels
    out = list(labels)
    for i in range(len(labels) - 1):
        if row.labels[: i + 1] != previous[: i + 1]:
            break
        out[i] = ""
    return out


def flatten_pivot(result: PivotResult, formatted: bool = False) -> Matrix:
    """Header row(s) followed by one line per rendered pivot row.

    Repeated parent labels are blanked on non-first child rows; subtotal and
    grand total labels are kept. Empty cells are ``""``.
    """
    matrix = header_rows(result)
    previous: Optional[Key] = None
    for row in result.rows:
        line: List[Any] = _row_labels(row, previous)
        if row.kind == "data":
            previous = row.labels
        for ck in result.col_keys:
            for vk in result.value_keys:
                value = row.value(ck, vk)
                if formatted:
                    line.append(format_value(value, result.units.get(vk, "")))
                else:
                    line.append("" if value is None else value)
        matrix.append(line)
    return matrix
