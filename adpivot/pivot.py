"""In-memory pivot engine.

``build_pivot`` is a pure function of (records, spec, formulas):

1. scope: keep the selected platform scopes; Meta rows only at ad level so
   campaign/ad set/breakdown rollups are not counted twice
2. filter: multi / contains / not_contains / date_range predicates
3. group: pandas groupby sums base metrics per (row key, column key) cell
4. rows: depth-first row tree with optional subtotals and a grand total
5. values: re-sum the cells behind each rendered row x column, then
   evaluate formulas on those sums (formula outputs are never summed)
6. sort: optionally reorder data rows inside their innermost group
"""

from __future__ import annotations

from itertools import groupby
from operator import itemgetter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import pandas as pd

from adpivot.aggregate import group_sums, infer_base_keys, metrics_frame
from adpivot.filters import apply_filters, apply_scope, field_value, known_fields
from adpivot.formula import evaluate_formula
from adpivot.schema import (
    ALL_KEY,
    GRAND_TOTAL_LABEL,
    SUBTOTAL_SUFFIX,
    TOTAL_KEY,
    FormulaField,
    Key,
    NormalizedRecord,
    PivotCell,
    PivotResult,
    PivotRow,
    PivotSpec,
    SortKey,
)

TOTAL_COLUMN: Key = (TOTAL_KEY,)


def _unique_known(keys: Iterable[str], allowed: Set[str]) -> Tuple[str, ...]:
    out: List[str] = []
    for key in keys:
        if key in allowed and key not in out:
            out.append(key)
    return tuple(out)


def group_cells(
    records: Iterable[NormalizedRecord],
    row_dims: Sequence[str],
    col_dims: Sequence[str],
    base_keys: Sequence[str],
) -> Dict[Tuple[Key, Key], PivotCell]:
    """Sum base metrics per (row key, column key); only non-empty cells exist."""
    records = list(records)
    frame = metrics_frame(records, base_keys)
    row_cols = _label_columns(frame, records, "__row", row_dims)
    col_cols = _label_columns(frame, records, "__col", col_dims)

    cells: Dict[Tuple[Key, Key], PivotCell] = {}
    for key, sums, count in group_sums(frame, row_cols + col_cols, base_keys):
        row_key, col_key = tuple(key[: len(row_cols)]), tuple(key[len(row_cols) :])
        aggregates = {k: sums.get(k, 0.0) for k in base_keys}
        cells[(row_key, col_key)] = PivotCell(row_key, col_key, aggregates, count)
    return cells


def _label_columns(
    frame: pd.DataFrame, records: Sequence[NormalizedRecord], prefix: str, dims: Sequence[str]
) -> List[str]:
    """Add one label column per dimension; no dimensions means a single ``ALL`` column."""
    if not dims:
        frame[prefix] = ALL_KEY
        return [prefix]
    names = []
    for i, dim in enumerate(dims):
        name = f"{prefix}{i}"
        frame[name] = [field_value(r, dim) for r in records]
        names.append(name)
    return names


def _assemble_rows(row_keys: Sequence[Key], depth: int, show_subtotal: bool) -> List[PivotRow]:
    rows: List[PivotRow] = []

    def walk(keys: List[Key], level: int, prefix: Key) -> None:
        for value, group in groupby(keys, key=itemgetter(level)):
            members = list(group)
            if level >= depth - 1:
                rows.extend(PivotRow("data", rk, level, (rk,)) for rk in members)
                continue
            walk(members, level + 1, prefix + (value,))
            if show_subtotal:
                labels = prefix + (value + SUBTOTAL_SUFFIX,) + ("",) * (depth - level - 1)
                rows.append(PivotRow("subtotal", labels, level, tuple(members)))

    walk(list(row_keys), 0, ())
    return rows


def resolve_values(
    by_row: Mapping[Key, Mapping[Key, PivotCell]],
    row_keys: Iterable[Key],
    col_keys: Iterable[Key],
    value_keys: Sequence[str],
    formulas: Mapping[str, FormulaField],
) -> Tuple[Dict[str, Optional[float]], int]:
    """Re-sum the covered cells and compute each value; ``None`` when nothing contributed."""
    col_keys = list(col_keys)
    sums: Dict[str, float] = {}
    count = 0
    for rk in row_keys:
        row_cells = by_row.get(rk, {})
        for ck in col_keys:
            cell = row_cells.get(ck)
            if cell is None:
                continue
            count += cell.count
            for k, v in cell.base_aggregates.items():
                sums[k] = sums.get(k, 0.0) + v

    if count == 0:
        return {k: None for k in value_keys}, 0

    values: Dict[str, Optional[float]] = {}
    for key in value_keys:
        formula = formulas.get(key)
        if formula is not None:
            values[key] = evaluate_formula(formula.formula, sums)
        else:
            values[key] = sums.get(key, 0.0)
    return values, count


def _sorted_run(run: List[PivotRow], sort: SortKey) -> List[PivotRow]:
    col_key = tuple(sort.col_key)
    present = [r for r in run if r.value(col_key, sort.value_key) is not None]
    missing = [r for r in run if r.value(col_key, sort.value_key) is None]
    present.sort(key=lambda r: r.value(col_key, sort.value_key), reverse=sort.direction == "desc")
    return present + missing


def sort_rows(
    rows: List[PivotRow],
    sort: SortKey,
    col_keys: Sequence[Key],
    value_keys: Sequence[str],
) -> List[PivotRow]:
    """Reorder data rows within their innermost group; totals keep their place."""
    if tuple(sort.col_key) not in col_keys or sort.value_key not in value_keys:
        return rows

    out: List[PivotRow] = []
    run: List[PivotRow] = []

    def flush() -> None:
        out.extend(_sorted_run(run, sort))
        run.clear()

    for row in rows:
        if row.kind != "data":
            flush()
            out.append(row)
            continue
        if run and run[-1].labels[:-1] != row.labels[:-1]:
            flush()
        run.append(row)
    flush()
    return out


def build_pivot(
    records: Sequence[NormalizedRecord],
    spec: PivotSpec,
    formulas: Sequence[FormulaField],
    base_keys: Optional[Sequence[str]] = None,
) -> PivotResult:
    """Run scope → filter → group → rows → values → sort. Never raises on bad config."""
    formulas_by_name = {f.name: f for f in formulas}
    fields = known_fields(records)
    row_dims = _unique_known(spec.row_dims, fields)
    col_dims = _unique_known(spec.col_dims, fields)
    keys = list(base_keys) if base_keys is not None else infer_base_keys(records, formulas)
    value_keys = _unique_known(spec.value_keys, set(keys) | set(formulas_by_name))
    units = {k: formulas_by_name[k].unit for k in value_keys if k in formulas_by_name}

    scoped = apply_scope(records, spec.scopes)
    filtered = apply_filters(scoped, spec.filters, fields)
    cells = group_cells(filtered, row_dims, col_dims, keys)

    by_row: Dict[Key, Dict[Key, PivotCell]] = {}
    for (rk, ck), cell in cells.items():
        by_row.setdefault(rk, {})[ck] = cell
    row_keys = sorted(by_row)
    data_col_keys = sorted({ck for _, ck in cells})

    display = spec.display
    col_keys = list(data_col_keys)
    if display.show_grand_total and display.total_axis in ("column", "both") and col_dims and data_col_keys:
        col_keys.append(TOTAL_COLUMN)

    depth = max(len(row_dims), 1)
    rows = _assemble_rows(row_keys, depth, display.show_subtotal and depth > 1)
    if display.show_grand_total and display.total_axis in ("row", "both") and row_keys:
        labels = (GRAND_TOTAL_LABEL,) + ("",) * (depth - 1)
        rows.append(PivotRow("grand_total", labels, 0, tuple(row_keys)))

    for row in rows:
        for ck in col_keys:
            covered = data_col_keys if ck == TOTAL_COLUMN else [ck]
            row.values[ck], row.counts[ck] = resolve_values(
                by_row, row.row_keys, covered, value_keys, formulas_by_name
            )

    if spec.sort is not None:
        rows = sort_rows(rows, spec.sort, col_keys, value_keys)

    return PivotResult(
        row_dims=row_dims,
        col_dims=col_dims,
        value_keys=value_keys,
        col_keys=col_keys,
        rows=rows,
        cells=cells,
        units=units,
        record_count=len(filtered),
    )
