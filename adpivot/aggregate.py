"""Dashboard aggregations: daily trend, single-dimension tables and KPI totals.

Base metrics are summed with pandas; formulas are always recomputed from the sums.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from adpivot.formula import evaluate_formula
from adpivot.processor import date_sort_key
from adpivot.schema import OTHER, FormulaField, NormalizedRecord

GroupSums = List[Tuple[Hashable, Dict[str, float], int]]


def infer_base_keys(
    records: Iterable[NormalizedRecord], formulas: Sequence[FormulaField]
) -> List[str]:
    """Summable metric keys carried by the records (formula outputs excluded)."""
    formula_names = {f.name for f in formulas}
    keys: List[str] = []
    seen = set()
    for record in records:
        for key in record.metrics:
            if key not in seen and key not in formula_names:
                seen.add(key)
                keys.append(key)
    return keys


def metrics_frame(records: Sequence[NormalizedRecord], base_keys: Sequence[str]) -> pd.DataFrame:
    """One row per record, one float column per base key; absent metrics are 0."""
    return pd.DataFrame(
        [[r.metrics.get(k, 0.0) or 0.0 for k in base_keys] for r in records],
        columns=list(base_keys),
        index=range(len(records)),
        dtype=float,
    )


def group_sums(
    frame: pd.DataFrame,
    by: Union[str, List[str]],
    base_keys: Sequence[str],
    sort: bool = True,
) -> GroupSums:
    """``(group key, base sums, row count)`` per group of ``frame``.

    A single column name gives scalar keys, a list gives tuples.
    """
    if frame.empty:
        return []
    grouped = frame.groupby(by, sort=sort, dropna=False)
    counts = grouped.size()
    sums = grouped[list(base_keys)].sum().to_dict("index") if base_keys else {}
    return [
        (key, {k: float(v) for k, v in sums.get(key, {}).items()}, int(n))
        for key, n in counts.items()
    ]


def sum_base_metrics(
    records: Iterable[NormalizedRecord], base_keys: Sequence[str]
) -> Dict[str, float]:
    totals = metrics_frame(list(records), base_keys).sum()
    return {k: float(totals[k]) for k in base_keys}


def with_formulas(sums: Dict[str, Any], formulas: Sequence[FormulaField]) -> Dict[str, Any]:
    out = dict(sums)
    for f in formulas:
        out[f.name] = evaluate_formula(f.formula, sums)
    return out


def trend_by_date(
    records: Sequence[NormalizedRecord],
    formulas: Sequence[FormulaField],
    base_keys: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """One row per date: ``{"date": ..., <base sums>, <formula values>}``."""
    keys = list(base_keys) if base_keys is not None else infer_base_keys(records, formulas)
    frame = metrics_frame(records, keys)
    frame["__date"] = [r.date for r in records]

    rows = []
    for day, sums, _ in sorted(group_sums(frame, "__date", keys), key=lambda g: date_sort_key(g[0])):
        row = with_formulas({k: sums.get(k, 0.0) for k in keys}, formulas)
        row["date"] = day
        rows.append(row)
    return rows


def aggregate_by_dimension(
    records: Sequence[NormalizedRecord],
    dim_label: str,
    formulas: Sequence[FormulaField],
    base_keys: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """Group by one dimension (absent values go to ``"Other"``), first-seen order."""
    keys = list(base_keys) if base_keys is not None else infer_base_keys(records, formulas)
    frame = metrics_frame(records, keys)
    frame["__label"] = [r.dims.get(dim_label) or OTHER for r in records]

    rows = []
    for label, sums, _ in group_sums(frame, "__label", keys, sort=False):
        row = with_formulas({k: sums.get(k, 0.0) for k in keys}, formulas)
        row["label"] = label
        rows.append(row)
    return rows


def distinct_dimension_values(records: Iterable[NormalizedRecord], dim_label: str) -> List[str]:
    return sorted({r.dims.get(dim_label) or OTHER for r in records})


def kpi_summary(records: Sequence[NormalizedRecord]) -> Dict[str, float]:
    """Headline totals: cost, leads, cost per lead and link CTR."""
    sums = sum_base_metrics(records, ["cost", "leads", "linkClicks", "impressions"])
    return {
        "cost": sums["cost"],
        "leads": sums["leads"],
        "cpl": sums["cost"] / (sums["leads"] or 1),
        "ctr": sums["linkClicks"] / (sums["impressions"] or 1),
    }
