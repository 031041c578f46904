"""Turn raw ad rows into normalized records (platform, date, dims, metrics)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from adpivot.defaults import base_metrics
from adpivot.dimensions import DimensionSources, resolve_dimension
from adpivot.formula import evaluate_formula
from adpivot.mappers import parse_metric_value, text_value
from adpivot.schema import (
    GOOGLE_SUBTYPES,
    DimensionConfig,
    FormulaField,
    MappingSet,
    NormalizedRecord,
    RawRow,
)

logger = logging.getLogger(__name__)

PLATFORM_MARKER = "__platform"
CAMPAIGN_TYPE_MARKER = "__campaignAdvertisingType"


@dataclass
class ProcessedData:
    records: List[NormalizedRecord] = field(default_factory=list)
    dates: List[str] = field(default_factory=list)


def _platform_from_text(value: str) -> str:
    lowered = value.lower()
    if "google" in lowered:
        return "google"
    if "facebook" in lowered or "meta" in lowered:
        return "facebook"
    return "unknown"


def google_subtype(value: Any) -> str:
    """Normalize a campaign advertising type; unknown values mean Performance Max."""
    normalized = text_value(value).strip().upper().replace(" ", "_").replace("-", "_")
    return normalized if normalized in GOOGLE_SUBTYPES else "PERFORMANCE_MAX"


def classify_platform(row: RawRow, platform_column: str = "") -> Tuple[str, Optional[str]]:
    """Return ``(platform, google_subtype)`` for a raw row.

    The reserved ``__platform`` marker wins, then the mapped platform column,
    then literal ``Platform``/``platform`` columns. Without any marker a row
    carrying a Google campaign type is Google; everything else is Facebook.
    """
    platform = ""
    for column in (PLATFORM_MARKER, platform_column, "Platform", "platform"):
        if not column:
            continue
        marker = text_value(row.get(column))
        if marker:
            platform = _platform_from_text(marker)
            break
    if not platform:
        platform = "google" if text_value(row.get(CAMPAIGN_TYPE_MARKER)) else "facebook"
    if platform != "google":
        return platform, None
    return platform, google_subtype(row.get(CAMPAIGN_TYPE_MARKER))


def date_sort_key(value: str) -> Tuple[int, Any]:
    """Calendar order for parseable dates; unparseable strings sort after them."""
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        ts = None
    if ts is None or pd.isna(ts):
        return (1, value)
    return (0, ts.value)


def sort_dates(dates: Iterable[str]) -> List[str]:
    return sorted(set(dates), key=date_sort_key)


def process_row(
    row: RawRow,
    mappings: MappingSet,
    dimension_configs: Sequence[DimensionConfig],
    formulas: Sequence[FormulaField],
    platform_column: str = "",
    base_keys: Optional[Sequence[str]] = None,
) -> NormalizedRecord:
    platform, subtype = classify_platform(row, platform_column)
    cfg = mappings.for_platform(platform, subtype)

    context = {key: 0.0 for key in (base_keys if base_keys is not None else base_metrics())}
    for key, column in cfg.metric_columns().items():
        context[key] = parse_metric_value(row.get(column)) if column else 0.0

    formula_results = {f.name: evaluate_formula(f.formula, context) for f in formulas}

    names = {
        "campaign": text_value(row.get(cfg.campaign)) if cfg.campaign else "",
        "adSet": text_value(row.get(cfg.ad_set)) if cfg.ad_set else "",
        "ad": text_value(row.get(cfg.ad)) if cfg.ad else "",
    }
    sources = DimensionSources(
        campaign=names["campaign"],
        ad_set=names["adSet"],
        ad=names["ad"],
        age=text_value(row.get(cfg.age or "Age")),
        gender=text_value(row.get(cfg.gender or "Gender")),
        platform=platform,
        google_subtype=subtype,
    )
    dims = {conf.label: resolve_dimension(conf, sources) for conf in dimension_configs}

    return NormalizedRecord(
        date=text_value(row.get(cfg.date)) if cfg.date else "",
        is_google=platform == "google",
        platform=platform,  # type: ignore[arg-type]
        google_subtype=subtype,  # type: ignore[arg-type]
        dims=dims,
        names=names,
        metrics={**context, **formula_results},
    )


def process_rows(
    raw_rows: Iterable[RawRow],
    mappings: MappingSet,
    dimension_configs: Sequence[DimensionConfig],
    formulas: Sequence[FormulaField],
    base_keys: Optional[Sequence[str]] = None,
) -> ProcessedData:
    """Normalize every raw row in one pass and collect the distinct dates."""
    platform_column = mappings.platform_column()
    records = [
        process_row(row, mappings, dimension_configs, formulas, platform_column, base_keys)
        for row in raw_rows
    ]
    dates = sort_dates(r.date for r in records if r.date)
    logger.debug("Processed %d rows spanning %d dates", len(records), len(dates))
    return ProcessedData(records=records, dates=dates)
