"""Filter normalized records by platform scope, date range and dimension values."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from adpivot.dimensions import platform_label
from adpivot.processor import date_sort_key
from adpivot.schema import (
    DATE_FIELD,
    NA,
    NAME_KEYS,
    OTHER,
    PLATFORM_FIELD,
    Filter,
    NormalizedRecord,
)


def known_fields(records: Iterable[NormalizedRecord]) -> Set[str]:
    """Field keys a filter or pivot axis may reference for these records."""
    fields: Set[str] = {DATE_FIELD, PLATFORM_FIELD, *NAME_KEYS}
    for record in records:
        fields.update(record.dims.keys())
    return fields


def field_value(record: NormalizedRecord, key: str) -> str:
    """Value of a dimension, name or reserved field; ``"N/A"`` when absent."""
    if key in record.dims:
        return record.dims[key] or NA
    if key == DATE_FIELD:
        return record.date or NA
    if key == PLATFORM_FIELD:
        return platform_label(record.platform, record.google_subtype)
    if key in NAME_KEYS:
        return record.name(key)
    return NA


def in_scope(record: NormalizedRecord, scopes: Iterable[str]) -> bool:
    """Platform scope membership; Meta rows only count at ad level."""
    scope = record.scope
    if scope is None or scope not in set(scopes):
        return False
    if scope == "meta":
        return record.name("ad") != NA
    return True


def apply_scope(records: Iterable[NormalizedRecord], scopes: Iterable[str]) -> List[NormalizedRecord]:
    wanted = set(scopes)
    return [r for r in records if in_scope(r, wanted)]


def in_date_range(value: str, start: str = "", end: str = "") -> bool:
    if not start and not end:
        return True
    if not value or value == NA:
        return False
    key = date_sort_key(value)
    if start and key < date_sort_key(start):
        return False
    if end and key > date_sort_key(end):
        return False
    return True


def matches_filter(record: NormalizedRecord, flt: Filter) -> bool:
    if flt.mode == "date_range":
        start, end = (tuple(flt.date_range) + ("", ""))[:2]
        value = record.date if flt.field_key == DATE_FIELD else field_value(record, flt.field_key)
        return in_date_range(value, start or "", end or "")

    value = field_value(record, flt.field_key)
    if flt.mode == "multi":
        return not flt.selected_values or value in flt.selected_values
    needle = (flt.text_value or "").lower()
    if not needle:
        return True
    if flt.mode == "contains":
        return needle in value.lower()
    if flt.mode == "not_contains":
        return needle not in value.lower()
    return True


def apply_filters(
    records: Sequence[NormalizedRecord],
    filters: Iterable[Filter],
    fields: Optional[Set[str]] = None,
) -> List[NormalizedRecord]:
    """Keep records passing every filter; filters on unknown fields are ignored."""
    known = fields if fields is not None else known_fields(records)
    active = [f for f in filters if f.field_key in known]
    if not active:
        return list(records)
    return [r for r in records if all(matches_filter(r, f) for f in active)]


def filter_records(
    records: Iterable[NormalizedRecord],
    date_range: Tuple[str, str] = ("", ""),
    platform: str = "all",
    dim_filters: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[NormalizedRecord]:
    """Dashboard filter: date window, platform selector and dimension inclusion lists.

    Dimension values absent on a record fall into the ``"Other"`` bucket.
    """
    start, end = date_range
    data = [r for r in records if in_date_range(r.date, start, end)]
    if platform in ("facebook", "google"):
        data = [r for r in data if r.is_google == (platform == "google")]
    for label, values in (dim_filters or {}).items():
        if values:
            allowed = set(values)
            data = [r for r in data if (r.dims.get(label) or OTHER) in allowed]
    return data
