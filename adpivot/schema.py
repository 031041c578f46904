"""Internal schema for ad rows, engine configuration and pivot results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

RawRow = Mapping[str, Any]

Platform = Literal["facebook", "google", "unknown"]
GoogleSubtype = Literal["SEARCH", "DEMAND_GEN", "PERFORMANCE_MAX"]
DimensionSource = Literal["campaign", "adSet", "ad", "platform", "age", "gender"]
Unit = Literal["", "%", "$"]
FilterMode = Literal["multi", "contains", "not_contains", "date_range"]
TotalAxis = Literal["row", "column", "both"]
RowKind = Literal["data", "subtotal", "grand_total"]

GOOGLE_SUBTYPES: Tuple[str, ...] = ("SEARCH", "DEMAND_GEN", "PERFORMANCE_MAX")
DIMENSION_SOURCES: Tuple[str, ...] = ("campaign", "adSet", "ad", "platform", "age", "gender")
UNITS: Tuple[str, ...] = ("", "%", "$")
FILTER_MODES: Tuple[str, ...] = ("multi", "contains", "not_contains", "date_range")
TOTAL_AXES: Tuple[str, ...] = ("row", "column", "both")
SCOPES: Tuple[str, ...] = (
    "meta",
    "google_search",
    "google_demand_gen",
    "google_performance_max",
)
NAME_KEYS: Tuple[str, ...] = ("campaign", "adSet", "ad")

NA = "N/A"
OTHER = "Other"
DATE_FIELD = "__date"
PLATFORM_FIELD = "__platform"
ALL_KEY = "__all__"
TOTAL_KEY = "__total__"
ALL_LABEL = "全部"
GRAND_TOTAL_LABEL = "总计"
SUBTOTAL_SUFFIX = " 小计"

Key = Tuple[str, ...]


@dataclass(frozen=True)
class FormulaField:
    id: str
    name: str
    formula: str
    unit: Unit = ""
    is_default: bool = False


@dataclass(frozen=True)
class DimensionConfig:
    """How one dimension's value is read out of a record.

    ``index == -1`` takes the source string verbatim; any other index splits
    the source on ``delimiter`` and takes that token.
    """

    label: str
    source: DimensionSource
    index: int = -1
    delimiter: str = "_"


@dataclass
class MappingConfig:
    """Source column names for one platform (+ Google subtype).

    ``metrics`` holds the canonical base metric keys, ``custom_metrics`` the
    user-added ``custom_*`` keys. Empty string means unmapped.
    """

    platform: str = ""
    campaign: str = ""
    ad_set: str = ""
    ad: str = ""
    date: str = ""
    age: str = ""
    gender: str = ""
    metrics: Dict[str, str] = field(default_factory=dict)
    custom_metrics: Dict[str, str] = field(default_factory=dict)

    def name_column(self, source: str) -> str:
        return {
            "campaign": self.campaign,
            "adSet": self.ad_set,
            "ad": self.ad,
            "age": self.age,
            "gender": self.gender,
            "platform": self.platform,
        }.get(source, "")

    def metric_columns(self) -> Dict[str, str]:
        cols = dict(self.metrics)
        cols.update(self.custom_metrics)
        return cols

    def is_empty(self) -> bool:
        fields_ = [self.platform, self.campaign, self.ad_set, self.ad, self.date, self.age, self.gender]
        return not any(fields_) and not any(self.metric_columns().values())


@dataclass
class MappingSet:
    facebook: MappingConfig = field(default_factory=MappingConfig)
    google_search: MappingConfig = field(default_factory=MappingConfig)
    google_demand_gen: MappingConfig = field(default_factory=MappingConfig)
    google_performance_max: MappingConfig = field(default_factory=MappingConfig)

    def for_platform(self, platform: str, subtype: Optional[str] = None) -> MappingConfig:
        if platform != "google":
            return self.facebook
        if subtype == "SEARCH":
            return self.google_search
        if subtype == "DEMAND_GEN":
            return self.google_demand_gen
        return self.google_performance_max

    def items(self) -> List[Tuple[str, MappingConfig]]:
        return [
            ("facebook", self.facebook),
            ("google_search", self.google_search),
            ("google_demand_gen", self.google_demand_gen),
            ("google_performance_max", self.google_performance_max),
        ]

    def platform_column(self) -> str:
        for _, cfg in self.items():
            if cfg.platform:
                return cfg.platform
        return ""

    def is_empty(self) -> bool:
        return all(cfg.is_empty() for _, cfg in self.items())


@dataclass(frozen=True)
class NormalizedRecord:
    date: str
    is_google: bool
    platform: Platform
    google_subtype: Optional[GoogleSubtype]
    dims: Mapping[str, str]
    names: Mapping[str, str]
    metrics: Mapping[str, float]

    @property
    def scope(self) -> Optional[str]:
        if self.platform == "facebook":
            return "meta"
        if self.platform == "google":
            return "google_" + (self.google_subtype or "PERFORMANCE_MAX").lower()
        return None

    def name(self, key: str) -> str:
        """Mapped Campaign / Ad Set / Ad name, or ``"N/A"`` when empty."""
        return self.names.get(key) or NA


@dataclass(frozen=True)
class Filter:
    field_key: str
    mode: FilterMode = "multi"
    selected_values: Tuple[str, ...] = ()
    text_value: str = ""
    date_range: Tuple[str, str] = ("", "")


@dataclass(frozen=True)
class DisplayOptions:
    show_subtotal: bool = False
    show_grand_total: bool = True
    total_axis: TotalAxis = "row"


@dataclass(frozen=True)
class SortKey:
    col_key: Key
    value_key: str
    direction: Literal["asc", "desc"] = "desc"


@dataclass(frozen=True)
class PivotSpec:
    filters: Tuple[Filter, ...] = ()
    row_dims: Tuple[str, ...] = ()
    col_dims: Tuple[str, ...] = ()
    value_keys: Tuple[str, ...] = ()
    scopes: Tuple[str, ...] = SCOPES
    display: DisplayOptions = field(default_factory=DisplayOptions)
    sort: Optional[SortKey] = None


@dataclass
class PivotCell:
    row_key: Key
    col_key: Key
    base_aggregates: Dict[str, float] = field(default_factory=dict)
    count: int = 0


@dataclass
class PivotRow:
    kind: RowKind
    labels: Key
    level: int
    row_keys: Tuple[Key, ...]
    values: Dict[Key, Dict[str, Optional[float]]] = field(default_factory=dict)
    counts: Dict[Key, int] = field(default_factory=dict)

    def value(self, col_key: Key, value_key: str) -> Optional[float]:
        return self.values.get(col_key, {}).get(value_key)


@dataclass
class PivotResult:
    row_dims: Tuple[str, ...]
    col_dims: Tuple[str, ...]
    value_keys: Tuple[str, ...]
    col_keys: List[Key]
    rows: List[PivotRow]
    cells: Dict[Tuple[Key, Key], PivotCell]
    units: Dict[str, str] = field(default_factory=dict)
    record_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.cells or not self.value_keys

    def data_rows(self) -> List[PivotRow]:
        return [r for r in self.rows if r.kind == "data"]

    def subtotal_rows(self) -> List[PivotRow]:
        return [r for r in self.rows if r.kind == "subtotal"]

    def grand_total_row(self) -> Optional[PivotRow]:
        for r in self.rows:
            if r.kind == "grand_total":
                return r
        return None
