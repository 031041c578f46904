"""Load and validate config.yaml."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from adpivot.config_store import load_dimension_configs, load_formulas, load_mapping_set
from adpivot.defaults import default_dimension_configs, default_formulas, empty_mapping_set
from adpivot.schema import (
    SCOPES,
    DimensionConfig,
    DisplayOptions,
    FormulaField,
    MappingSet,
    PivotSpec,
)


@dataclass
class PivotConfig:
    row_dims: List[str] = field(default_factory=lambda: ["Campaign"])
    col_dims: List[str] = field(default_factory=list)
    value_keys: List[str] = field(default_factory=lambda: ["cost", "impressions", "CTR", "CPM"])
    scopes: List[str] = field(default_factory=lambda: list(SCOPES))
    show_subtotal: bool = False
    show_grand_total: bool = True
    total_axis: str = "row"

    def to_spec(self) -> PivotSpec:
        return PivotSpec(
            row_dims=tuple(self.row_dims),
            col_dims=tuple(self.col_dims),
            value_keys=tuple(self.value_keys),
            scopes=tuple(self.scopes),
            display=DisplayOptions(
                show_subtotal=self.show_subtotal,
                show_grand_total=self.show_grand_total,
                total_axis=self.total_axis,  # type: ignore[arg-type]
            ),
        )


@dataclass
class ExportConfig:
    format: str = "csv"  # csv | xlsx
    formatted: bool = False  # apply $ / % display formatting
    output_dir: str = "out"


@dataclass
class AuditConfig:
    enabled: bool = True


@dataclass
class AppConfig:
    pivot: PivotConfig = field(default_factory=PivotConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    mappings: MappingSet = field(default_factory=empty_mapping_set)
    dimensions: List[DimensionConfig] = field(default_factory=default_dimension_configs)
    formulas: List[FormulaField] = field(default_factory=default_formulas)
    delimiter: str = "_"


def _with_delimiter(configs: List[DimensionConfig], delimiter: str, raw: Optional[Any]) -> List[DimensionConfig]:
    """Apply the file-level delimiter to entries that did not set their own."""
    if delimiter == "_" or not isinstance(raw, list):
        return configs
    explicit = {
        item.get("label") for item in raw if isinstance(item, dict) and item.get("delimiter")
    }
    return [
        c if c.label in explicit else DimensionConfig(c.label, c.source, c.index, delimiter)
        for c in configs
    ]


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    p = Path(path)
    raw: dict = {}
    if p.exists():
        with open(p, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    delimiter = str(raw.get("delimiter") or "_")
    dimensions = load_dimension_configs(raw.get("dimensions"))
    return AppConfig(
        pivot=PivotConfig(**(raw.get("pivot") or {})),
        export=ExportConfig(**(raw.get("export") or {})),
        audit=AuditConfig(**(raw.get("audit") or {})),
        mappings=load_mapping_set(raw.get("mappings")),
        dimensions=_with_delimiter(dimensions, delimiter, raw.get("dimensions")),
        formulas=load_formulas(raw.get("formulas")),
        delimiter=delimiter,
    )
