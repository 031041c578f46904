"""Data-quality audit: per-dimension match rates over applicable records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from adpivot.dimensions import hierarchy_level
from adpivot.schema import NA, DimensionConfig, NormalizedRecord

# Meta only reports these breakdowns at a coarser rollup than the ad row.
_META_LEVEL_BY_SOURCE = {"age": "campaign", "gender": "adset"}


@dataclass
class DimensionQuality:
    label: str
    source: str
    total: int = 0
    matched: int = 0

    @property
    def missing(self) -> int:
        return self.total - self.matched

    @property
    def match_rate(self) -> float:
        return self.matched / self.total if self.total else 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "dimension": self.label,
            "source": self.source,
            "total": self.total,
            "matched": self.matched,
            "missing": self.missing,
            "match_rate": round(self.match_rate, 4),
        }


@dataclass
class QualityReport:
    dimensions: List[DimensionQuality] = field(default_factory=list)
    total_records: int = 0
    records_with_miss: int = 0

    def worst(self) -> Optional[DimensionQuality]:
        return self.dimensions[0] if self.dimensions else None

    def get(self, label: str) -> Optional[DimensionQuality]:
        for dq in self.dimensions:
            if dq.label == label:
                return dq
        return None

    def to_rows(self) -> List[Dict[str, object]]:
        return [dq.to_dict() for dq in self.dimensions]


def is_applicable(record: NormalizedRecord, config: DimensionConfig) -> bool:
    """Whether ``config`` can be populated on ``record`` at its rollup level.

    Only Meta rows are scoped by hierarchy; Google and unknown-platform rows
    count for every dimension.
    """
    if record.platform != "facebook":
        return True
    wanted = _META_LEVEL_BY_SOURCE.get(config.source, "ad")
    return hierarchy_level(record.names) == wanted


def audit_quality(
    records: Sequence[NormalizedRecord],
    dimension_configs: Sequence[DimensionConfig],
) -> QualityReport:
    """Match/miss counts per dimension, worst match rate first."""
    stats = [DimensionQuality(label=c.label, source=c.source) for c in dimension_configs]
    records_with_miss = 0

    for record in records:
        missed = False
        for config, dq in zip(dimension_configs, stats):
            if not is_applicable(record, config):
                continue
            dq.total += 1
            if (record.dims.get(config.label) or NA) != NA:
                dq.matched += 1
            else:
                missed = True
        if missed:
            records_with_miss += 1

    stats.sort(key=lambda dq: dq.match_rate)
    return QualityReport(
        dimensions=stats,
        total_records=len(records),
        records_with_miss=records_with_miss,
    )
