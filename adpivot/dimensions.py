"""Resolve dimension values from naming conventions and mapped columns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Optional

from adpivot.schema import NA, DimensionConfig

HierarchyLevel = Literal["campaign", "adset", "ad"]


@dataclass(frozen=True)
class DimensionSources:
    """The per-row strings a dimension can be read from."""

    campaign: str = ""
    ad_set: str = ""
    ad: str = ""
    age: str = ""
    gender: str = ""
    platform: str = "unknown"
    google_subtype: Optional[str] = None

    def name(self, source: str) -> str:
        return {
            "campaign": self.campaign,
            "adSet": self.ad_set,
            "ad": self.ad,
            "age": self.age,
            "gender": self.gender,
        }.get(source, "")


def platform_label(platform: str, google_subtype: Optional[str] = None) -> str:
    if platform == "google":
        return f"Google - {google_subtype or 'PERFORMANCE_MAX'}"
    if platform == "facebook":
        return "Facebook"
    return NA


def split_token(value: str, index: int, delimiter: str = "_") -> str:
    """Token ``index`` of ``value`` split on ``delimiter``; ``-1`` returns it whole."""
    if not value:
        return NA
    if index == -1:
        return value
    if index < 0:
        return NA
    parts = value.split(delimiter or "_")
    if index >= len(parts):
        return NA
    return parts[index] or NA


def resolve_dimension(config: DimensionConfig, sources: DimensionSources) -> str:
    """Value of one configured dimension for one row; ``"N/A"`` when absent.

    >>> resolve_dimension(DimensionConfig("Market", "campaign", 1),
    ...                   DimensionSources(campaign="US_META_Image_20250101"))
    'META'
    """
    if config.source == "platform":
        return platform_label(sources.platform, sources.google_subtype)
    if config.source in ("age", "gender"):
        return sources.name(config.source) or NA
    return split_token(sources.name(config.source), config.index, config.delimiter)


def hierarchy_level(names: Mapping[str, str]) -> HierarchyLevel:
    """Meta rollup depth of a row from its Ad Set / Ad names."""
    ad_set = names.get("adSet") or NA
    ad = names.get("ad") or NA
    if ad != NA:
        return "ad"
    if ad_set != NA:
        return "adset"
    return "campaign"
