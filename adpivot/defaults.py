"""Built-in defaults: base metrics, formulas, dimensions, empty mappings.

Every default is built fresh by a function call so callers can mutate what
they get back without touching anyone else's configuration.
"""

from __future__ import annotations

from typing import Dict, List

from adpivot.schema import DimensionConfig, FormulaField, MappingConfig, MappingSet


def base_metrics() -> List[str]:
    return [
        "cost",
        "leads",
        "impressions",
        "reach",
        "clicks",
        "linkClicks",
        "conversionValue",
        "conversion",
        "addToCart",
        "landingPageViews",
        "checkout",
        "subscribe",
    ]


def is_reserved_metric_name(name: str) -> bool:
    """Base metric keys and ``custom_*`` keys cannot be reused as formula names."""
    return name in base_metrics() or name.startswith("custom_")


def metric_labels() -> Dict[str, str]:
    return {
        "platform": "Platform Identification",
        "campaign": "Campaign Name",
        "adSet": "Ad Set Name",
        "ad": "Ad Name",
        "date": "Day",
        "age": "Age",
        "gender": "Gender",
        "cost": "Amount spent (USD)",
        "leads": "Leads",
        "impressions": "Impressions",
        "reach": "Reach",
        "clicks": "Clicks",
        "linkClicks": "Link clicks",
        "conversionValue": "Conversion Value",
        "conversion": "Conversions",
        "addToCart": "Add to Cart",
        "landingPageViews": "Landing Page Views",
        "checkout": "Checkouts",
        "subscribe": "Subscriptions",
    }


def default_formulas() -> List[FormulaField]:
    return [
        FormulaField("f_cpm", "CPM", "cost / impressions * 1000", "$", True),
        FormulaField("f_cpc", "CPC", "cost / linkClicks", "$", True),
        FormulaField("f_ctr", "CTR", "linkClicks / impressions", "%", True),
        FormulaField("f_cpatc", "CPATC", "cost / addToCart", "$", True),
        FormulaField("f_freq", "Frequency", "impressions / reach", "", True),
        FormulaField("f_aov", "AOV", "conversionValue / conversion", "$", True),
        FormulaField("f_cpco", "Cost per checkout", "cost / checkout", "$", True),
        FormulaField("f_cps", "Cost per subscription", "cost / subscribe", "$", True),
        FormulaField("f_roas", "ROAS", "conversionValue / cost", "", True),
    ]


def default_dimension_configs() -> List[DimensionConfig]:
    return [
        DimensionConfig("Platform", "platform"),
        DimensionConfig("Campaign", "campaign"),
        DimensionConfig("Ad Set", "adSet"),
        DimensionConfig("Ad", "ad"),
        DimensionConfig("Age", "age"),
        DimensionConfig("Gender", "gender"),
    ]


def empty_mapping_config() -> MappingConfig:
    return MappingConfig(metrics={k: "" for k in base_metrics()})


def empty_mapping_set() -> MappingSet:
    return MappingSet(
        facebook=empty_mapping_config(),
        google_search=empty_mapping_config(),
        google_demand_gen=empty_mapping_config(),
        google_performance_max=empty_mapping_config(),
    )
