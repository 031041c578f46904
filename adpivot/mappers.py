"""Mapping utilities between external tabular/API data and the canonical metric schema."""
from __future__ import annotations

import math
import numbers
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from adpivot.defaults import base_metrics, empty_mapping_config
from adpivot.schema import MappingConfig, MappingSet

_STRIP_CHARS = re.compile(r"[$,%]")
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# Candidate header fragments per canonical key, tried in priority order and
# matched case-insensitively. Google exports carry no leads/checkout/subscribe.
_COMMON_CANDIDATES: Dict[str, List[str]] = {
    "platform": ["platform", "source"],
    "campaign": ["campaign name", "campaign"],
    "adSet": ["ad set name", "adset"],
    "ad": ["ad name", "creative"],
    "cost": ["amount spent", "spend", "cost"],
    "impressions": ["impressions"],
    "reach": ["reach"],
    "clicks": ["all clicks", "clicks (all)"],
    "linkClicks": ["link clicks", "clicks"],
    "date": ["day", "date"],
    "conversionValue": ["conversion value", "purchase value", "conversionvalue"],
    "conversion": ["conversions", "purchases", "purchase", "conversion"],
    "addToCart": ["add to cart", "atc", "addtocart"],
    "landingPageViews": ["landing page views", "landingpageviews"],
}
_FACEBOOK_CANDIDATES: Dict[str, List[str]] = {
    "leads": ["leads", "results"],
    "checkout": ["checkout", "checkouts"],
    "subscribe": ["subscribe", "subscription", "subscriptions"],
}
# "age" is a substring of "landing page views", so these only match whole headers.
_EXACT_CANDIDATES: Dict[str, List[str]] = {
    "age": ["age", "age range", "agerange"],
    "gender": ["gender", "gender type", "gendertype"],
}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def text_value(value: Any) -> str:
    """Return a raw cell as text; blanks and NaN become ``""``."""
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_metric_value(val: Any) -> float:
    """Normalize a raw cell into a finite float.

    Numbers pass through; blanks, garbage and non-finite values become 0.
    Strings have ``$ , %`` removed and their leading numeric prefix parsed::

        parse_metric_value("$1,234.50")  # -> 1234.5
        parse_metric_value("12.5%")      # -> 12.5
        parse_metric_value("abc")        # -> 0.0
    """
    if _is_missing(val) or isinstance(val, bool):
        return 0.0
    if isinstance(val, numbers.Real):
        num = float(val)
        return num if math.isfinite(num) else 0.0
    text = _STRIP_CHARS.sub("", str(val))
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return 0.0
    try:
        num = float(match.group(0))
    except ValueError:
        return 0.0
    return num if math.isfinite(num) else 0.0


def _find_match(headers: Sequence[str], targets: Sequence[str]) -> str:
    for target in targets:
        needle = target.lower()
        for header in headers:
            if needle in header.lower():
                return header
    return ""


def _find_exact(headers: Sequence[str], targets: Sequence[str]) -> str:
    wanted = {t.lower() for t in targets}
    for header in headers:
        if header.strip().lower() in wanted:
            return header
    return ""


def _mapping_from(found: Mapping[str, str], custom: Mapping[str, str]) -> MappingConfig:
    cfg = empty_mapping_config()
    cfg.platform = found.get("platform", "")
    cfg.campaign = found.get("campaign", "")
    cfg.ad_set = found.get("adSet", "")
    cfg.ad = found.get("ad", "")
    cfg.date = found.get("date", "")
    cfg.age = found.get("age", "")
    cfg.gender = found.get("gender", "")
    for key in base_metrics():
        cfg.metrics[key] = found.get(key, "")
    cfg.custom_metrics = dict(custom)
    return cfg


def auto_map(headers: Iterable[str], previous: Optional[MappingSet] = None) -> MappingSet:
    """Guess a source column for every canonical key from a header list.

    Reserved ``_``-prefixed keys (platform markers, raw payloads) are never
    offered. Custom metric mappings from ``previous`` are kept as they were.
    """
    visible = [str(h) for h in headers if not str(h).startswith("_")]

    common = {key: _find_match(visible, targets) for key, targets in _COMMON_CANDIDATES.items()}
    common.update({key: _find_exact(visible, targets) for key, targets in _EXACT_CANDIDATES.items()})
    facebook = dict(common)
    facebook.update(
        {key: _find_match(visible, targets) for key, targets in _FACEBOOK_CANDIDATES.items()}
    )

    def _custom(name: str) -> Dict[str, str]:
        if previous is None:
            return {}
        return dict(dict(previous.items())[name].custom_metrics)

    return MappingSet(
        facebook=_mapping_from(facebook, _custom("facebook")),
        google_search=_mapping_from(common, _custom("google_search")),
        google_demand_gen=_mapping_from(common, _custom("google_demand_gen")),
        google_performance_max=_mapping_from(common, _custom("google_performance_max")),
    )


def _first_present(row: Mapping[str, Any], *keys: str, default: Any = 0) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return default


def transform_api_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert one ad-data API record into a display-column RawRow."""
    platform = str(row.get("platform") or "")
    is_google = "google" in platform.lower()
    out: Dict[str, Any] = {
        "__platform": platform.lower(),
        "__campaignAdvertisingType": str(row.get("campaignAdvertisingType") or "").upper(),
        "Campaign Name": row.get("campaignName") or "",
        "Ad Set Name": row.get("adsetName") or "",
        "Ad Name": row.get("adName") or "",
        "Day": row.get("recordDate") or "",
        "Campaign ID": row.get("campaignId") or "",
        "Ad Set ID": row.get("adsetId") or "",
        "Ad ID": row.get("adId") or "",
        "Account ID": row.get("accountId") or "",
        "Account Name": row.get("accountName") or "",
        "Amount spent (USD)": _first_present(row, "costUsd", "cost"),
        "Spend": _first_present(row, "cost"),
        "Impressions": _first_present(row, "impressions"),
        "Reach": _first_present(row, "reach"),
        "Clicks (all)": _first_present(row, "clicks"),
        "Link clicks": _first_present(row, "linkClicks"),
        "Purchases": _first_present(row, "conversion"),
        "Purchases conversion value": _first_present(row, "conversionValue"),
        "Add to Cart": _first_present(row, "addToCart"),
        "Landing page views": _first_present(row, "landingPageViews"),
        "Total site sale value": _first_present(row, "gaConvertedRevenue"),
        "Age": _first_present(row, "ageRange", default=""),
        "Gender": _first_present(row, "genderType", default=""),
    }
    if not is_google:
        out["Leads"] = _first_present(row, "leads")
        out["Checkouts initiated"] = _first_present(row, "checkout")
        out["Subscriptions"] = _first_present(row, "subscribe")
    return out


def transform_api_rows(api_rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [transform_api_row(r) for r in api_rows]


def extract_unique_accounts(api_rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """Distinct ``{id, name}`` accounts in first-seen order."""
    accounts: Dict[str, str] = {}
    for row in api_rows:
        account_id = row.get("accountId")
        if account_id and account_id not in accounts:
            accounts[account_id] = row.get("accountName") or account_id
    return [{"id": k, "name": v} for k, v in accounts.items()]
