"""Tests for raw value parsing, column auto-mapping and API row transform."""
from __future__ import annotations

import math

import pytest

from adpivot.defaults import empty_mapping_set
from adpivot.mappers import (
    auto_map,
    extract_unique_accounts,
    parse_metric_value,
    text_value,
    transform_api_rows,
)


class TestParseMetricValue:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (42, 42.0),
            (3.5, 3.5),
            ("1234", 1234.0),
            ("$1,234.50", 1234.5),
            ("12.5%", 12.5),
            (" 7 ", 7.0),
            ("-3.2", -3.2),
            ("12abc", 12.0),
            (None, 0.0),
            ("", 0.0),
            ("abc", 0.0),
            ("--", 0.0),
            (float("nan"), 0.0),
            (float("inf"), 0.0),
            ("1e999", 0.0),
            (True, 0.0),
        ],
    )
    def test_always_finite(self, raw, expected):
        result = parse_metric_value(raw)
        assert math.isfinite(result)
        assert result == pytest.approx(expected)


class TestTextValue:
    def test_blank_and_nan_are_empty(self):
        assert text_value(None) == ""
        assert text_value(float("nan")) == ""

    def test_integral_float_loses_decimal(self):
        assert text_value(2025.0) == "2025"
        assert text_value("US_META") == "US_META"


FB_EXPORT_HEADERS = [
    "Campaign Name",
    "Ad Set Name",
    "Ad Name",
    "Day",
    "Amount spent (USD)",
    "Impressions",
    "Reach",
    "Clicks (all)",
    "Link clicks",
    "Purchases",
    "Purchases conversion value",
    "Add to Cart",
    "Landing page views",
    "Leads",
    "Checkouts initiated",
    "Subscriptions",
    "Age",
    "Gender",
    "__platform",
]


class TestAutoMap:
    def test_facebook_export_headers(self):
        fb = auto_map(FB_EXPORT_HEADERS).facebook
        assert fb.campaign == "Campaign Name"
        assert fb.ad_set == "Ad Set Name"
        assert fb.ad == "Ad Name"
        assert fb.date == "Day"
        assert fb.age == "Age"
        assert fb.gender == "Gender"
        assert fb.metrics["cost"] == "Amount spent (USD)"
        assert fb.metrics["clicks"] == "Clicks (all)"
        assert fb.metrics["linkClicks"] == "Link clicks"
        assert fb.metrics["conversion"] == "Purchases"
        assert fb.metrics["conversionValue"] == "Purchases conversion value"
        assert fb.metrics["landingPageViews"] == "Landing page views"
        assert fb.metrics["leads"] == "Leads"
        assert fb.metrics["checkout"] == "Checkouts initiated"
        assert fb.metrics["subscribe"] == "Subscriptions"

    def test_reserved_columns_are_never_mapped(self):
        fb = auto_map(FB_EXPORT_HEADERS).facebook
        assert fb.platform == ""

    def test_google_mappings_skip_facebook_only_metrics(self):
        mappings = auto_map(FB_EXPORT_HEADERS)
        for slot in ("google_search", "google_demand_gen", "google_performance_max"):
            cfg = getattr(mappings, slot)
            assert cfg.metrics["cost"] == "Amount spent (USD)"
            assert cfg.metrics["leads"] == ""
            assert cfg.metrics["subscribe"] == ""

    def test_age_is_not_matched_inside_other_headers(self):
        fb = auto_map(["Landing page views", "Campaign"]).facebook
        assert fb.age == ""
        assert fb.metrics["landingPageViews"] == "Landing page views"

    def test_custom_metrics_survive_remap(self):
        previous = empty_mapping_set()
        previous.facebook.custom_metrics["custom_signups"] = "Sign ups"
        mappings = auto_map(FB_EXPORT_HEADERS, previous=previous)
        assert mappings.facebook.custom_metrics == {"custom_signups": "Sign ups"}
        assert mappings.google_search.custom_metrics == {}


API_ROWS = [
    {
        "platform": "Facebook",
        "accountId": "act_1",
        "accountName": "Brand FB",
        "campaignName": "US_META_Image",
        "adsetName": "AS1",
        "adName": "Ad1",
        "recordDate": "2025-01-01",
        "costUsd": 12.5,
        "cost": 90,
        "impressions": 1000,
        "leads": 3,
    },
    {
        "platform": "Google",
        "campaignAdvertisingType": "search",
        "accountId": "g_9",
        "accountName": "Brand G",
        "campaignName": "US_GG_Search",
        "recordDate": "2025-01-02",
        "cost": 7,
    },
    {"platform": "Facebook", "accountId": "act_1", "accountName": "Brand FB"},
]


class TestTransformApiRows:
    def test_markers_and_display_columns(self):
        fb, google, _ = transform_api_rows(API_ROWS)
        assert fb["__platform"] == "facebook"
        assert fb["Campaign Name"] == "US_META_Image"
        assert fb["Amount spent (USD)"] == 12.5
        assert fb["Leads"] == 3
        assert google["__platform"] == "google"
        assert google["__campaignAdvertisingType"] == "SEARCH"
        assert google["Amount spent (USD)"] == 7

    def test_facebook_only_columns(self):
        fb, google, _ = transform_api_rows(API_ROWS)
        assert "Checkouts initiated" in fb
        assert "Leads" not in google

    def test_unique_accounts_first_seen_order(self):
        assert extract_unique_accounts(API_ROWS) == [
            {"id": "act_1", "name": "Brand FB"},
            {"id": "g_9", "name": "Brand G"},
        ]
