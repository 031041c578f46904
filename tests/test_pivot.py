"""Tests for the pivot engine: grouping, totals, subtotals, sorting and empty cells."""
from __future__ import annotations

import pytest

from adpivot.config_store import load_formulas
from adpivot.defaults import default_dimension_configs, default_formulas
from adpivot.mappers import auto_map
from adpivot.pipeline import recompute
from adpivot.pivot import build_pivot, group_cells
from adpivot.schema import (
    ALL_KEY,
    DisplayOptions,
    Filter,
    FormulaField,
    NormalizedRecord,
    PivotSpec,
    SortKey,
)

CTR = FormulaField("f_ctr", "CTR", "clicks / impressions", "%")


def _record(platform="facebook", subtype=None, ad="Ad", **kwargs):
    dims = {k: v for k, v in kwargs.items() if isinstance(v, str)}
    metrics = {k: float(v) for k, v in kwargs.items() if not isinstance(v, str)}
    return NormalizedRecord(
        date="2025-01-01",
        is_google=platform == "google",
        platform=platform,
        google_subtype=subtype,
        dims=dims,
        names={"campaign": dims.get("Campaign", ""), "adSet": "AS", "ad": ad},
        metrics=metrics,
    )


def _labels(result):
    return [(row.kind, row.labels) for row in result.rows]


# ─────────────────────────────────────────────────────────────────────────────
# End-to-end from raw rows
# ─────────────────────────────────────────────────────────────────────────────


RAW_ROWS = [
    {"__platform": "facebook", "Campaign Name": "C1", "Ad Set Name": "AS1", "Ad Name": "A1", "Amount spent (USD)": 10},
    {"__platform": "facebook", "Campaign Name": "C1", "Ad Set Name": "AS1", "Ad Name": "A2", "Amount spent (USD)": 20},
    {"__platform": "google", "__campaignAdvertisingType": "PERFORMANCE_MAX", "Campaign Name": "C2", "Amount spent (USD)": 5},
    {"__platform": "google", "__campaignAdvertisingType": "PERFORMANCE_MAX", "Campaign Name": "C2", "Amount spent (USD)": 15},
]
HEADERS = ["Campaign Name", "Ad Set Name", "Ad Name", "Amount spent (USD)"]


class TestEndToEnd:
    def test_campaign_costs_and_grand_total(self):
        result = recompute(
            RAW_ROWS,
            auto_map(HEADERS),
            default_dimension_configs(),
            default_formulas(),
            PivotSpec(row_dims=("Campaign",), value_keys=("cost",)),
        )
        col = result.col_keys[0]
        data = {row.labels: row.value(col, "cost") for row in result.data_rows()}
        assert data == {("C1",): 30.0, ("C2",): 20.0}
        assert result.grand_total_row().labels == ("总计",)
        assert result.grand_total_row().value(col, "cost") == 50.0
        assert result.record_count == 4

    def test_grand_total_can_be_disabled(self):
        spec = PivotSpec(
            row_dims=("Campaign",),
            value_keys=("cost",),
            display=DisplayOptions(show_grand_total=False),
        )
        result = recompute(RAW_ROWS, auto_map(HEADERS), default_dimension_configs(), default_formulas(), spec)
        assert result.grand_total_row() is None

    def test_formula_named_after_base_metric_cannot_replace_it(self):
        formulas = load_formulas([{"id": "x", "name": "impressions", "formula": "cost * 2"}])
        rows = [{"__platform": "facebook", "Ad Name": "A1", "Amount spent (USD)": 10, "Impressions": 1000}]
        result = recompute(
            rows,
            auto_map(["Ad Name", "Amount spent (USD)", "Impressions"]),
            default_dimension_configs(),
            formulas,
            PivotSpec(row_dims=(), value_keys=("cost", "impressions")),
        )
        total = result.grand_total_row()
        col = result.col_keys[0]
        assert total.value(col, "impressions") == 1000.0
        assert total.value(col, "cost") == 10.0


# ─────────────────────────────────────────────────────────────────────────────
# Aggregation semantics
# ─────────────────────────────────────────────────────────────────────────────


class TestValues:
    def test_ratio_recomputed_from_sums(self):
        records = [
            _record(Campaign="C", impressions=100, clicks=10),
            _record(Campaign="C", impressions=200, clicks=30),
        ]
        result = build_pivot(records, PivotSpec(row_dims=("Campaign",), value_keys=("CTR", "clicks")), [CTR])
        row = result.data_rows()[0]
        ctr = row.value(("__all__",), "CTR")
        assert ctr == pytest.approx(40 / 300)
        assert ctr != pytest.approx(0.125)
        assert row.value(("__all__",), "clicks") == 40

    def test_empty_cell_is_none_not_zero(self):
        records = [
            _record(Campaign="C1", Platform="Facebook", cost=10),
            _record("google", "SEARCH", Campaign="C2", Platform="Google - SEARCH", cost=5),
        ]
        spec = PivotSpec(row_dims=("Campaign",), col_dims=("Platform",), value_keys=("cost",))
        result = build_pivot(records, spec, [])
        c1 = result.data_rows()[0]
        assert c1.value(("Facebook",), "cost") == 10
        assert c1.value(("Google - SEARCH",), "cost") is None
        assert c1.counts[("Google - SEARCH",)] == 0

    def test_meta_rollup_rows_not_double_counted(self):
        records = [
            _record(Campaign="C", cost=10),
            _record(Campaign="C", ad="", cost=10),  # campaign/adset rollup row
        ]
        result = build_pivot(records, PivotSpec(row_dims=("Campaign",), value_keys=("cost",)), [])
        assert result.data_rows()[0].value(("__all__",), "cost") == 10

    def test_filters_applied(self):
        records = [_record(Campaign="C1", cost=1), _record(Campaign="C2", cost=2)]
        spec = PivotSpec(
            filters=(Filter("Campaign", "multi", ("C2",)),),
            row_dims=("Campaign",),
            value_keys=("cost",),
        )
        result = build_pivot(records, spec, [])
        assert [row.labels for row in result.data_rows()] == [("C2",)]
        assert result.record_count == 1

    def test_no_row_dims_single_all_row(self):
        records = [_record(Campaign="C1", cost=1), _record(Campaign="C2", cost=2)]
        result = build_pivot(records, PivotSpec(value_keys=("cost",)), [])
        assert [row.labels for row in result.data_rows()] == [("__all__",)]
        assert result.data_rows()[0].value(("__all__",), "cost") == 3


# ─────────────────────────────────────────────────────────────────────────────
# Row tree
# ─────────────────────────────────────────────────────────────────────────────


TREE = [
    _record(Market="A", Campaign="a1", cost=1),
    _record(Market="A", Campaign="a2", cost=2),
    _record(Market="B", Campaign="b1", cost=3),
    _record(Market="B", Campaign="b2", cost=4),
]


class TestGroupCells:
    def test_sums_and_counts_per_cell(self):
        records = [
            _record(Campaign="C1", Country="US", cost=10),
            _record(Campaign="C1", Country="US", cost=5),
            _record(Campaign="C1", Country="UK", cost=7),
            _record(Campaign="C2", Country="US"),
        ]
        cells = group_cells(records, ["Campaign"], ["Country"], ["cost"])
        assert sorted(cells) == [
            (("C1",), ("UK",)),
            (("C1",), ("US",)),
            (("C2",), ("US",)),
        ]
        us = cells[(("C1",), ("US",))]
        assert us.base_aggregates == {"cost": 15.0}
        assert us.count == 2
        assert cells[(("C2",), ("US",))].base_aggregates == {"cost": 0.0}

    def test_no_dims_single_all_cell(self):
        cells = group_cells([_record(cost=1), _record(cost=2)], [], [], ["cost"])
        assert list(cells) == [((ALL_KEY,), (ALL_KEY,))]
        assert cells[((ALL_KEY,), (ALL_KEY,))].count == 2

    def test_no_records(self):
        assert group_cells([], ["Campaign"], [], ["cost"]) == {}


class TestSubtotals:
    def test_subtotal_once_per_closed_group(self):
        spec = PivotSpec(
            row_dims=("Market", "Campaign"),
            value_keys=("cost",),
            display=DisplayOptions(show_subtotal=True),
        )
        result = build_pivot(TREE, spec, [])
        assert _labels(result) == [
            ("data", ("A", "a1")),
            ("data", ("A", "a2")),
            ("subtotal", ("A 小计", "")),
            ("data", ("B", "b1")),
            ("data", ("B", "b2")),
            ("subtotal", ("B 小计", "")),
            ("grand_total", ("总计", "")),
        ]
        subtotals = [row.value(("__all__",), "cost") for row in result.subtotal_rows()]
        assert subtotals == [3, 7]
        assert result.grand_total_row().value(("__all__",), "cost") == 10

    def test_three_levels_nest_subtotals(self):
        records = [
            _record(Region="EU", Market="DE", Campaign="x", cost=1),
            _record(Region="EU", Market="FR", Campaign="y", cost=2),
        ]
        spec = PivotSpec(
            row_dims=("Region", "Market", "Campaign"),
            value_keys=("cost",),
            display=DisplayOptions(show_subtotal=True, show_grand_total=False),
        )
        result = build_pivot(records, spec, [])
        assert [row.labels for row in result.subtotal_rows()] == [
            ("EU", "DE 小计", ""),
            ("EU", "FR 小计", ""),
            ("EU 小计", "", ""),
        ]

    def test_no_subtotals_for_single_dimension(self):
        spec = PivotSpec(
            row_dims=("Campaign",),
            value_keys=("cost",),
            display=DisplayOptions(show_subtotal=True),
        )
        assert build_pivot(TREE, spec, []).subtotal_rows() == []


class TestTotalsAxis:
    def test_total_column(self):
        records = [
            _record(Campaign="C1", Platform="Facebook", cost=10),
            _record("google", "SEARCH", Campaign="C1", Platform="Google - SEARCH", cost=5),
        ]
        spec = PivotSpec(
            row_dims=("Campaign",),
            col_dims=("Platform",),
            value_keys=("cost",),
            display=DisplayOptions(total_axis="both"),
        )
        result = build_pivot(records, spec, [])
        assert result.col_keys[-1] == ("__total__",)
        assert result.data_rows()[0].value(("__total__",), "cost") == 15
        assert result.grand_total_row().value(("__total__",), "cost") == 15

    def test_column_axis_only(self):
        spec = PivotSpec(
            row_dims=("Campaign",),
            col_dims=("Market",),
            value_keys=("cost",),
            display=DisplayOptions(total_axis="column"),
        )
        result = build_pivot(TREE, spec, [])
        assert result.grand_total_row() is None
        assert ("__total__",) in result.col_keys


class TestSort:
    def test_sort_within_innermost_group(self):
        spec = PivotSpec(
            row_dims=("Market", "Campaign"),
            value_keys=("cost",),
            display=DisplayOptions(show_subtotal=True),
            sort=SortKey(("__all__",), "cost", "desc"),
        )
        result = build_pivot(TREE, spec, [])
        assert [row.labels for row in result.rows] == [
            ("A", "a2"),
            ("A", "a1"),
            ("A 小计", ""),
            ("B", "b2"),
            ("B", "b1"),
            ("B 小计", ""),
            ("总计", ""),
        ]

    def test_invalid_sort_key_is_ignored(self):
        spec = PivotSpec(row_dims=("Campaign",), value_keys=("cost",), sort=SortKey(("nope",), "cost"))
        result = build_pivot(TREE, spec, [])
        assert [row.labels[0] for row in result.data_rows()] == ["a1", "a2", "b1", "b2"]


class TestMisconfiguration:
    def test_zero_scopes_gives_empty_result(self):
        result = build_pivot(TREE, PivotSpec(row_dims=("Campaign",), value_keys=("cost",), scopes=()), [])
        assert result.rows == []
        assert result.is_empty

    def test_unknown_dims_and_values_dropped(self):
        spec = PivotSpec(row_dims=("Nope", "Campaign", "Campaign"), value_keys=("cost", "ghost"))
        result = build_pivot(TREE, spec, [])
        assert result.row_dims == ("Campaign",)
        assert result.value_keys == ("cost",)

    def test_units_from_formulas(self):
        records = [_record(Campaign="C", impressions=10, clicks=1)]
        result = build_pivot(records, PivotSpec(row_dims=("Campaign",), value_keys=("CTR",)), [CTR])
        assert result.units == {"CTR": "%"}

    def test_empty_records(self):
        result = build_pivot([], PivotSpec(row_dims=("Campaign",), value_keys=("cost",)), default_formulas())
        assert result.rows == []
