"""
Tests for query_filters module
Tests site aliasing, status codes, parameter parsing and fixture-mode filtering
"""

import pytest
import pandas as pd
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from query_filters import (
    MAX_ROWS_LIMIT,
    QueryFilters,
    apply_snapshot_filters,
    apply_supply_horizon,
    apply_work_order_filters,
    build_query_filters,
    get_site_options,
    map_sites_to_codes,
    map_sites_to_names,
    map_status_labels_to_codes,
    parse_horizon,
    parse_iso_date,
    parse_max_rows,
    to_site_code,
    to_site_name,
)
from records import normalize_frame, work_orders_frame
from snapshot_classifier import classify_snapshot


class TestSites:
    """Test site alias mapping"""

    @pytest.mark.parametrize("label", [
        "QLD SALES & SERVICE",
        "qld sales and service",
        "  QLD   Sales &Service ",
        "QLD SERVICE",
        "L-QLD",
    ])
    def test_aliases_map_to_code(self, label):
        assert to_site_code(label) == "L-QLD"

    def test_code_maps_to_name(self):
        assert to_site_name("L-VIC") == "VICTORIA SALES & SERVICE"
        assert to_site_name("vic sales and service") == "VICTORIA SALES & SERVICE"

    def test_unknown_site_passes_through(self):
        assert to_site_code("Mars Depot") == "Mars Depot"
        assert to_site_name("UNKNOWN") == "UNKNOWN"

    def test_map_lists(self):
        assert map_sites_to_codes(["Sunshine", "WA Sales"]) == ["L-SUN", "L-WAU"]
        assert map_sites_to_codes("L-QLD, NSW SERVICE") == ["L-QLD", "L-NSW"]
        assert map_sites_to_names(["L-FBK"]) == ["FAIRBANK SALES & SERVICE"]
        assert map_sites_to_codes(None) is None

    def test_site_options(self):
        options = get_site_options()
        assert {"code": "L-QLD", "name": "QLD SALES & SERVICE"} in options
        assert len({o["code"] for o in options}) == len(options)


class TestStatusCodes:
    """Test status label to warehouse code mapping"""

    def test_known_labels(self):
        assert map_status_labels_to_codes(["Posted", "Canceled"]) == [690970004, 690970005]

    def test_unknown_labels_are_dropped(self):
        assert map_status_labels_to_codes(["Posted", "Archived"]) == [690970004]

    def test_no_labels_means_wip(self):
        assert map_status_labels_to_codes(None) == [690970000, 690970001, 690970002, 690970003]
        assert map_status_labels_to_codes([]) == map_status_labels_to_codes(None)


class TestParsing:
    """Test scalar parameter parsing"""

    @pytest.mark.parametrize("value, expected", [
        (None, 30), ("", 30), ("abc", 30), ("45", 45), (14, 14), ("7.0", 7), (-5, -5), (500, 500),
    ])
    def test_parse_horizon(self, value, expected):
        assert parse_horizon(value) == expected

    def test_parse_iso_date(self):
        assert parse_iso_date("2025-10-01") == pd.Timestamp("2025-10-01")
        assert parse_iso_date("") is None
        assert parse_iso_date(None) is None
        assert parse_iso_date("yesterday-ish") is None

    def test_parse_max_rows(self):
        assert parse_max_rows(None) == 10000
        assert parse_max_rows("250") == 250
        assert parse_max_rows(10 ** 9) == MAX_ROWS_LIMIT
        assert parse_max_rows(-3) == 1
        assert parse_max_rows("lots") == 10000


class TestBuildQueryFilters:
    """Test building one normalised filter set"""

    def test_defaults(self):
        filters = build_query_filters()
        assert filters.site_codes is None
        assert filters.status_labels == ("Unscheduled", "Scheduled", "InProgress", "Completed")
        assert filters.horizon_days == 30
        assert filters.priority is None
        assert filters.only_exceptions is False
        assert filters.site_param is None

    def test_full(self):
        filters = build_query_filters(
            sites=["QLD SALES AND SERVICE", "L-VIC"],
            statuses="Posted,Completed",
            priority="High",
            date_from="2025-09-01",
            date_to="2025-09-30",
            horizon="60",
            only_exceptions="true",
            max_rows=500,
        )
        assert filters.site_codes == ("L-QLD", "L-VIC")
        assert filters.site_param == "L-QLD,L-VIC"
        assert filters.status_param == "690970004,690970003"
        assert filters.priority == "High"
        assert filters.date_from == pd.Timestamp("2025-09-01")
        assert filters.horizon_days == 60
        assert filters.only_exceptions is True
        assert filters.max_rows == 500

    def test_all_priority_means_none(self):
        assert build_query_filters(priority="All").priority is None

    def test_all_unknown_statuses_apply_no_constraint(self):
        filters = build_query_filters(statuses=["Archived"])
        assert filters.status_codes is None
        assert filters.status_param is None

    def test_filters_are_immutable(self):
        filters = build_query_filters()
        with pytest.raises(Exception):
            filters.horizon_days = 10


class TestFixtureFiltering:
    """Test applying filters to fixture data"""

    def test_work_order_filters(self, sample_work_orders, as_of):
        df = work_orders_frame(sample_work_orders, as_of)

        wip = apply_work_order_filters(df, build_query_filters())
        assert set(wip["work_order_id"]) == {"WO-1", "WO-2", "WO-3", "WO-6"}

        qld_posted = apply_work_order_filters(df, build_query_filters(sites="QLD SERVICE", statuses=["Posted"]))
        assert list(qld_posted["work_order_id"]) == ["WO-4"]

        high = apply_work_order_filters(df, build_query_filters(statuses=["Posted"], priority="High"))
        assert list(high["work_order_id"]) == ["WO-5"]

    def test_created_date_range_includes_whole_end_day(self, as_of):
        df = work_orders_frame([
            {"work_order_id": "A", "status": "Scheduled", "created_date": "2025-09-30T23:30:00"},
            {"work_order_id": "B", "status": "Scheduled", "created_date": "2025-10-01T00:00:00"},
            {"work_order_id": "C", "status": "Scheduled", "created_date": "2025-08-31T23:59:00"},
        ], as_of)
        filters = build_query_filters(date_from="2025-09-01", date_to="2025-09-30")
        assert list(apply_work_order_filters(df, filters)["work_order_id"]) == ["A"]

    def test_snapshot_filters(self, sample_snapshot):
        df = classify_snapshot(sample_snapshot)
        only_qld = apply_snapshot_filters(df, build_query_filters(sites=["L-QLD"]))
        assert set(only_qld["item_id"]) == {"A", "B", "G"}

        exceptions = apply_snapshot_filters(df, build_query_filters(sites=["L-QLD"], only_exceptions=True))
        assert set(exceptions["item_id"]) == {"B", "G"}

    def test_site_names_in_data_match_codes(self):
        df = pd.DataFrame({"site": ["QLD SALES & SERVICE", "L-VIC"], "action": ["OK", "OK"]})
        filtered = apply_snapshot_filters(df, build_query_filters(sites=["L-QLD"]))
        assert list(filtered["site"]) == ["QLD SALES & SERVICE"]

    def test_supply_horizon(self, sample_supply, as_of):
        df = normalize_frame(sample_supply, "supply")
        kept = apply_supply_horizon(df, build_query_filters(), as_of=as_of)
        assert set(kept["ref"]) == {"PO-1", "TO-1"}

        longer = apply_supply_horizon(df, build_query_filters(horizon=90), as_of=as_of)
        assert len(longer) == 3

    def test_empty_frames_pass_through(self):
        empty = pd.DataFrame()
        filters = QueryFilters()
        assert apply_work_order_filters(empty, filters).empty
        assert apply_snapshot_filters(empty, filters).empty
        assert apply_supply_horizon(empty, filters).empty
