"""
Tests for records module
Tests scalar coercion, record construction and DataFrame normalisation
"""

import pytest
import pandas as pd
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from records import (
    Action,
    KpiResult,
    SnapshotInput,
    SupplyLine,
    DemandLine,
    WorkOrder,
    compute_age_days,
    normalize_frame,
    records_to_frame,
    to_number,
    to_optional_number,
    to_timestamp,
    work_orders_frame,
)


class TestScalarCoercion:
    """Test scalar helpers"""

    @pytest.mark.parametrize("value, expected", [
        (None, 0.0), ("", 0.0), ("abc", 0.0), (float("nan"), 0.0), (True, 0.0), ("12.5", 12.5), (3, 3.0),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_to_optional_number_keeps_unknown(self):
        assert to_optional_number(None) is None
        assert to_optional_number(float("nan")) is None
        assert to_optional_number("4") == 4.0

    def test_to_timestamp(self):
        assert to_timestamp("2025-10-01T08:00:00Z") == pd.Timestamp("2025-10-01 08:00:00")
        assert to_timestamp("2025-10-01") == pd.Timestamp("2025-10-01")
        assert to_timestamp("") is None
        assert to_timestamp(None) is None
        assert to_timestamp("soon") is None


class TestAgeDays:
    """Test work order age"""

    def test_open_order_ages_to_as_of(self):
        assert compute_age_days("2025-10-01T23:00:00", as_of="2025-10-15T01:00:00") == 14

    def test_closed_order_stops_ageing(self):
        assert compute_age_days("2025-10-01", closed="2025-10-04", as_of="2025-12-01") == 3

    def test_future_creation_floors_at_zero(self):
        assert compute_age_days("2025-11-01", as_of="2025-10-15") == 0

    def test_unknown_creation(self):
        assert compute_age_days(None, as_of="2025-10-15") is None

    def test_work_order_method(self):
        wo = WorkOrder.from_mapping({"WorkOrderId": "WO-1", "Status": "Scheduled", "CreatedDate": "2025-10-10"})
        assert wo.age_days("2025-10-15") == 5


class TestRecordsFromMappings:
    """Test record construction from warehouse rows"""

    def test_work_order_defaults(self):
        wo = WorkOrder.from_mapping({"msdyn_name": "WO-1", "createdon": "2025-10-01"})
        assert wo.work_order_id == "WO-1"
        assert wo.status == "Unscheduled"
        assert wo.site == "UNKNOWN"
        assert wo.priority == "Normal"
        assert wo.wip_value == 0.0

    def test_snapshot_input_keeps_missing_available(self):
        row = SnapshotInput.from_mapping({"ItemId": "P-1", "Site": "L-QLD", "OnHand": "7"})
        assert row.on_hand == 7.0
        assert row.available is None
        assert row.avg_daily_demand is None

    def test_supply_and_demand_lines(self):
        supply = SupplyLine.from_mapping({"ItemId": "P-1", "Site": "L-QLD", "Qty": 5, "ETA": "2025-10-20"})
        assert supply.source == "PO"
        assert supply.eta == pd.Timestamp("2025-10-20")

        demand = DemandLine.from_mapping({"ItemId": "P-1", "Site": "L-QLD", "Qty": 2})
        assert demand.demand_type == "WorkOrder"
        assert demand.need_by is None

    def test_kpi_result_empty(self):
        kpi = KpiResult.empty("No posted work orders", current_month=None)
        assert kpi.value == 0
        assert kpi.to_dict()["extras"] == {"current_month": None}


class TestNormalisation:
    """Test DataFrame normalisation"""

    def test_renames_and_coerces(self):
        df = normalize_frame([
            {"ItemId": "P-1", "Site": "L-QLD", "Qty": "3", "ETA": "2025-10-20"},
            {"ItemId": "P-2", "Site": None, "Qty": "n/a", "ETA": "not a date"},
        ], "supply")
        assert list(df.columns) == ["item_id", "site", "source", "ref", "qty", "eta"]
        assert list(df["qty"]) == [3.0, 0.0]
        assert df.loc[0, "eta"] == pd.Timestamp("2025-10-20")
        assert pd.isna(df.loc[1, "eta"])
        assert df.loc[1, "site"] is None

    def test_standard_names_win_over_sources(self):
        df = normalize_frame([{"on_hand": 4, "OnHand": 99, "item_id": "P-1", "site": "L-QLD"}], "inventory")
        assert df.loc[0, "on_hand"] == 4

    def test_nullable_numeric_keeps_nan(self):
        df = normalize_frame([{"ItemId": "P-1", "Site": "L-QLD", "OnHand": 1}], "inventory")
        assert pd.isna(df.loc[0, "available"])

    def test_records_to_frame_accepts_dataclasses_and_enums(self):
        df = records_to_frame([SnapshotInput(item_id="P-1", site="L-QLD"), {"item_id": "P-2", "action": Action.OK}])
        assert list(df["item_id"]) == ["P-1", "P-2"]
        assert df.loc[1, "action"] == "OK"

    def test_work_orders_frame_fills_defaults(self):
        df = work_orders_frame([{"WorkOrderId": "WO-1", "CreatedDate": "2025-10-01"}], as_of="2025-10-11")
        assert df.loc[0, "site"] == "UNKNOWN"
        assert df.loc[0, "status"] == "Unscheduled"
        assert df.loc[0, "age_days"] == 10

    def test_work_orders_frame_maps_status_codes(self):
        df = work_orders_frame([
            {"WorkOrderId": "WO-1", "Status": 690970004, "CreatedDate": "2025-10-01"},
            {"WorkOrderId": "WO-2", "Status": "690970002", "CreatedDate": "2025-10-01"},
            {"WorkOrderId": "WO-3", "Status": "Scheduled", "CreatedDate": "2025-10-01"},
            {"WorkOrderId": "WO-4", "Status": 12, "CreatedDate": "2025-10-01"},
        ], as_of="2025-10-11")
        assert list(df["status"]) == ["Posted", "InProgress", "Scheduled", "Unscheduled"]

    def test_float_status_codes(self):
        df = work_orders_frame([
            {"WorkOrderId": "WO-1", "Status": 690970003.0},
            {"WorkOrderId": "WO-2", "Status": None},
        ])
        assert list(df["status"]) == ["Completed", "Unscheduled"]

    def test_work_order_from_mapping_maps_status_code(self):
        assert WorkOrder.from_mapping({"WorkOrderId": "WO-1", "Status": 690970005}).status == "Canceled"
