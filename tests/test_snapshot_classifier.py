"""
Tests for snapshot_classifier module
Tests per-item recommended action, gap and cover days, and the inventory / supply / demand join
"""

import pytest
import pandas as pd
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from records import Action, SnapshotInput
from snapshot_classifier import (
    CLASSIFIED_COLUMNS,
    build_snapshot_inputs,
    classify,
    classify_snapshot,
)


def position(**overrides):
    values = {"item_id": "X-1", "site": "L-QLD"}
    values.update(overrides)
    return SnapshotInput(**values)


class TestClassifyActions:
    """Test each branch of the recommended action"""

    def test_healthy_item_is_ok(self):
        row = classify(position(on_hand=50, safety_stock=10, demand_qty=5))
        assert row.action == Action.OK
        assert row.gap == 0

    def test_below_safety_with_inbound_is_expedite(self):
        row = classify(position(on_hand=5, safety_stock=10, inbound_qty=20))
        assert row.action == Action.EXPEDITE

    def test_below_safety_without_inbound_is_raise_po(self):
        row = classify(position(on_hand=5, safety_stock=10))
        assert row.action == Action.RAISE_PO

    def test_min_on_hand_used_when_safety_stock_is_zero(self):
        """Threshold falls back to min on-hand"""
        row = classify(position(on_hand=3, safety_stock=0, min_on_hand=4))
        assert row.action == Action.RAISE_PO

    def test_safety_stock_wins_over_min_on_hand(self):
        row = classify(position(on_hand=6, safety_stock=5, min_on_hand=10))
        assert row.action == Action.OK

    def test_available_is_preferred_over_on_hand(self):
        row = classify(position(on_hand=20, available=5, safety_stock=10))
        assert row.action == Action.RAISE_PO

    def test_missing_available_falls_back_to_on_hand(self):
        row = classify(position(on_hand=20, available=None, safety_stock=10))
        assert row.action == Action.OK

    def test_demand_gap_without_threshold_needs_stock(self):
        """Demand alone makes an item need stock"""
        row = classify(position(on_hand=1, demand_qty=10, inbound_qty=4))
        assert row.gap == 5
        assert row.action == Action.EXPEDITE

    def test_nothing_stocked_and_no_demand_is_ok(self):
        row = classify(position(on_hand=0))
        assert row.action == Action.OK

    def test_transfer_and_reallocate_are_never_produced(self, sample_snapshot):
        df = classify_snapshot(sample_snapshot)
        assert not df["action"].isin([Action.TRANSFER.value, Action.REALLOCATE.value]).any()


class TestGapAndCover:
    """Test gap and cover days"""

    def test_gap_is_never_negative(self):
        row = classify(position(on_hand=100, demand_qty=5))
        assert row.gap == 0

    def test_gap_counts_inbound_supply(self):
        row = classify(position(on_hand=2, inbound_qty=3, demand_qty=8))
        assert row.gap == 3

    def test_cover_days(self):
        row = classify(position(on_hand=10, inbound_qty=20, avg_daily_demand=3))
        assert row.cover_days == pytest.approx(10.0)

    @pytest.mark.parametrize("rate", [None, 0])
    def test_cover_days_unknown_without_demand_rate(self, rate):
        row = classify(position(on_hand=10, avg_daily_demand=rate))
        assert row.cover_days is None

    def test_classify_accepts_warehouse_column_names(self):
        row = classify({"ItemId": "P-1", "SiteID": "L-VIC", "OnHand": 2, "SafetyStock": 10,
                        "InboundQty": 0, "DemandQty": 8})
        assert row.item_id == "P-1"
        assert row.site == "L-VIC"
        assert row.gap == 6
        assert row.action == Action.RAISE_PO


class TestClassifySnapshot:
    """Test the column-wise classifier"""

    def test_actions_for_sample(self, sample_snapshot):
        df = classify_snapshot(sample_snapshot)
        actions = dict(zip(df["item_id"], df["action"]))
        assert actions == {
            "A": "OK",
            "B": "Expedite",
            "C": "RaisePO",
            "D": "RaisePO",
            "E": "OK",
            "F": "RaisePO",
            "G": "Expedite",
        }

    def test_matches_row_classifier(self, sample_snapshot):
        df = classify_snapshot(sample_snapshot)
        for raw, (_, out) in zip(sample_snapshot, df.iterrows()):
            row = classify(raw)
            assert out["action"] == row.action.value
            assert out["gap"] == pytest.approx(row.gap)
            if row.cover_days is None:
                assert pd.isna(out["cover_days"])
            else:
                assert out["cover_days"] == pytest.approx(row.cover_days)

    def test_only_exceptions_drops_ok_rows(self, sample_snapshot):
        df = classify_snapshot(sample_snapshot, only_exceptions=True)
        assert set(df["item_id"]) == {"B", "C", "D", "F", "G"}
        assert (df["action"] != "OK").all()

    def test_output_columns(self, sample_snapshot):
        df = classify_snapshot(sample_snapshot)
        assert list(df.columns) == CLASSIFIED_COLUMNS

    def test_empty_input(self):
        df = classify_snapshot([])
        assert df.empty
        assert list(df.columns) == CLASSIFIED_COLUMNS

    def test_missing_site_becomes_unknown(self):
        df = classify_snapshot([{"item_id": "Z", "on_hand": 1}])
        assert df.iloc[0]["site"] == "UNKNOWN"


class TestBuildSnapshotInputs:
    """Test joining inventory with supply and demand inside the horizon"""

    def test_join_inside_default_horizon(self, sample_inventory, sample_supply, sample_demand, as_of):
        df = build_snapshot_inputs(sample_inventory, sample_supply, sample_demand, as_of=as_of)
        by_item = df.set_index("item_id")

        assert by_item.loc["P-100", "inbound_qty"] == 5
        assert by_item.loc["P-100", "demand_qty"] == 4
        assert by_item.loc["P-100", "next_eta"] == as_of.normalize() + pd.Timedelta(days=3)

        # Undated supply counts; demand past the horizon does not
        assert by_item.loc["P-200", "inbound_qty"] == 3
        assert by_item.loc["P-200", "demand_qty"] == 0

        # Supply past the horizon is ignored
        assert by_item.loc["P-300", "inbound_qty"] == 0
        assert pd.isna(by_item.loc["P-300", "next_eta"])

    def test_longer_horizon_includes_later_lines(self, sample_inventory, sample_supply, sample_demand, as_of):
        df = build_snapshot_inputs(sample_inventory, sample_supply, sample_demand, horizon_days=90, as_of=as_of)
        by_item = df.set_index("item_id")
        assert by_item.loc["P-300", "inbound_qty"] == 10
        assert by_item.loc["P-200", "demand_qty"] == 100

    def test_joined_rows_classify(self, sample_inventory, sample_supply, sample_demand, as_of):
        df = classify_snapshot(build_snapshot_inputs(sample_inventory, sample_supply, sample_demand, as_of=as_of))
        actions = dict(zip(df["item_id"], df["action"]))
        assert actions == {"P-100": "Expedite", "P-200": "OK", "P-300": "RaisePO"}

    def test_site_flow_attached_to_every_warehouse(self, as_of):
        inventory = [
            {"item_id": "P-1", "site": "L-QLD", "warehouse": "QLD-01", "on_hand": 1},
            {"item_id": "P-1", "site": "L-QLD", "warehouse": "QLD-02", "on_hand": 2},
        ]
        supply = [{"item_id": "P-1", "site": "L-QLD", "qty": 7, "eta": None}]
        df = build_snapshot_inputs(inventory, supply, [], as_of=as_of)
        assert len(df) == 2
        assert (df["inbound_qty"] == 7).all()

    def test_empty_inventory(self, sample_supply, sample_demand, as_of):
        df = build_snapshot_inputs([], sample_supply, sample_demand, as_of=as_of)
        assert df.empty
