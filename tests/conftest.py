"""
Pytest configuration and shared fixtures for all tests
Centralized mock data and utilities
"""

import json
import os
import sys

import pytest
import pandas as pd

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Wednesday midday; the trailing week is (Oct 8 12:00, Oct 15 12:00]
AS_OF = pd.Timestamp("2025-10-15 12:00:00")


def days_from_as_of(days):
    return (AS_OF.normalize() + pd.Timedelta(days=days)).strftime("%Y-%m-%d")


# ===== SHARED MOCK DATA FIXTURES =====

@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def sample_work_orders():
    """
    Work orders in warehouse column names covering:
    - every WIP status, one per ageing bucket except 30-60 days
    - three posted orders (two closed this month, one late)
    - a completed order closed later in the day than its promised date
    - a cancelled order opened this week
    """
    return [
        {"WorkOrderId": "WO-1", "Status": "InProgress", "Priority": "High", "Site": "L-QLD",
         "Technician": "Avery", "CreatedDate": "2025-10-10", "WIPValue": 1000,
         "TotalLabourCost": 300, "TotalPartsCost": 700},
        {"WorkOrderId": "WO-2", "Status": "Scheduled", "Priority": "Normal", "Site": "L-VIC",
         "CreatedDate": "2025-09-25", "WIPValue": 500,
         "TotalLabourCost": 100, "TotalPartsCost": 100},
        {"WorkOrderId": "WO-3", "Status": "Unscheduled", "Priority": "Critical", "Site": "L-QLD",
         "CreatedDate": "2025-08-01", "WIPValue": 200},
        {"WorkOrderId": "WO-4", "Status": "Posted", "Priority": "Normal", "Site": "L-QLD",
         "Technician": "Avery", "CreatedDate": "2025-09-20", "StartDate": "2025-09-22",
         "ClosedDate": "2025-10-03", "PromisedDate": "2025-10-05",
         "TotalAmount": 1500, "GrossMargin": 40, "ServiceType": "External"},
        {"WorkOrderId": "WO-5", "Status": "Posted", "Priority": "High", "Site": "L-VIC",
         "Technician": "Sam", "CreatedDate": "2025-09-01", "StartDate": "2025-09-02",
         "ClosedDate": "2025-10-12T10:00:00", "PromisedDate": "2025-10-10",
         "TotalAmount": 2500, "GrossMargin": 20},
        {"WorkOrderId": "WO-6", "Status": "Completed", "Priority": "Normal", "Site": "L-VIC",
         "CreatedDate": "2025-10-01", "StartDate": "2025-10-02",
         "ClosedDate": "2025-10-14T08:00:00", "PromisedDate": "2025-10-14"},
        {"WorkOrderId": "WO-7", "Status": "Canceled", "Priority": "Low", "Site": "L-NSW",
         "CreatedDate": "2025-10-13"},
        {"WorkOrderId": "WO-8", "Status": "Posted", "Priority": "Low", "Site": "L-NSW",
         "CreatedDate": "2025-09-05", "StartDate": "2025-09-10",
         "ClosedDate": "2025-09-15", "PromisedDate": "2025-09-14",
         "TotalAmount": 1000, "GrossMargin": 30},
    ]


@pytest.fixture
def sample_snapshot():
    """
    Snapshot positions, one per classification branch:
    A ok, B expedite (below safety, inbound), C order (short, no supply),
    D order (min on-hand fallback), E ok (nothing needed),
    F order (available below safety), G expedite (short, late ETA)
    """
    return [
        {"item_id": "A", "site": "L-QLD", "on_hand": 50, "safety_stock": 10,
         "demand_qty": 5, "avg_daily_demand": 2},
        {"item_id": "B", "site": "L-QLD", "on_hand": 5, "safety_stock": 10,
         "inbound_qty": 20, "next_eta": days_from_as_of(3)},
        {"item_id": "C", "site": "L-VIC", "on_hand": 2, "safety_stock": 10,
         "demand_qty": 8, "avg_daily_demand": 2},
        {"item_id": "D", "site": "L-VIC", "on_hand": 3, "safety_stock": 0, "min_on_hand": 4},
        {"item_id": "E", "site": "L-NSW", "on_hand": 0},
        {"item_id": "F", "site": "L-NSW", "on_hand": 20, "available": 5, "safety_stock": 10},
        {"item_id": "G", "site": "L-QLD", "on_hand": 1, "demand_qty": 10,
         "inbound_qty": 4, "next_eta": days_from_as_of(20)},
    ]


@pytest.fixture
def sample_inventory():
    return [
        {"ItemId": "P-100", "ItemName": "Hydraulic filter", "Site": "L-QLD", "Warehouse": "QLD-01",
         "OnHand": 2, "SafetyStock": 10, "AvgDailyDemand": 1},
        {"ItemId": "P-200", "ItemName": "Drive belt", "Site": "L-QLD", "Warehouse": "QLD-01",
         "OnHand": 50, "SafetyStock": 10},
        {"ItemId": "P-300", "ItemName": "Seal kit", "Site": "L-VIC", "Warehouse": "VIC-01",
         "OnHand": 0, "SafetyStock": 5},
    ]


@pytest.fixture
def sample_supply():
    return [
        {"ItemId": "P-100", "Site": "L-QLD", "Source": "PO", "Ref": "PO-1", "Qty": 5,
         "ETA": days_from_as_of(3)},
        {"ItemId": "P-300", "Site": "L-VIC", "Source": "PO", "Ref": "PO-2", "Qty": 10,
         "ETA": days_from_as_of(60)},
        {"ItemId": "P-200", "Site": "L-QLD", "Source": "TransferOrder", "Ref": "TO-1", "Qty": 3,
         "ETA": None},
    ]


@pytest.fixture
def sample_demand():
    return [
        {"ItemId": "P-100", "Site": "L-QLD", "DemandType": "WorkOrder", "Ref": "WO-1", "Qty": 4,
         "NeedBy": days_from_as_of(5)},
        {"ItemId": "P-200", "Site": "L-QLD", "DemandType": "Sales", "Ref": "SO-1", "Qty": 100,
         "NeedBy": days_from_as_of(90)},
    ]


@pytest.fixture
def data_dir(tmp_path, sample_work_orders, sample_inventory, sample_supply, sample_demand):
    """Fixture directory laid out like the bundled data/ folder"""
    fixtures = {
        "work-orders.json": sample_work_orders,
        "inventory.json": sample_inventory,
        "supply.json": sample_supply,
        "demand.json": sample_demand,
    }
    for name, rows in fixtures.items():
        with open(tmp_path / name, "w", encoding="utf-8") as f:
            json.dump(rows, f)
    return str(tmp_path)


@pytest.fixture
def empty_dataframe():
    return pd.DataFrame()


# ===== SHARED TEST UTILITIES =====

def assert_log_contains(logs, expected_message):
    """Helper to assert that a log message contains expected text"""
    log_text = " ".join(logs)
    assert expected_message in log_text, f"Expected '{expected_message}' not found in logs: {log_text}"


def assert_columns_exist(df, columns):
    """Helper to assert that DataFrame contains required columns"""
    missing = set(columns) - set(df.columns)
    assert not missing, f"Missing required columns: {missing}"
