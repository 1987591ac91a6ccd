import os
import time

import pandas as pd

from business_rules import DATA_FIELD_DEFINITIONS, WORK_ORDER_RULES, get_settings
from file_loader import find_fixture, get_uploaded_files, has_upload, safe_read_fixture
from query_filters import (
    QueryFilters,
    build_query_filters,
    apply_work_order_filters,
    apply_snapshot_filters,
    apply_supply_horizon,
)
from records import normalize_frame, work_orders_frame, snapshot_frame
from snapshot_classifier import build_snapshot_inputs, classify_snapshot, CLASSIFIED_COLUMNS

# === Helper Functions ===

SETTINGS = get_settings()

INVALID_COLUMN_MARKER = "invalid column name"

# Warehouse columns tried in order for work order site and promised date
SITE_COLUMNS = ["wo.itw_sitename", "wo.itw_site"]
PROMISED_DATE_COLUMNS = [
    "wo.msdyn_datewindowend",
    "wo.msdyn_targetresolutiondate",
    "wo.msdyn_duedate",
    "wo.buc_scheduledend",
    "wo.msdyn_datewindowstart",
    "wo.msdyn_estimatedcompletiondate",
]


def missing_required_fields(df, dataset):
    """Required fields present neither under their own name nor any known source name."""
    fields = DATA_FIELD_DEFINITIONS[dataset]["fields"]
    return [
        name for name, field_def in fields.items()
        if field_def["required"] and name not in df.columns
        and not any(source in df.columns for source in field_def["sources"])
    ]


def check_columns(df, dataset, filename, logs):
    """Log required fields that are missing under every known source name."""
    missing = missing_required_fields(df, dataset)
    if missing:
        logs.append(f"WARNING: '{filename}' is missing required columns: {', '.join(missing)}")
        return False
    return True


def _resolve(filters, data_dir):
    if filters is None:
        filters = build_query_filters(horizon=SETTINGS["default_horizon_days"])
    if data_dir is None:
        data_dir = SETTINGS["data_dir"]
    return filters, data_dir


def _read_fixture(dataset, data_dir, logs):
    """Read `<fixture_file>.json|.csv` for a dataset, or an uploaded replacement."""
    base_name = DATA_FIELD_DEFINITIONS[dataset]["fixture_file"]
    path = find_fixture(data_dir, base_name) or os.path.join(data_dir, base_name + ".json")
    df = safe_read_fixture(dataset, path)
    if has_upload(dataset):
        filename = getattr(get_uploaded_files()[dataset], "name", dataset)
        logs.append(f"INFO: Loaded {len(df)} rows from uploaded file {filename}.")
    else:
        filename = os.path.basename(path)
        logs.append(f"INFO: Loaded {len(df)} rows from {filename}.")
    check_columns(df, dataset, filename, logs)
    return df


def _finish(logs, label, start_time, df):
    logs.append(f"INFO: {label} returned {len(df)} rows.")
    logs.append(f"INFO: {label} finished in {time.time() - start_time:.2f} seconds.")
    return logs, df


# === Warehouse Queries ===

WORK_ORDERS_QUERY = """
DECLARE @maxRows INT = ?, @statusCodes NVARCHAR(MAX) = ?, @from DATETIME2 = ?, @to DATETIME2 = ?;
SELECT TOP (@maxRows)
  wo.msdyn_name AS WorkOrderId,
  CASE wo.msdyn_systemstatus
    WHEN 690970000 THEN 'Unscheduled'
    WHEN 690970001 THEN 'Scheduled'
    WHEN 690970002 THEN 'InProgress'
    WHEN 690970003 THEN 'Completed'
    WHEN 690970004 THEN 'Posted'
    WHEN 690970005 THEN 'Canceled'
    ELSE 'Unscheduled'
  END AS Status,
  'Normal' AS Priority,
  'Internal' AS ServiceType,
  {site_expr} AS Site,
  NULL AS Technician,
  wo.createdon AS CreatedDate,
  {promised_expr} AS PromisedDate,
  wo.msdyn_completedon AS ClosedDate,
  wo.msdyn_firstarrivedon AS StartDate,
  COALESCE(wo.msdyn_productsservicescost, 0) AS WIPValue,
  COALESCE(wo.itw_totalcostpart, 0) AS TotalPartsCost,
  COALESCE(wo.itw_totalcostlabour, 0) AS TotalLabourCost,
  COALESCE(wo.itw_grossmargin2, 0) AS GrossMargin,
  COALESCE(wo.msdyn_totalamount, 0) AS TotalAmount,
  DATEDIFF(day, wo.createdon, COALESCE(wo.msdyn_completedon, GETDATE())) AS AgeDays
FROM {source} wo
WHERE wo.msdyn_workorderid IS NOT NULL
  AND wo.statecode = 0
  AND (@statusCodes IS NULL OR wo.msdyn_systemstatus IN (SELECT TRY_CAST(value AS int) FROM STRING_SPLIT(@statusCodes, ',')))
  AND (@from IS NULL OR wo.createdon >= @from)
  AND (@to IS NULL OR wo.createdon < DATEADD(day, 1, @to))
ORDER BY wo.createdon DESC
"""

INVENTORY_QUERY = """
DECLARE @site NVARCHAR(MAX) = ?;
SELECT
  s.ItemNumber AS ItemId,
  s.ItemNumber AS ItemName,
  s.SiteID AS Site,
  s.WarehouseID AS Warehouse,
  s.WarehouseOnHand AS OnHand,
  s.WarehouseAvailable AS Available,
  s.CurrentSafetyStock AS SafetyStock,
  s.CurrentMinOnHand AS MinOnHand,
  s.WarehouseAvgDailyDemand AS AvgDailyDemand
FROM {view} s
WHERE (@site IS NULL OR s.SiteID IN (SELECT value FROM STRING_SPLIT(@site, ',')))
"""

SNAPSHOT_QUERY = """
DECLARE @site NVARCHAR(MAX) = ?;
SELECT
  s.ItemNumber AS ItemId,
  s.ItemNumber AS ItemName,
  s.SiteID AS Site,
  s.WarehouseID AS Warehouse,
  s.WarehouseOnHand AS OnHand,
  s.WarehouseAvailable AS Available,
  s.CurrentSafetyStock AS SafetyStock,
  s.CurrentMinOnHand AS MinOnHand,
  s.InboundQtyWithinHorizon AS InboundQty,
  s.NextETAWithinHorizon AS NextETA,
  s.WarehouseTotalDemand AS DemandQty,
  s.WarehouseAvgDailyDemand AS AvgDailyDemand
FROM {view} s
WHERE (@site IS NULL OR s.SiteID IN (SELECT value FROM STRING_SPLIT(@site, ',')))
ORDER BY s.ItemNumber, s.SiteID
"""

# The warehouse does not publish line-level supply or demand yet; these return
# the row shape with no rows so the pages render the same way in both modes.
SUPPLY_QUERY = """
DECLARE @site NVARCHAR(MAX) = ?;
SELECT 'TEMP' AS ItemId, 'L-QLD' AS Site, 'PO' AS Source, 'TEMP001' AS Ref, 0 AS Qty, NULL AS ETA
WHERE 1 = 0
"""

DEMAND_QUERY = """
DECLARE @site NVARCHAR(MAX) = ?;
SELECT 'TEMP' AS ItemId, 'L-QLD' AS Site, 'WorkOrder' AS DemandType, 'TEMP001' AS Ref, 0 AS Qty, NULL AS NeedBy
WHERE 1 = 0
"""


def _probe_expression(pool, template, placeholder, candidates, fallback, fixed, params, logs):
    """
    Pick the first warehouse column expression the source accepts.

    Each candidate is tried with a zero-row query; only "Invalid column name"
    errors move on to the next candidate.
    """
    for expr in candidates:
        probe = template.format(**{placeholder: expr}, **fixed).split("ORDER BY")[0] + " AND 1 = 0"
        try:
            pool.execute(probe, params, logs=logs)
            logs.append(f"INFO: Using {expr} for {placeholder}.")
            return expr
        except Exception as e:
            if INVALID_COLUMN_MARKER not in str(e).lower():
                raise
    logs.append(f"WARNING: No {placeholder} column found, using {fallback}.")
    return fallback


def _query_work_orders(pool, filters: QueryFilters, logs):
    source = SETTINGS["work_orders_source"]
    params = (
        filters.max_rows,
        filters.status_param,
        filters.date_from.to_pydatetime() if filters.date_from is not None else None,
        filters.date_to.to_pydatetime() if filters.date_to is not None else None,
    )

    site_expr = _probe_expression(
        pool, WORK_ORDERS_QUERY, "site_expr", SITE_COLUMNS, "'UNKNOWN'",
        {"promised_expr": "NULL", "source": source}, params, logs,
    )
    promised_expr = _probe_expression(
        pool, WORK_ORDERS_QUERY, "promised_expr", PROMISED_DATE_COLUMNS, "NULL",
        {"site_expr": site_expr, "source": source}, params, logs,
    )

    query = WORK_ORDERS_QUERY.format(site_expr=site_expr, promised_expr=promised_expr, source=source)
    return pool.execute(query, params, logs=logs)


# === Main Data Loaders ===

def load_work_orders(filters=None, pool=None, data_dir=None, as_of=None):
    """
    Loads service work orders from fixtures or the warehouse.

    Args:
        filters: QueryFilters (default: WIP statuses, all sites)
        pool: WarehousePool, or None for fixture mode
        data_dir: fixture directory (default from settings)
        as_of: reference time for age_days

    Returns:
        tuple: (logs, dataframe) with standard work order columns
    """
    logs = []
    start_time = time.time()
    logs.append("--- Work Orders Loader ---")
    filters, data_dir = _resolve(filters, data_dir)

    try:
        if pool is None:
            raw = _read_fixture("work_orders", data_dir, logs)
        else:
            raw = _query_work_orders(pool, filters, logs)
            logs.append(f"INFO: Warehouse returned {len(raw)} work orders (cap {filters.max_rows}).")
    except Exception as e:
        logs.append(f"ERROR: Failed to load work orders: {e}")
        return logs, work_orders_frame(None, as_of)

    df = work_orders_frame(raw, as_of)

    bad_dates = int(df["created_date"].isna().sum())
    if bad_dates:
        logs.append(f"WARNING: {bad_dates} work orders have a missing or unparseable created date.")

    unknown_status = ~df["status"].isin(WORK_ORDER_RULES["statuses"])
    if unknown_status.any():
        labels = ", ".join(sorted(df.loc[unknown_status, "status"].astype(str).unique()))
        logs.append(f"WARNING: {int(unknown_status.sum())} work orders have unknown statuses: {labels}")

    df = apply_work_order_filters(df, filters)
    return _finish(logs, "Work Orders Loader", start_time, df)


def load_inventory(filters=None, pool=None, data_dir=None, as_of=None):
    """
    Loads on-hand inventory positions.

    Returns:
        tuple: (logs, dataframe) with standard inventory columns
    """
    logs = []
    start_time = time.time()
    logs.append("--- Inventory Loader ---")
    filters, data_dir = _resolve(filters, data_dir)

    try:
        if pool is None:
            raw = _read_fixture("inventory", data_dir, logs)
        else:
            query = INVENTORY_QUERY.format(view=SETTINGS["snapshot_view"])
            raw = pool.execute(query, (filters.site_param,), logs=logs)
    except Exception as e:
        logs.append(f"ERROR: Failed to load inventory: {e}")
        return logs, normalize_frame(None, "inventory")

    df = normalize_frame(raw, "inventory")
    df = apply_snapshot_filters(df, filters)
    return _finish(logs, "Inventory Loader", start_time, df)


def load_supply(filters=None, pool=None, data_dir=None, as_of=None):
    """
    Loads inbound PO / transfer order lines dated inside the horizon.

    Returns:
        tuple: (logs, dataframe) with standard supply columns
    """
    logs = []
    start_time = time.time()
    logs.append("--- Supply Loader ---")
    filters, data_dir = _resolve(filters, data_dir)

    try:
        if pool is None:
            raw = _read_fixture("supply", data_dir, logs)
        else:
            logs.append("WARNING: Line-level supply is not published by the warehouse; no rows returned.")
            raw = pool.execute(SUPPLY_QUERY, (filters.site_param,), logs=logs)
    except Exception as e:
        logs.append(f"ERROR: Failed to load supply: {e}")
        return logs, normalize_frame(None, "supply")

    df = normalize_frame(raw, "supply")
    df = apply_supply_horizon(df, filters, as_of=as_of, date_column="eta")
    logs.append(f"INFO: Supply horizon {filters.horizon_days} days.")
    return _finish(logs, "Supply Loader", start_time, df)


def load_demand(filters=None, pool=None, data_dir=None, as_of=None):
    """
    Loads outbound demand lines (work orders, sales, reservations).

    Returns:
        tuple: (logs, dataframe) with standard demand columns
    """
    logs = []
    start_time = time.time()
    logs.append("--- Demand Loader ---")
    filters, data_dir = _resolve(filters, data_dir)

    try:
        if pool is None:
            raw = _read_fixture("demand", data_dir, logs)
        else:
            logs.append("WARNING: Line-level demand is not published by the warehouse; no rows returned.")
            raw = pool.execute(DEMAND_QUERY, (filters.site_param,), logs=logs)
    except Exception as e:
        logs.append(f"ERROR: Failed to load demand: {e}")
        return logs, normalize_frame(None, "demand")

    df = normalize_frame(raw, "demand")
    df = apply_supply_horizon(df, filters, as_of=as_of, date_column="need_by")
    logs.append(f"INFO: Demand horizon {filters.horizon_days} days.")
    return _finish(logs, "Demand Loader", start_time, df)


def _fixture_snapshot(filters, data_dir, as_of, logs):
    """Pre-joined snapshot fixture if present, otherwise joined from inventory / supply / demand."""
    if has_upload("snapshot") or find_fixture(data_dir, DATA_FIELD_DEFINITIONS["snapshot"]["fixture_file"]):
        return _read_fixture("snapshot", data_dir, logs)

    logs.append("INFO: No snapshot fixture, joining inventory, supply and demand.")
    inventory = normalize_frame(_read_fixture("inventory", data_dir, logs), "inventory")
    supply = _read_fixture("supply", data_dir, logs)
    demand = _read_fixture("demand", data_dir, logs)
    return build_snapshot_inputs(inventory, supply, demand, filters.horizon_days, as_of)


def load_snapshot(filters=None, pool=None, data_dir=None, as_of=None):
    """
    Loads the current inventory position and classifies every row.

    Returns:
        tuple: (logs, dataframe) with snapshot columns plus gap, cover_days and action
    """
    logs = []
    start_time = time.time()
    logs.append("--- Snapshot Loader ---")
    filters, data_dir = _resolve(filters, data_dir)

    try:
        if pool is None:
            raw = _fixture_snapshot(filters, data_dir, as_of, logs)
        else:
            query = SNAPSHOT_QUERY.format(view=SETTINGS["snapshot_view"])
            raw = pool.execute(query, (filters.site_param,), logs=logs)
    except Exception as e:
        logs.append(f"ERROR: Failed to load snapshot: {e}")
        return logs, pd.DataFrame(columns=CLASSIFIED_COLUMNS)

    df = classify_snapshot(snapshot_frame(raw), only_exceptions=filters.only_exceptions)
    df = apply_snapshot_filters(df, filters)

    counts = df["action"].value_counts().to_dict() if not df.empty else {}
    logs.append(f"INFO: Actions: {counts}")
    return _finish(logs, "Snapshot Loader", start_time, df)
