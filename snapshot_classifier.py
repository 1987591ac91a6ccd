"""
Snapshot Classifier
===================
Per-item replenishment recommendation for the current inventory position.

Each item/site (or warehouse) position is compared against its stocking
threshold and its demand inside the planning horizon:

- Threshold is the safety stock, or the minimum on-hand when safety stock is zero
- Available quantity is used when the warehouse reports it, otherwise on-hand
- Gap = max(0, demand - (on-hand + inbound))
- Short items with inbound supply are expedited, short items without are ordered
- Cover days = (on-hand + inbound) / average daily demand

Transfer and Reallocate are part of the action taxonomy but are not produced here.
"""

from typing import Mapping, Optional, Union

import numpy as np
import pandas as pd

from business_rules import SNAPSHOT_RULES, SITE_RULES, DATA_FIELD_DEFINITIONS
from records import (
    Action,
    SnapshotInput,
    SnapshotRow,
    normalize_frame,
    snapshot_frame,
    to_timestamp,
)


SNAPSHOT_COLUMNS = list(DATA_FIELD_DEFINITIONS["snapshot"]["fields"].keys())
CLASSIFIED_COLUMNS = SNAPSHOT_COLUMNS + ["gap", "cover_days", "action"]


def classify(row: Union[SnapshotInput, Mapping]) -> SnapshotRow:
    """
    Classify a single snapshot position.

    Args:
        row: SnapshotInput, or any mapping with snake_case or warehouse column names

    Returns:
        SnapshotRow carrying gap, cover_days and the recommended action
    """
    if not isinstance(row, SnapshotInput):
        row = SnapshotInput.from_mapping(row)

    threshold = row.safety_stock if row.safety_stock != 0 else row.min_on_hand
    basis_available = row.available if row.available is not None else row.on_hand
    below_safety = basis_available < threshold

    supply = row.on_hand + row.inbound_qty
    gap = max(0.0, row.demand_qty - supply)

    shortage = below_safety or gap > 0
    needs_stock = threshold > 0 or row.demand_qty > 0

    if shortage and needs_stock:
        action = Action.EXPEDITE if row.inbound_qty > 0 else Action.RAISE_PO
    else:
        action = Action.OK

    cover_days = None
    if row.avg_daily_demand is not None and row.avg_daily_demand > 0:
        cover_days = supply / row.avg_daily_demand

    return SnapshotRow(
        item_id=row.item_id,
        site=row.site,
        warehouse=row.warehouse,
        item_name=row.item_name,
        on_hand=row.on_hand,
        available=row.available,
        safety_stock=row.safety_stock,
        min_on_hand=row.min_on_hand,
        inbound_qty=row.inbound_qty,
        next_eta=row.next_eta,
        demand_qty=row.demand_qty,
        avg_daily_demand=row.avg_daily_demand,
        gap=gap,
        cover_days=cover_days,
        action=action,
    )


def classify_snapshot(data, only_exceptions: bool = False) -> pd.DataFrame:
    """
    Classify every row of a raw snapshot frame.

    Column-wise version of `classify`; both produce the same gap, cover_days
    and action for the same inputs.

    Args:
        data: DataFrame or iterable of snapshot records / mappings
        only_exceptions: Drop rows whose action is OK

    Returns:
        DataFrame with the snapshot columns plus gap, cover_days and action
    """
    df = snapshot_frame(data)
    if df.empty:
        return pd.DataFrame(columns=CLASSIFIED_COLUMNS)

    threshold = df["safety_stock"].where(df["safety_stock"] != 0, df["min_on_hand"])
    basis_available = df["available"].fillna(df["on_hand"])
    below_safety = basis_available < threshold

    supply = df["on_hand"] + df["inbound_qty"]
    df["gap"] = (df["demand_qty"] - supply).clip(lower=0).astype(float)

    shortage = below_safety | (df["gap"] > 0)
    needs_stock = (threshold > 0) | (df["demand_qty"] > 0)
    has_inbound = df["inbound_qty"] > 0

    df["action"] = np.select(
        [shortage & needs_stock & has_inbound, shortage & needs_stock],
        [Action.EXPEDITE.value, Action.RAISE_PO.value],
        default=Action.OK.value,
    )

    demand_rate = df["avg_daily_demand"]
    df["cover_days"] = (supply / demand_rate).where(demand_rate > 0)

    if only_exceptions:
        df = df[df["action"] != Action.OK.value]

    return df[CLASSIFIED_COLUMNS].reset_index(drop=True)


def _within_horizon(dates: pd.Series, horizon_end: pd.Timestamp) -> pd.Series:
    """Lines without a date count as inside the horizon."""
    return dates.isna() | (dates <= horizon_end)


def build_snapshot_inputs(inventory, supply, demand,
                          horizon_days: Optional[int] = None,
                          as_of=None) -> pd.DataFrame:
    """
    Join inventory positions with inbound supply and outbound demand.

    Supply and demand are totalled per (item_id, site) inside the horizon and
    attached to every inventory row for that pair, so multi-warehouse sites
    see the site-level flow on each warehouse row.

    Args:
        inventory: Inventory positions (DataFrame or records)
        supply: Supply lines (DataFrame or records)
        demand: Demand lines (DataFrame or records)
        horizon_days: Planning horizon in days (default from SNAPSHOT_RULES)
        as_of: Reference date (default now)

    Returns:
        Raw snapshot frame ready for `classify_snapshot`
    """
    if horizon_days is None:
        horizon_days = SNAPSHOT_RULES["default_horizon_days"]
    as_of_ts = to_timestamp(as_of) or pd.Timestamp.now()
    horizon_end = as_of_ts.normalize() + pd.Timedelta(days=int(horizon_days))

    inv = normalize_frame(inventory, "inventory")
    if inv.empty:
        return pd.DataFrame(columns=SNAPSHOT_COLUMNS)
    unknown_site = SITE_RULES["unknown_site"]
    inv["site"] = inv["site"].fillna(unknown_site)
    keys = ["item_id", "site"]

    sup = normalize_frame(supply, "supply")
    sup["site"] = sup["site"].fillna(unknown_site)
    sup = sup[_within_horizon(sup["eta"], horizon_end)]
    inbound = (
        sup.groupby(keys, dropna=False)
        .agg(inbound_qty=("qty", "sum"), next_eta=("eta", "min"))
        .reset_index()
    )

    dem = normalize_frame(demand, "demand")
    dem["site"] = dem["site"].fillna(unknown_site)
    dem = dem[_within_horizon(dem["need_by"], horizon_end)]
    outbound = (
        dem.groupby(keys, dropna=False)
        .agg(demand_qty=("qty", "sum"))
        .reset_index()
    )

    merged = inv.merge(inbound, on=keys, how="left").merge(outbound, on=keys, how="left")
    merged["inbound_qty"] = merged["inbound_qty"].fillna(0).astype(float)
    merged["demand_qty"] = merged["demand_qty"].fillna(0).astype(float)
    merged["next_eta"] = pd.to_datetime(merged["next_eta"])

    return merged[SNAPSHOT_COLUMNS]
