"""
Record Types
============
Shared data shapes for work orders, snapshot positions, supply and demand lines,
plus the normalisation that turns raw warehouse / fixture rows into clean,
snake_case DataFrames the classifier and KPI calculations work on.

All records are immutable value objects. They are rebuilt from the latest
fetched rows on every render; nothing here is persisted.
"""

from dataclasses import dataclass, field, fields, asdict, is_dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

from business_rules import DATA_FIELD_DEFINITIONS, WORK_ORDER_RULES, SITE_RULES, get_status_label


# ===== ENUMS =====

class WorkOrderStatus(str, Enum):
    UNSCHEDULED = "Unscheduled"
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    POSTED = "Posted"
    CANCELED = "Canceled"


class Action(str, Enum):
    OK = "OK"
    EXPEDITE = "Expedite"
    TRANSFER = "Transfer"
    RAISE_PO = "RaisePO"
    REALLOCATE = "Reallocate"


class SupplySource(str, Enum):
    PO = "PO"
    TRANSFER_ORDER = "TransferOrder"


class DemandType(str, Enum):
    WORK_ORDER = "WorkOrder"
    SALES = "Sales"
    RESERVATION = "Reservation"
    INTERNAL = "Internal"


# ===== SCALAR COERCION =====

def to_number(value, default=0.0):
    """Coerce a scalar to float; None, NaN and non-numeric values become `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if np.isnan(number):
        return default
    return number


def to_optional_number(value):
    """Coerce a scalar to float, keeping missing values as None (unknown)."""
    return to_number(value, default=None)


def to_timestamp(value):
    """Parse a date-like scalar into a naive Timestamp, or None when unparseable."""
    if value is None or value == "":
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce", utc=True)
    except (TypeError, ValueError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.tz_localize(None)


def _pick(row: Mapping, field_name: str, dataset: str):
    """Read a field from a mapping by standard name or any known source column name."""
    if field_name in row:
        return row[field_name]
    field_def = DATA_FIELD_DEFINITIONS[dataset]["fields"].get(field_name, {})
    for source in field_def.get("sources", []):
        if source in row:
            return row[source]
    return None


def _text(value, default=None):
    if isinstance(value, Enum):
        return value.value
    if value is None or (np.isscalar(value) and pd.isna(value)) or value is pd.NA:
        return default
    text = str(value).strip()
    return text if text else default


def _status_label(value):
    """Raw warehouse status codes become labels; labels pass through."""
    text = _text(value, WorkOrderStatus.UNSCHEDULED.value)
    code = text[:-2] if text.endswith(".0") else text
    return get_status_label(int(code)) if code.isdigit() else text


# ===== RECORDS =====

@dataclass(frozen=True)
class WorkOrder:
    work_order_id: str
    status: str
    created_date: Optional[pd.Timestamp]
    site: str = SITE_RULES["unknown_site"]
    priority: str = WORK_ORDER_RULES["default_priority"]
    service_type: str = WORK_ORDER_RULES["default_service_type"]
    technician: Optional[str] = None
    start_date: Optional[pd.Timestamp] = None
    promised_date: Optional[pd.Timestamp] = None
    closed_date: Optional[pd.Timestamp] = None
    wip_value: float = 0.0
    total_parts_cost: float = 0.0
    total_labour_cost: float = 0.0
    gross_margin: float = 0.0
    total_amount: float = 0.0

    @classmethod
    def from_mapping(cls, row: Mapping) -> "WorkOrder":
        return cls(
            work_order_id=_text(_pick(row, "work_order_id", "work_orders"), ""),
            status=_status_label(_pick(row, "status", "work_orders")),
            created_date=to_timestamp(_pick(row, "created_date", "work_orders")),
            site=_text(_pick(row, "site", "work_orders"), SITE_RULES["unknown_site"]),
            priority=_text(_pick(row, "priority", "work_orders"), WORK_ORDER_RULES["default_priority"]),
            service_type=_text(_pick(row, "service_type", "work_orders"), WORK_ORDER_RULES["default_service_type"]),
            technician=_text(_pick(row, "technician", "work_orders")),
            start_date=to_timestamp(_pick(row, "start_date", "work_orders")),
            promised_date=to_timestamp(_pick(row, "promised_date", "work_orders")),
            closed_date=to_timestamp(_pick(row, "closed_date", "work_orders")),
            wip_value=to_number(_pick(row, "wip_value", "work_orders")),
            total_parts_cost=to_number(_pick(row, "total_parts_cost", "work_orders")),
            total_labour_cost=to_number(_pick(row, "total_labour_cost", "work_orders")),
            gross_margin=to_number(_pick(row, "gross_margin", "work_orders")),
            total_amount=to_number(_pick(row, "total_amount", "work_orders")),
        )

    def age_days(self, as_of=None):
        """Whole days from creation to close (or `as_of`), floored at 0. None if unknown."""
        return compute_age_days(self.created_date, self.closed_date, as_of)


@dataclass(frozen=True)
class SnapshotInput:
    """Raw inventory / supply / demand position for one item at one site or warehouse."""
    item_id: str
    site: str
    warehouse: Optional[str] = None
    item_name: Optional[str] = None
    on_hand: float = 0.0
    available: Optional[float] = None
    safety_stock: float = 0.0
    min_on_hand: float = 0.0
    inbound_qty: float = 0.0
    next_eta: Optional[pd.Timestamp] = None
    demand_qty: float = 0.0
    avg_daily_demand: Optional[float] = None

    @classmethod
    def from_mapping(cls, row: Mapping) -> "SnapshotInput":
        return cls(
            item_id=_text(_pick(row, "item_id", "snapshot"), ""),
            site=_text(_pick(row, "site", "snapshot"), SITE_RULES["unknown_site"]),
            warehouse=_text(_pick(row, "warehouse", "snapshot")),
            item_name=_text(_pick(row, "item_name", "snapshot")),
            on_hand=to_number(_pick(row, "on_hand", "snapshot")),
            available=to_optional_number(_pick(row, "available", "snapshot")),
            safety_stock=to_number(_pick(row, "safety_stock", "snapshot")),
            min_on_hand=to_number(_pick(row, "min_on_hand", "snapshot")),
            inbound_qty=to_number(_pick(row, "inbound_qty", "snapshot")),
            next_eta=to_timestamp(_pick(row, "next_eta", "snapshot")),
            demand_qty=to_number(_pick(row, "demand_qty", "snapshot")),
            avg_daily_demand=to_optional_number(_pick(row, "avg_daily_demand", "snapshot")),
        )


@dataclass(frozen=True)
class SnapshotRow(SnapshotInput):
    """Classified snapshot position."""
    gap: float = 0.0
    cover_days: Optional[float] = None
    action: Action = Action.OK


@dataclass(frozen=True)
class SupplyLine:
    item_id: str
    site: str
    source: str = SupplySource.PO.value
    ref: str = ""
    qty: float = 0.0
    eta: Optional[pd.Timestamp] = None

    @classmethod
    def from_mapping(cls, row: Mapping) -> "SupplyLine":
        return cls(
            item_id=_text(_pick(row, "item_id", "supply"), ""),
            site=_text(_pick(row, "site", "supply"), SITE_RULES["unknown_site"]),
            source=_text(_pick(row, "source", "supply"), SupplySource.PO.value),
            ref=_text(_pick(row, "ref", "supply"), ""),
            qty=to_number(_pick(row, "qty", "supply")),
            eta=to_timestamp(_pick(row, "eta", "supply")),
        )


@dataclass(frozen=True)
class DemandLine:
    item_id: str
    site: str
    demand_type: str = DemandType.WORK_ORDER.value
    ref: str = ""
    qty: float = 0.0
    need_by: Optional[pd.Timestamp] = None

    @classmethod
    def from_mapping(cls, row: Mapping) -> "DemandLine":
        return cls(
            item_id=_text(_pick(row, "item_id", "demand"), ""),
            site=_text(_pick(row, "site", "demand"), SITE_RULES["unknown_site"]),
            demand_type=_text(_pick(row, "demand_type", "demand"), DemandType.WORK_ORDER.value),
            ref=_text(_pick(row, "ref", "demand"), ""),
            qty=to_number(_pick(row, "qty", "demand")),
            need_by=to_timestamp(_pick(row, "need_by", "demand")),
        )


@dataclass(frozen=True)
class AgeingBucket:
    label: str
    min_days: int
    max_days: Optional[int]
    count: int = 0


@dataclass(frozen=True)
class KpiResult:
    """Uniform envelope returned by every KPI calculation."""
    value: float = 0
    delta: Optional[float] = None
    delta_type: Optional[str] = None  # 'increase' | 'decrease'
    caption: Optional[str] = None
    breakdown: Dict[str, float] = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, caption, **extras) -> "KpiResult":
        return cls(value=0, caption=caption, extras=extras)

    def to_dict(self):
        return asdict(self)


# ===== DATAFRAME NORMALISATION =====

def compute_age_days(created, closed=None, as_of=None):
    """Whole calendar days between creation and close / as-of date, floored at 0."""
    created = to_timestamp(created)
    if created is None:
        return None
    end = to_timestamp(closed) or to_timestamp(as_of) or pd.Timestamp.now()
    return max(0, (end.normalize() - created.normalize()).days)


def _to_naive_datetime(series: pd.Series) -> pd.Series:
    """Parse a column of mixed date values; bad values become NaT individually."""
    if series.empty:
        return pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns]")
    parsed = pd.to_datetime(series, errors="coerce", utc=True, format="mixed")
    return parsed.dt.tz_localize(None)


def _plain_value(value):
    if isinstance(value, Enum):
        return value.value
    return value


def records_to_frame(data) -> pd.DataFrame:
    """Turn a DataFrame, or an iterable of records / mappings, into a raw DataFrame."""
    if data is None:
        return pd.DataFrame()
    if isinstance(data, pd.DataFrame):
        return data.copy()

    rows = []
    for item in data:
        if is_dataclass(item):
            item = {f.name: getattr(item, f.name) for f in fields(item)}
        rows.append({key: _plain_value(val) for key, val in dict(item).items()})
    return pd.DataFrame(rows)


def normalize_frame(data, dataset: str) -> pd.DataFrame:
    """
    Rename source columns to standard names and coerce types for one dataset.

    Numeric fields default to 0, nullable numeric fields keep NaN (unknown),
    dates are parsed per value (unparseable -> NaT) and text stays text.

    Args:
        data: DataFrame or iterable of records / mappings
        dataset: Key of DATA_FIELD_DEFINITIONS ('work_orders', 'inventory', ...)

    Returns:
        DataFrame with exactly the standard columns of the dataset
    """
    field_defs = DATA_FIELD_DEFINITIONS[dataset]["fields"]
    raw = records_to_frame(data)

    rename_map = {}
    for std_name, field_def in field_defs.items():
        if std_name in raw.columns:
            continue
        for source in field_def["sources"]:
            if source in raw.columns:
                rename_map[source] = std_name
                break
    raw = raw.rename(columns=rename_map)

    df = pd.DataFrame(index=raw.index)
    for std_name, field_def in field_defs.items():
        column = raw[std_name] if std_name in raw.columns else pd.Series(None, index=raw.index, dtype="object")
        data_type = field_def["data_type"]
        if data_type == "numeric":
            df[std_name] = pd.to_numeric(column, errors="coerce").fillna(0).astype(float)
        elif data_type == "nullable_numeric":
            df[std_name] = pd.to_numeric(column, errors="coerce").astype(float)
        elif data_type == "date":
            df[std_name] = _to_naive_datetime(column)
        else:
            df[std_name] = column.map(_text).astype("object")
    return df.reset_index(drop=True)


def work_orders_frame(data, as_of=None) -> pd.DataFrame:
    """
    Normalise work orders and derive `age_days`.

    Orders with an unparseable creation date fall back to a warehouse-supplied
    AgeDays value; without one their age stays unknown (NaN).
    """
    df = normalize_frame(data, "work_orders")
    supplied_age = df["age_days"].clip(lower=0)

    df["site"] = df["site"].fillna(SITE_RULES["unknown_site"])
    df["priority"] = df["priority"].fillna(WORK_ORDER_RULES["default_priority"])
    df["service_type"] = df["service_type"].fillna(WORK_ORDER_RULES["default_service_type"])
    df["status"] = df["status"].map(_status_label)

    as_of_ts = to_timestamp(as_of) or pd.Timestamp.now()
    end = df["closed_date"].fillna(as_of_ts)
    derived_age = (end.dt.normalize() - df["created_date"].dt.normalize()).dt.days.clip(lower=0)
    df["age_days"] = derived_age.where(df["created_date"].notna(), supplied_age).astype(float)
    return df


def snapshot_frame(data) -> pd.DataFrame:
    """Normalise pre-joined snapshot rows (before or after classification)."""
    df = normalize_frame(data, "snapshot")
    df["site"] = df["site"].fillna(SITE_RULES["unknown_site"])
    return df
