"""
KPI Calculations
================
Dashboard KPIs over work orders and classified snapshot rows.

Every calculation:
- accepts a DataFrame or an iterable of records / mappings
- takes an optional `as_of` reference time (default now)
- returns a KpiResult, with a zero value and explanatory caption for empty input

Work-order dates are parsed per record, so a bad date only drops that record
from the date-dependent part of a KPI.
"""

import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from business_rules import AGEING_RULES, SNAPSHOT_RULES, WORK_ORDER_RULES, is_wip_status
from records import (
    Action,
    AgeingBucket,
    KpiResult,
    records_to_frame,
    snapshot_frame,
    to_timestamp,
    work_orders_frame,
)
from snapshot_classifier import classify_snapshot


TREND_WINDOW = pd.Timedelta(days=WORK_ORDER_RULES["trend_window_days"])


# ===== HELPERS =====

def _as_of(as_of=None) -> pd.Timestamp:
    return to_timestamp(as_of) or pd.Timestamp.now()


def _wip(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["status"].map(is_wip_status).astype(bool)]


def _posted(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["status"].isin(WORK_ORDER_RULES["settled_statuses"])]


def _count_by(df: pd.DataFrame, column: str) -> Dict[str, int]:
    return {str(k): int(v) for k, v in df[column].value_counts().items()}


def _sum_by(df: pd.DataFrame, column: str, value_column: str) -> Dict[str, float]:
    totals = df.groupby(column)[value_column].sum()
    return {str(k): float(v) for k, v in totals.items()}


def _mean_by(df: pd.DataFrame, column: str, value_column: str, decimals: int = 1) -> Dict[str, float]:
    means = df.groupby(column)[value_column].mean()
    return {str(k): round(float(v), decimals) for k, v in means.items()}


def _in_window(dates: pd.Series, start: pd.Timestamp, end: pd.Timestamp) -> pd.Series:
    """start < date <= end; NaT is never inside."""
    return dates.notna() & (dates > start) & (dates <= end)


def _same_month(dates: pd.Series, as_of: pd.Timestamp) -> pd.Series:
    return dates.notna() & (dates.dt.year == as_of.year) & (dates.dt.month == as_of.month)


def _round_half_up(value: float) -> int:
    """Nearest whole number with halves rounded up."""
    return int(math.floor(value + 0.5))


def _delta_type(delta) -> Optional[str]:
    if delta is None or delta == 0:
        return None
    return "increase" if delta > 0 else "decrease"


def _classified(snapshot) -> pd.DataFrame:
    """
    Snapshot rows with gap / cover_days / action.

    Rows that already carry an action keep it; raw rows are classified.
    """
    raw = records_to_frame(snapshot)
    action_column = next((c for c in ("action", "Action") if c in raw.columns), None)
    if action_column is None:
        return classify_snapshot(raw)

    df = snapshot_frame(raw)
    df["action"] = raw[action_column].reset_index(drop=True).fillna(Action.OK.value).astype(str)

    gap_column = next((c for c in ("gap", "Gap") if c in raw.columns), None)
    if gap_column is not None:
        df["gap"] = pd.to_numeric(raw[gap_column].reset_index(drop=True), errors="coerce").fillna(0)
    else:
        df["gap"] = (df["demand_qty"] - (df["on_hand"] + df["inbound_qty"])).clip(lower=0)

    cover_column = next((c for c in ("cover_days", "CoverDays") if c in raw.columns), None)
    if cover_column is not None:
        df["cover_days"] = pd.to_numeric(raw[cover_column].reset_index(drop=True), errors="coerce")
    else:
        rate = df["avg_daily_demand"]
        df["cover_days"] = ((df["on_hand"] + df["inbound_qty"]) / rate).where(rate > 0)
    return df


def _cost_split(wip: pd.DataFrame):
    """Labour / parts totals and their percentage split of labour + parts."""
    labour = float(wip["total_labour_cost"].sum())
    parts = float(wip["total_parts_cost"].sum())
    base = labour + parts
    if base <= 0:
        return labour, parts, 0, 0
    labour_pct = _round_half_up(labour / base * 100)
    return labour, parts, labour_pct, 100 - labour_pct


# ===== WORK ORDER KPIs =====

def calculate_open_work_orders(work_orders, as_of=None) -> KpiResult:
    """
    Count of work orders in WIP statuses.

    Returns:
        KpiResult with value = open count and breakdown by status
    """
    df = work_orders_frame(work_orders, as_of)
    wip = _wip(df)
    if wip.empty:
        return KpiResult.empty("No open work orders")

    return KpiResult(
        value=len(wip),
        caption=f"{len(wip)} open work orders",
        breakdown=_count_by(wip, "status"),
    )


def calculate_ageing_buckets(work_orders, as_of=None) -> List[AgeingBucket]:
    """
    Partition WIP work orders by age into the fixed ageing buckets.

    Buckets are half-open (min_days <= age < max_days). Orders whose age is
    unknown are not counted.

    Returns:
        List of AgeingBucket in bucket order
    """
    rules = AGEING_RULES["buckets"]
    df = work_orders_frame(work_orders, as_of)
    ages = _wip(df)["age_days"].dropna()

    edges = [b["min_days"] for b in rules] + [np.inf]
    positions = pd.cut(ages, bins=edges, right=False, labels=False)
    counts = positions.value_counts()

    return [
        AgeingBucket(
            label=b["label"],
            min_days=b["min_days"],
            max_days=b["max_days"],
            count=int(counts.get(idx, 0)),
        )
        for idx, b in enumerate(rules)
    ]


def get_worst_ageing_bucket(buckets: List[AgeingBucket]) -> AgeingBucket:
    """Oldest bucket holding any orders; the first bucket (count 0) when all are empty."""
    for bucket in reversed(buckets):
        if bucket.count > 0:
            return bucket
    if buckets:
        return buckets[0]
    first = AGEING_RULES["buckets"][0]
    return AgeingBucket(label=first["label"], min_days=first["min_days"], max_days=first["max_days"])


def calculate_ageing_kpi(work_orders, as_of=None) -> KpiResult:
    """Worst ageing bucket as a KPI card, with every bucket in the breakdown."""
    buckets = calculate_ageing_buckets(work_orders, as_of)
    worst = get_worst_ageing_bucket(buckets)
    total = sum(b.count for b in buckets)
    if total == 0:
        return KpiResult.empty("No open work orders", worst_bucket=worst.label, buckets=buckets)

    return KpiResult(
        value=worst.count,
        caption=f"{worst.count} orders aged {worst.label}",
        breakdown={b.label: b.count for b in buckets},
        extras={"worst_bucket": worst.label, "buckets": buckets, "total": total},
    )


def calculate_month_to_date_revenue(work_orders, as_of=None) -> KpiResult:
    """
    Revenue from work orders posted in the current calendar month.

    Weeks are 7-day spans counted from the 1st, the last one clipped to the
    month end. Every week of the month appears in the breakdown.
    """
    as_of_ts = _as_of(as_of)
    df = work_orders_frame(work_orders, as_of_ts)
    posted = _posted(df)
    month = posted[_same_month(posted["closed_date"], as_of_ts)].copy()
    if month.empty:
        return KpiResult.empty("No posted work orders this month")

    days_in_month = as_of_ts.days_in_month
    weeks = {}
    for week_no, first_day in enumerate(range(1, days_in_month + 1, 7), start=1):
        last_day = min(first_day + 6, days_in_month)
        weeks[week_no] = f"Week {week_no} ({first_day}-{last_day})"

    month["week"] = ((month["closed_date"].dt.day - 1) // 7 + 1).map(weeks)
    weekly = month.groupby("week")["total_amount"].sum()
    breakdown = {label: float(weekly.get(label, 0.0)) for label in weeks.values()}

    total = float(month["total_amount"].sum())
    return KpiResult(
        value=total,
        caption=f"{len(month)} posted work orders in {as_of_ts.strftime('%B %Y')}",
        breakdown=breakdown,
        extras={
            "by_site": _sum_by(month, "site", "total_amount"),
            "by_service_type": _sum_by(month, "service_type", "total_amount"),
            "order_count": len(month),
        },
    )


def calculate_average_resolution_time(work_orders, as_of=None) -> KpiResult:
    """
    Mean whole days from start to close for posted work orders.

    Orders missing a start or close date are excluded, as are negative durations.
    The trend covers the trailing weeks ending at `as_of` (oldest first) and
    the delta is this week's average minus last week's.
    """
    as_of_ts = _as_of(as_of)
    df = work_orders_frame(work_orders, as_of_ts)
    done = _posted(df)
    done = done[done["start_date"].notna() & done["closed_date"].notna()].copy()
    done["resolution_days"] = (done["closed_date"] - done["start_date"]).dt.days
    done = done[done["resolution_days"] >= 0]
    if done.empty:
        return KpiResult.empty("No completed work orders", trend=[])

    done["technician"] = done["technician"].fillna("Unassigned")

    trend = []
    for weeks_back in range(WORK_ORDER_RULES["resolution_trend_weeks"] - 1, -1, -1):
        end = as_of_ts - TREND_WINDOW * weeks_back
        start = end - TREND_WINDOW
        week = done[_in_window(done["closed_date"], start, end)]
        average = round(float(week["resolution_days"].mean()), 1) if not week.empty else None
        trend.append({"week_start": start.normalize(), "average_days": average, "orders": len(week)})

    delta = None
    this_week = trend[-1]["average_days"]
    last_week = trend[-2]["average_days"] if len(trend) > 1 else None
    if this_week is not None and last_week is not None:
        delta = round(this_week - last_week, 1)

    average = round(float(done["resolution_days"].mean()), 1)
    return KpiResult(
        value=average,
        delta=delta,
        delta_type=_delta_type(delta),
        caption=f"Average over {len(done)} posted work orders",
        breakdown=_mean_by(done, "priority", "resolution_days"),
        extras={
            "by_site": _mean_by(done, "site", "resolution_days"),
            "by_technician": _mean_by(done, "technician", "resolution_days"),
            "trend": trend,
        },
    )


def calculate_labour_and_other_costs(work_orders, as_of=None) -> KpiResult:
    """
    Labour cost of WIP work orders and its share of labour + parts.

    The cost base is labour + parts, so this percentage and the parts
    percentage always add up to 100.
    """
    df = work_orders_frame(work_orders, as_of)
    wip = _wip(df)
    labour, parts, labour_pct, parts_pct = _cost_split(wip)
    if wip.empty or labour + parts <= 0:
        return KpiResult.empty("No work orders in progress with costs", percentage=0)

    return KpiResult(
        value=labour,
        caption=f"{labour_pct}% of in-progress cost is labour",
        breakdown=_sum_by(wip, "status", "total_labour_cost"),
        extras={
            "percentage": labour_pct,
            "other_percentage": parts_pct,
            "by_site": _sum_by(wip, "site", "total_labour_cost"),
        },
    )


def calculate_parts_cost(work_orders, as_of=None) -> KpiResult:
    """Parts cost of WIP work orders and its share of labour + parts."""
    df = work_orders_frame(work_orders, as_of)
    wip = _wip(df)
    labour, parts, labour_pct, parts_pct = _cost_split(wip)
    if wip.empty or labour + parts <= 0:
        return KpiResult.empty("No work orders in progress with costs", percentage=0)

    return KpiResult(
        value=parts,
        caption=f"{parts_pct}% of in-progress cost is parts",
        breakdown=_sum_by(wip, "status", "total_parts_cost"),
        extras={
            "percentage": parts_pct,
            "by_site": _sum_by(wip, "site", "total_parts_cost"),
            "by_priority": _sum_by(wip, "priority", "total_parts_cost"),
        },
    )


def calculate_average_gross_margin(work_orders, as_of=None) -> KpiResult:
    """Mean gross margin (%) of posted work orders, overall and for the current month."""
    as_of_ts = _as_of(as_of)
    df = work_orders_frame(work_orders, as_of_ts)
    posted = _posted(df)
    if posted.empty:
        return KpiResult.empty("No posted work orders", current_month=None)

    month = posted[_same_month(posted["closed_date"], as_of_ts)]
    current_month = round(float(month["gross_margin"].mean()), 1) if not month.empty else None

    return KpiResult(
        value=round(float(posted["gross_margin"].mean()), 1),
        caption=f"Across {len(posted)} posted work orders",
        breakdown=_mean_by(posted, "status", "gross_margin"),
        extras={
            "current_month": current_month,
            "by_site": _mean_by(posted, "site", "gross_margin"),
            "by_priority": _mean_by(posted, "priority", "gross_margin"),
        },
    )


def calculate_open_wip_value(work_orders, as_of=None) -> KpiResult:
    """
    Total WIP value of open work orders.

    The delta is the number of WIP orders created in the trailing week, a
    rough growth signal rather than a change in value.
    """
    as_of_ts = _as_of(as_of)
    df = work_orders_frame(work_orders, as_of_ts)
    wip = _wip(df)
    if wip.empty:
        return KpiResult.empty("No open work orders")

    new_orders = int(_in_window(wip["created_date"], as_of_ts - TREND_WINDOW, as_of_ts).sum())
    return KpiResult(
        value=float(wip["wip_value"].sum()),
        delta=new_orders,
        delta_type=_delta_type(new_orders),
        caption=f"{len(wip)} open work orders",
        breakdown=_sum_by(wip, "status", "wip_value"),
        extras={
            "by_site": _sum_by(wip, "site", "wip_value"),
            "by_priority": _sum_by(wip, "priority", "wip_value"),
        },
    )


def _on_time_percent(frame: pd.DataFrame) -> Optional[float]:
    if frame.empty:
        return None
    return round(float(frame["on_time"].mean() * 100), 1)


def calculate_sla_performance(work_orders, as_of=None) -> KpiResult:
    """
    Share of completed / posted work orders closed on or before the promised date.

    Dates are compared by calendar day. Average delay covers late orders only.
    The delta compares this week's on-time rate with the previous week's.
    """
    as_of_ts = _as_of(as_of)
    df = work_orders_frame(work_orders, as_of_ts)
    closed = df[df["status"].isin(WORK_ORDER_RULES["sla_statuses"])]
    closed = closed[closed["closed_date"].notna() & closed["promised_date"].notna()].copy()
    if closed.empty:
        return KpiResult.empty("No completed work orders with a promised date",
                               on_time_count=0, late_count=0, average_delay_days=0)

    closed["delay_days"] = (closed["closed_date"].dt.normalize() - closed["promised_date"].dt.normalize()).dt.days
    closed["on_time"] = closed["delay_days"] <= 0
    late = closed[~closed["on_time"]]

    this_week = closed[_in_window(closed["closed_date"], as_of_ts - TREND_WINDOW, as_of_ts)]
    last_week = closed[_in_window(closed["closed_date"], as_of_ts - 2 * TREND_WINDOW, as_of_ts - TREND_WINDOW)]
    this_pct, last_pct = _on_time_percent(this_week), _on_time_percent(last_week)
    delta = round(this_pct - last_pct, 1) if this_pct is not None and last_pct is not None else None

    on_time_count = int(closed["on_time"].sum())
    return KpiResult(
        value=_on_time_percent(closed),
        delta=delta,
        delta_type=_delta_type(delta),
        caption=f"{on_time_count} of {len(closed)} closed on time",
        breakdown={"On Time": on_time_count, "Late": len(late)},
        extras={
            "on_time_count": on_time_count,
            "late_count": len(late),
            "average_delay_days": round(float(late["delay_days"].mean()), 1) if not late.empty else 0,
            "by_priority": {str(k): round(float(v) * 100, 1)
                            for k, v in closed.groupby("priority")["on_time"].mean().items()},
            "by_site": {str(k): round(float(v) * 100, 1)
                        for k, v in closed.groupby("site")["on_time"].mean().items()},
        },
    )


def calculate_weekly_trend(work_orders, as_of=None) -> KpiResult:
    """
    Opened vs closed work orders in the rolling 7 days ending at `as_of`.

    Returns:
        KpiResult with value = net change and extras opens_this_week,
        closed_this_week, net_change, trend_direction ('up' | 'down' | 'flat')
    """
    as_of_ts = _as_of(as_of)
    df = work_orders_frame(work_orders, as_of_ts)
    if df.empty:
        return KpiResult.empty("No work orders", opens_this_week=0, closed_this_week=0,
                               net_change=0, trend_direction="flat")

    window_start = as_of_ts - TREND_WINDOW
    opens = int(_in_window(df["created_date"], window_start, as_of_ts).sum())
    closes = int(_in_window(df["closed_date"], window_start, as_of_ts).sum())
    net_change = opens - closes

    if net_change > 0:
        direction = "up"
    elif net_change < 0:
        direction = "down"
    else:
        direction = "flat"

    return KpiResult(
        value=net_change,
        delta=net_change,
        delta_type=_delta_type(net_change),
        caption=f"{opens} opened, {closes} closed in the last 7 days",
        extras={
            "opens_this_week": opens,
            "closed_this_week": closes,
            "net_change": net_change,
            "trend_direction": direction,
        },
    )


# ===== SNAPSHOT KPIs =====

def calculate_parts_below_safety(snapshot, as_of=None) -> KpiResult:
    """
    Parts whose raw on-hand is under safety stock, by site.

    This ignores `available` and the min on-hand fallback used by the classifier.
    """
    df = snapshot_frame(snapshot)
    if df.empty:
        return KpiResult.empty("No inventory positions")

    below = df[df["on_hand"] < df["safety_stock"]]
    return KpiResult(
        value=len(below),
        caption=f"{len(below)} parts below safety stock",
        breakdown=_count_by(below, "site"),
    )


def calculate_below_safety_no_supply(snapshot, as_of=None) -> KpiResult:
    """Parts below safety stock with nothing inbound inside the horizon, by action."""
    df = _classified(snapshot)
    if df.empty:
        return KpiResult.empty("No inventory positions")

    flagged = df[(df["on_hand"] < df["safety_stock"]) & (df["inbound_qty"] == 0)]
    return KpiResult(
        value=len(flagged),
        caption=f"{len(flagged)} parts need immediate action",
        breakdown=_count_by(flagged, "action"),
    )


def find_critical_items(snapshot, as_of=None) -> pd.DataFrame:
    """
    Short items whose supply will not arrive in time.

    Critical when gap > 0 and there is no inbound quantity, no ETA, or the next
    ETA is more than the critical window (days) after `as_of`.
    """
    as_of_ts = _as_of(as_of)
    df = _classified(snapshot)
    if df.empty:
        return df

    window_days = SNAPSHOT_RULES["critical_eta_days"]
    days_to_eta = (df["next_eta"].dt.normalize() - as_of_ts.normalize()).dt.days
    late_supply = (df["inbound_qty"] == 0) | df["next_eta"].isna() | (days_to_eta > window_days)
    return df[(df["gap"] > 0) & late_supply].reset_index(drop=True)


def calculate_critical_items(snapshot, as_of=None) -> KpiResult:
    """Count of critical items (see `find_critical_items`), by site."""
    df = _classified(snapshot)
    if df.empty:
        return KpiResult.empty("No inventory positions")

    window_days = SNAPSHOT_RULES["critical_eta_days"]
    critical = find_critical_items(df, as_of)

    return KpiResult(
        value=len(critical),
        caption=f"{len(critical)} short items without supply inside {window_days} days",
        breakdown=_count_by(critical, "site"),
    )


def calculate_snapshot_summary(snapshot, as_of=None) -> KpiResult:
    """
    Snapshot totals: items, items needing action, action mix, average cover days.

    Average cover days only counts rows with positive cover, rounded to a whole day.
    """
    df = _classified(snapshot)
    if df.empty:
        return KpiResult.empty("No inventory positions", total_items=0,
                               critical_items=0, average_cover_days=0)

    critical_items = int((df["action"] != Action.OK.value).sum())
    covered = df.loc[df["cover_days"] > 0, "cover_days"]
    average_cover = _round_half_up(float(covered.mean())) if not covered.empty else 0

    return KpiResult(
        value=len(df),
        caption=f"{critical_items} of {len(df)} items need action",
        breakdown=_count_by(df, "action"),
        extras={
            "total_items": len(df),
            "critical_items": critical_items,
            "average_cover_days": average_cover,
        },
    )


# ===== RENDER CYCLE =====

def calculate_dashboard_kpis(work_orders=None, snapshot=None, as_of=None) -> Dict[str, object]:
    """
    Every dashboard KPI for one render, keyed by name.

    Args:
        work_orders: Work orders (DataFrame or records)
        snapshot: Raw or classified snapshot rows (DataFrame or records)
        as_of: Reference time shared by every KPI

    Returns:
        Dictionary of KpiResult values, plus the ageing buckets list
    """
    as_of_ts = _as_of(as_of)
    wo = work_orders_frame(work_orders, as_of_ts)
    snap = _classified(snapshot)

    return {
        "open_work_orders": calculate_open_work_orders(wo, as_of_ts),
        "weekly_trend": calculate_weekly_trend(wo, as_of_ts),
        "ageing_buckets": calculate_ageing_buckets(wo, as_of_ts),
        "ageing": calculate_ageing_kpi(wo, as_of_ts),
        "month_to_date_revenue": calculate_month_to_date_revenue(wo, as_of_ts),
        "average_resolution_time": calculate_average_resolution_time(wo, as_of_ts),
        "labour_costs": calculate_labour_and_other_costs(wo, as_of_ts),
        "parts_cost": calculate_parts_cost(wo, as_of_ts),
        "gross_margin": calculate_average_gross_margin(wo, as_of_ts),
        "open_wip_value": calculate_open_wip_value(wo, as_of_ts),
        "sla_performance": calculate_sla_performance(wo, as_of_ts),
        "parts_below_safety": calculate_parts_below_safety(snap, as_of_ts),
        "below_safety_no_supply": calculate_below_safety_no_supply(snap, as_of_ts),
        "critical_items": calculate_critical_items(snap, as_of_ts),
        "snapshot_summary": calculate_snapshot_summary(snap, as_of_ts),
    }
