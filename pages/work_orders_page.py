"""
Work Orders Page
Open work order detail: ageing, cost split, SLA and resolution trend
"""

import streamlit as st
import pandas as pd
import plotly.graph_objects as go
from dateutil.relativedelta import relativedelta
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from business_rules import WORK_ORDER_RULES, get_ageing_bucket_index, AGEING_RULES
from query_filters import to_site_name
from ui_components import (
    render_page_header,
    render_kpi_row,
    render_chart,
    render_data_table,
    render_info_box,
    render_section_header,
    build_kpi_card,
    format_date,
    format_number,
    get_priority_color,
)

CREATED_WITHIN = {
    "All": None,
    "Last month": 1,
    "Last 3 months": 3,
    "Last 6 months": 6,
    "Last 12 months": 12,
}


def filter_work_orders_table(work_orders, statuses=None, created_within_months=None, as_of=None):
    """Narrow the work order table by status and a trailing created-date window"""
    if work_orders is None or work_orders.empty:
        return pd.DataFrame() if work_orders is None else work_orders

    filtered = work_orders
    if statuses:
        filtered = filtered[filtered["status"].isin(statuses)]
    if created_within_months:
        as_of = pd.Timestamp(as_of) if as_of is not None else pd.Timestamp.now()
        cutoff = as_of.normalize() - relativedelta(months=created_within_months)
        filtered = filtered[filtered["created_date"] >= cutoff]
    return filtered


def prepare_work_order_table(work_orders):
    """Display columns for the work order table, oldest first"""
    if work_orders.empty:
        return pd.DataFrame()

    buckets = AGEING_RULES["buckets"]

    def bucket_label(age):
        idx = get_ageing_bucket_index(age)
        return buckets[idx]["label"] if idx is not None else "-"

    table = work_orders.sort_values("age_days", ascending=False)
    return pd.DataFrame({
        "Work Order": table["work_order_id"],
        "Status": table["status"],
        "Priority": table["priority"],
        "Site": table["site"].map(to_site_name),
        "Technician": table["technician"].fillna("Unassigned"),
        "Created": table["created_date"].map(format_date),
        "Promised": table["promised_date"].map(format_date),
        "Closed": table["closed_date"].map(format_date),
        "Age (days)": table["age_days"],
        "Ageing": table["age_days"].map(bucket_label),
        "WIP Value": table["wip_value"].round(2),
        "Labour": table["total_labour_cost"].round(2),
        "Parts": table["total_parts_cost"].round(2),
        "Gross Margin %": table["gross_margin"].round(1),
    })


def build_cost_split_chart(labour_kpi, parts_kpi):
    """Single stacked bar of the labour / parts share of in-progress cost"""
    fig = go.Figure()
    fig.add_trace(go.Bar(
        y=["In progress"], x=[labour_kpi.extras.get("percentage", 0)],
        name="Labour", orientation="h", marker_color="#3b82f6",
        text=[f"Labour {format_number(labour_kpi.value, 'currency')}"], textposition="inside",
    ))
    fig.add_trace(go.Bar(
        y=["In progress"], x=[parts_kpi.extras.get("percentage", 0)],
        name="Parts", orientation="h", marker_color="#f59e0b",
        text=[f"Parts {format_number(parts_kpi.value, 'currency')}"], textposition="inside",
    ))
    fig.update_layout(barmode="stack", xaxis=dict(range=[0, 100], title="% of cost"), yaxis_title=None)
    return fig


def build_resolution_trend_chart(trend):
    """Weekly average resolution days, weeks without closures left as gaps"""
    weeks = [point["week_start"].strftime("%d %b") for point in trend]
    averages = [point["average_days"] for point in trend]
    fig = go.Figure(go.Scatter(
        x=weeks, y=averages, mode="lines+markers",
        line=dict(color="#6366f1", width=3),
        customdata=[point["orders"] for point in trend],
        hovertemplate="Week of %{x}<br>%{y:.1f} days<br>%{customdata} orders<extra></extra>",
    ))
    fig.update_layout(xaxis_title="Week starting", yaxis_title="Days")
    return fig


def build_sla_by_priority_chart(by_priority):
    priorities = [p for p in WORK_ORDER_RULES["priorities"] if p in by_priority]
    priorities += [p for p in by_priority if p not in priorities]
    fig = go.Figure(go.Bar(
        x=priorities,
        y=[by_priority[p] for p in priorities],
        marker_color=[get_priority_color(p) for p in priorities],
        text=[f"{by_priority[p]:.0f}%" for p in priorities],
        textposition="outside",
    ))
    fig.update_layout(yaxis=dict(range=[0, 110], title="On-time %"), showlegend=False)
    return fig


def render_work_orders_page(work_orders, kpis, status_filter=None, as_of=None):
    """Render the work orders page"""

    render_page_header(
        "Work Orders",
        icon="🛠️",
        subtitle="Open work, ageing, cost split and SLA performance"
    )

    if work_orders is None or work_orders.empty:
        render_info_box("No work orders loaded for the selected filters.", type="warning")
        return

    # ===== KPIs =====
    render_kpi_row({
        "Open WIP Value": build_kpi_card(kpis["open_wip_value"], "compact_currency",
                                         hint="Delta is orders created in the last 7 days"),
        "Labour Cost": build_kpi_card(kpis["labour_costs"], "compact_currency"),
        "Parts Cost": build_kpi_card(kpis["parts_cost"], "compact_currency"),
        "SLA On-Time": build_kpi_card(kpis["sla_performance"], "percentage", higher_is_better=True),
        "Avg Resolution": build_kpi_card(kpis["average_resolution_time"], "days"),
    })

    col1, col2 = st.columns(2)
    with col1:
        labour, parts = kpis["labour_costs"], kpis["parts_cost"]
        if labour.value or parts.value:
            render_chart(build_cost_split_chart(labour, parts), title="In-Progress Cost Split", height=220)
        else:
            render_info_box(labour.caption)

        sla = kpis["sla_performance"]
        by_priority = sla.extras.get("by_priority")
        if by_priority:
            render_chart(build_sla_by_priority_chart(by_priority), title="SLA On-Time by Priority", height=300)
            st.caption(
                f"{sla.caption}. Late orders average "
                f"{format_number(sla.extras.get('average_delay_days', 0), 'days')} past promise."
            )
        else:
            render_info_box(sla.caption)

    with col2:
        resolution = kpis["average_resolution_time"]
        trend = resolution.extras.get("trend") or []
        if any(point["average_days"] is not None for point in trend):
            render_chart(build_resolution_trend_chart(trend), title="Resolution Time Trend", height=300)
        else:
            render_info_box(resolution.caption)

        by_technician = resolution.extras.get("by_technician")
        if by_technician:
            render_section_header("Resolution by Technician", "Average days, posted work orders")
            st.dataframe(
                pd.DataFrame({"Technician": list(by_technician.keys()),
                              "Avg Days": list(by_technician.values())}).sort_values("Avg Days"),
                hide_index=True,
                width='stretch'
            )

    st.divider()

    # ===== TABLE =====
    render_section_header("Work Order List", "Oldest first")
    col1, col2 = st.columns(2)
    with col1:
        selected_statuses = st.multiselect(
            "Status",
            options=WORK_ORDER_RULES["statuses"],
            default=list(status_filter) if status_filter else WORK_ORDER_RULES["wip_statuses"],
            key="wo_status_filter"
        )
    with col2:
        created_within = st.selectbox("Created", options=list(CREATED_WITHIN.keys()), key="wo_created_filter")

    filtered = filter_work_orders_table(
        work_orders,
        statuses=selected_statuses,
        created_within_months=CREATED_WITHIN[created_within],
        as_of=as_of,
    )
    render_data_table(
        prepare_work_order_table(filtered),
        max_rows=500,
        download_filename="work_orders.csv"
    )
