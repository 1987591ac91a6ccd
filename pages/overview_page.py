"""
Overview Page - Executive Dashboard
Headline work order and inventory KPIs for the selected sites
"""

import streamlit as st
import pandas as pd
import plotly.graph_objects as go
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from ui_components import (
    render_page_header,
    render_kpi_row,
    render_chart,
    render_info_box,
    render_breakdown,
    build_kpi_card,
    build_open_work_orders_card,
    get_action_color,
    get_action_label,
    get_ageing_bucket_color,
)


def build_ageing_chart(buckets):
    """Bar chart of open work orders per ageing bucket"""
    fig = go.Figure(go.Bar(
        x=[b.label for b in buckets],
        y=[b.count for b in buckets],
        marker_color=[get_ageing_bucket_color(i) for i in range(len(buckets))],
        text=[b.count for b in buckets],
        textposition="outside",
    ))
    fig.update_layout(xaxis_title="Age", yaxis_title="Open work orders", showlegend=False)
    return fig


def build_action_chart(action_breakdown):
    """Donut of snapshot rows by recommended action"""
    actions = list(action_breakdown.keys())
    fig = go.Figure(go.Pie(
        labels=[get_action_label(a) for a in actions],
        values=[action_breakdown[a] for a in actions],
        marker=dict(colors=[get_action_color(a) for a in actions]),
        hole=0.5,
        sort=False,
    ))
    return fig


def build_site_bar_chart(breakdown, title_text, color="#ef4444"):
    """Horizontal bar of a per-site breakdown, largest first"""
    series = pd.Series(breakdown, dtype=float).sort_values()
    fig = go.Figure(go.Bar(x=series.values, y=series.index, orientation="h", marker_color=color))
    fig.update_layout(xaxis_title=title_text, yaxis_title=None, showlegend=False)
    return fig


def render_overview_page(kpis, snapshot_data):
    """Render the overview page"""

    render_page_header(
        "Overview",
        icon="📊",
        subtitle="Open work, service performance and stock position at a glance"
    )

    if not kpis:
        render_info_box("No KPI data available.", type="warning")
        return

    # ===== WORK ORDERS =====
    st.markdown("### 🛠️ Work Orders")
    render_kpi_row({
        "Open Work Orders": build_open_work_orders_card(kpis["open_work_orders"], kpis["weekly_trend"]),
        "Worst Ageing Bucket": {
            **build_kpi_card(kpis["ageing"], "integer",
                             hint="Open orders in the oldest bucket that has any orders"),
            "delta": kpis["ageing"].extras.get("worst_bucket"),
            "delta_color": "off",
        },
        "Open WIP Value": build_kpi_card(kpis["open_wip_value"], "compact_currency",
                                         hint="Sum of WIP value; delta is orders created in the last 7 days"),
        "SLA On-Time": build_kpi_card(kpis["sla_performance"], "percentage",
                                      hint="Closed on or before the promised date",
                                      higher_is_better=True),
    })

    render_kpi_row({
        "Month-to-Date Revenue": build_kpi_card(kpis["month_to_date_revenue"], "compact_currency",
                                                hint="Posted work orders closed this month"),
        "Avg Resolution Time": build_kpi_card(kpis["average_resolution_time"], "days",
                                              hint="First arrival to completion, posted orders"),
        "Avg Gross Margin": build_kpi_card(kpis["gross_margin"], "percentage",
                                           hint="Mean gross margin of posted orders",
                                           higher_is_better=True),
        "Labour Share": {
            **build_kpi_card(kpis["labour_costs"], "compact_currency",
                             hint="Labour cost of open work orders"),
            "delta": f"{kpis['labour_costs'].extras.get('percentage', 0)}% labour / "
                     f"{kpis['parts_cost'].extras.get('percentage', 0)}% parts",
            "delta_color": "off",
        },
    })

    col1, col2 = st.columns(2)
    with col1:
        render_chart(build_ageing_chart(kpis["ageing_buckets"]), title="Open Work Order Ageing", height=350)
    with col2:
        revenue = kpis["month_to_date_revenue"]
        if revenue.breakdown:
            weeks = pd.Series(revenue.breakdown, dtype=float)
            fig = go.Figure(go.Bar(x=weeks.index, y=weeks.values, marker_color="#10b981"))
            fig.update_layout(yaxis_title="Revenue", showlegend=False)
            render_chart(fig, title="Revenue by Week (Month to Date)", height=350)
        else:
            render_info_box(revenue.caption)

    st.divider()

    # ===== INVENTORY =====
    st.markdown("### 📦 Current Position")
    summary = kpis["snapshot_summary"]
    render_kpi_row({
        "Parts Below Safety": build_kpi_card(kpis["parts_below_safety"], "integer",
                                             hint="On-hand below safety stock"),
        "Below Safety, No Supply": build_kpi_card(kpis["below_safety_no_supply"], "integer",
                                                  hint="Below safety stock with nothing inbound in the horizon"),
        "Critical Items": build_kpi_card(kpis["critical_items"], "integer",
                                         hint="Short against demand with no supply due within 7 days"),
        "Avg Cover Days": {
            "value": f"{summary.extras.get('average_cover_days', 0)}d",
            "delta": f"{summary.extras.get('critical_items', 0)} need action",
            "delta_color": "off",
            "help": summary.caption,
        },
    })

    if snapshot_data is None or snapshot_data.empty:
        render_info_box("No inventory positions for the selected sites.")
        return

    col1, col2 = st.columns(2)
    with col1:
        if summary.breakdown:
            render_chart(build_action_chart(summary.breakdown), title="Recommended Actions", height=350)
    with col2:
        below = kpis["parts_below_safety"]
        if below.breakdown:
            render_chart(build_site_bar_chart(below.breakdown, "Parts below safety"),
                         title="Parts Below Safety by Site", height=350)
        else:
            render_info_box("No parts below safety stock.", type="success")

    render_breakdown(kpis["critical_items"].breakdown)
