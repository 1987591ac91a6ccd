"""
Current Position Page
Per-item stock position with the recommended action, plus the inbound supply
and demand lines behind it
"""

import streamlit as st
import pandas as pd
import plotly.graph_objects as go
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from business_rules import SNAPSHOT_RULES
from kpi_calculations import find_critical_items
from query_filters import apply_snapshot_filters, to_site_name
from ui_components import (
    render_page_header,
    render_kpi_row,
    render_chart,
    render_data_table,
    render_info_box,
    render_section_header,
    build_kpi_card,
    format_cover_days,
    format_date,
    get_action_color,
    get_action_label,
)


def prepare_snapshot_table(snapshot):
    """Display columns for the position table, items needing action first"""
    if snapshot.empty:
        return pd.DataFrame()

    order = {action: idx for idx, action in enumerate(["RaisePO", "Expedite", "Transfer", "Reallocate", "OK"])}
    table = snapshot.assign(_rank=snapshot["action"].map(order).fillna(len(order)))
    table = table.sort_values(["_rank", "gap"], ascending=[True, False])

    return pd.DataFrame({
        "Item": table["item_id"],
        "Description": table["item_name"].fillna(""),
        "Site": table["site"].map(to_site_name),
        "Warehouse": table["warehouse"].fillna("-"),
        "On Hand": table["on_hand"],
        "Available": table["available"],
        "Safety Stock": table["safety_stock"],
        "Min On Hand": table["min_on_hand"],
        "Inbound": table["inbound_qty"],
        "Next ETA": table["next_eta"].map(format_date),
        "Demand": table["demand_qty"],
        "Gap": table["gap"],
        "Cover": table["cover_days"].map(format_cover_days),
        "Action": table["action"].map(get_action_label),
    })


def item_lines(lines, item_id, site):
    """Supply or demand lines for one item at one site"""
    if lines is None or lines.empty:
        return pd.DataFrame()
    return lines[(lines["item_id"] == item_id) & (lines["site"] == site)]


def build_action_bar_chart(snapshot):
    counts = snapshot["action"].value_counts()
    actions = [a for a in SNAPSHOT_RULES["actions"] if a in counts.index]
    fig = go.Figure(go.Bar(
        x=[get_action_label(a) for a in actions],
        y=[int(counts[a]) for a in actions],
        marker_color=[get_action_color(a) for a in actions],
        text=[int(counts[a]) for a in actions],
        textposition="outside",
    ))
    fig.update_layout(yaxis_title="Items", showlegend=False)
    return fig


def render_snapshot_page(snapshot_data, supply_data, demand_data, kpis, filters=None, as_of=None):
    """Render the current position page"""

    render_page_header(
        "Current Position",
        icon="📦",
        subtitle="On-hand, inbound and demand inside the planning horizon, with a recommended action"
    )

    if snapshot_data is None or snapshot_data.empty:
        render_info_box("No inventory positions for the selected sites.", type="warning")
        return

    horizon = filters.horizon_days if filters is not None else SNAPSHOT_RULES["default_horizon_days"]
    st.caption(f"Planning horizon: {horizon} days")

    summary = kpis["snapshot_summary"]
    render_kpi_row({
        "Items": {"value": f"{summary.extras.get('total_items', 0):,}", "help": summary.caption},
        "Need Action": {"value": f"{summary.extras.get('critical_items', 0):,}",
                        "help": "Items whose recommended action is not OK"},
        "Below Safety": build_kpi_card(kpis["parts_below_safety"], "integer"),
        "No Supply": build_kpi_card(kpis["below_safety_no_supply"], "integer",
                                    hint="Below safety stock with nothing inbound"),
        "Critical": build_kpi_card(kpis["critical_items"], "integer"),
    })

    col1, col2 = st.columns([1, 2])
    with col1:
        render_chart(build_action_bar_chart(snapshot_data), title="Recommended Actions", height=320)
    with col2:
        render_section_header(
            "Critical Items",
            f"Short against demand with no supply due within {SNAPSHOT_RULES['critical_eta_days']} days"
        )
        critical = find_critical_items(snapshot_data, as_of)
        if critical.empty:
            render_info_box("No critical items.", type="success")
        else:
            st.dataframe(prepare_snapshot_table(critical), hide_index=True, width='stretch')

    st.divider()

    # ===== POSITION TABLE =====
    render_section_header("Position by Item")
    search = st.text_input("Search item", value="", key="snapshot_item_search",
                           placeholder="Item number or description...")

    table_data = apply_snapshot_filters(snapshot_data, filters) if filters is not None else snapshot_data
    if search.strip():
        needle = search.strip().lower()
        matches = (
            table_data["item_id"].astype(str).str.lower().str.contains(needle, regex=False)
            | table_data["item_name"].fillna("").astype(str).str.lower().str.contains(needle, regex=False)
        )
        table_data = table_data[matches]

    if filters is not None and filters.only_exceptions:
        st.caption("Showing items needing action only")

    render_data_table(prepare_snapshot_table(table_data), max_rows=500, download_filename="current_position.csv")

    # ===== ITEM DETAIL =====
    if table_data.empty:
        return

    st.divider()
    render_section_header("Item Detail", "Inbound supply and demand lines inside the horizon")

    keys = table_data[["item_id", "site"]].drop_duplicates()
    options = [f"{row.item_id} @ {row.site}" for row in keys.itertuples()]
    selected = st.selectbox("Item", options=options, key="snapshot_item_detail")
    item_id, site = selected.split(" @ ", 1)

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Inbound supply**")
        supply = item_lines(supply_data, item_id, site)
        if supply.empty:
            st.caption("No inbound lines")
        else:
            st.dataframe(
                supply.assign(eta=supply["eta"].map(format_date))[["source", "ref", "qty", "eta"]],
                hide_index=True, width='stretch'
            )
    with col2:
        st.markdown("**Demand**")
        demand = item_lines(demand_data, item_id, site)
        if demand.empty:
            st.caption("No demand lines")
        else:
            st.dataframe(
                demand.assign(need_by=demand["need_by"].map(format_date))[["demand_type", "ref", "qty", "need_by"]],
                hide_index=True, width='stretch'
            )
