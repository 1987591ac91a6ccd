"""
Service Inventory & Work Order Dashboard
Work order KPIs and current inventory position with recommended actions
"""

import streamlit as st
import pandas as pd
from dataclasses import replace
from datetime import datetime
import pytz

from business_rules import WORK_ORDER_RULES, get_settings
from data_loader import (
    load_work_orders,
    load_inventory,
    load_supply,
    load_demand,
    load_snapshot,
)
from kpi_calculations import calculate_dashboard_kpis
from query_filters import build_query_filters, get_site_options, map_sites_to_names
from warehouse_pool import pool_from_settings

# Import UI components
from ui_components import render_navigation, render_data_status

# Import page modules
from pages.overview_page import render_overview_page
from pages.work_orders_page import render_work_orders_page
from pages.snapshot_page import render_snapshot_page
from pages.debug_page import render_debug_page
from pages.data_upload_page import render_data_upload_page

# ===== PAGE CONFIGURATION =====
st.set_page_config(
    page_title="Service Inventory Dashboard",
    page_icon="🛠️",
    layout="wide",
    initial_sidebar_state="expanded"
)

# ===== CUSTOM CSS =====
st.markdown("""
    <style>
        .main {
            padding: 1rem;
        }

        /* Improve metric cards */
        [data-testid="stMetric"] {
            background-color: #f8f9fa;
            padding: 1rem;
            border-radius: 0.5rem;
            border: 1px solid #e9ecef;
        }

        /* Hide automatic Streamlit page navigation */
        [data-testid="stSidebarNav"] {
            display: none;
        }
    </style>
""", unsafe_allow_html=True)

SETTINGS = get_settings()


@st.cache_resource(show_spinner=False)
def get_warehouse_pool():
    """One pool per server process; None in fixture mode."""
    return pool_from_settings(SETTINGS)


# ===== DATA LOADING =====
# Results are re-derived on every render from the latest fetched rows

def load_all_data(filters, pool=None, as_of=None, _progress_callback=None):
    """Load every dataset, classify the snapshot and compute all KPIs for one render

    Args:
        filters: QueryFilters built from the sidebar
        pool: WarehousePool, or None for fixture mode
        as_of: Reference time shared by loaders and KPIs
        _progress_callback: Optional callback function to report loading progress
    """
    def update_progress(step, message):
        if _progress_callback:
            _progress_callback(step, message)

    try:
        # Work order KPIs need settled and cancelled orders too, so the status
        # filter only narrows the table on the Work Orders page
        kpi_filters = build_query_filters(
            sites=filters.site_codes,
            statuses=WORK_ORDER_RULES["statuses"],
            priority=filters.priority,
            date_from=filters.date_from,
            date_to=filters.date_to,
            horizon=filters.horizon_days,
            max_rows=filters.max_rows,
        )

        update_progress(0.15, "Loading work orders...")
        logs_work_orders, work_orders_df = load_work_orders(kpi_filters, pool=pool, as_of=as_of)

        update_progress(0.35, "Loading inventory...")
        logs_inventory, inventory_df = load_inventory(filters, pool=pool, as_of=as_of)

        update_progress(0.50, "Loading inbound supply...")
        logs_supply, supply_df = load_supply(filters, pool=pool, as_of=as_of)

        update_progress(0.65, "Loading demand...")
        logs_demand, demand_df = load_demand(filters, pool=pool, as_of=as_of)

        update_progress(0.80, "Classifying current position...")
        # KPIs cover every item; the exceptions toggle only narrows the table
        logs_snapshot, snapshot_df = load_snapshot(replace(filters, only_exceptions=False), pool=pool, as_of=as_of)

        update_progress(0.95, "Calculating KPIs...")
        kpis = calculate_dashboard_kpis(work_orders_df, snapshot_df, as_of=as_of)

        update_progress(1.0, "Ready!")

        return {
            # Data
            'work_orders': work_orders_df,
            'inventory': inventory_df,
            'supply': supply_df,
            'demand': demand_df,
            'snapshot': snapshot_df,
            'kpis': kpis,
            'filters': filters,
            'load_time': datetime.now(),
            'load_time_str': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),

            # Debug info - Logs
            'work_orders_logs': logs_work_orders,
            'inventory_logs': logs_inventory,
            'supply_logs': logs_supply,
            'demand_logs': logs_demand,
            'snapshot_logs': logs_snapshot,
        }
    except Exception as e:
        st.error(f"Error loading data: {str(e)}")
        import traceback
        st.error(traceback.format_exc())
        return None


def render_sidebar_filters():
    """Global filters shared by every page; returns QueryFilters"""
    st.sidebar.markdown("**⚙️ Filters**")

    site_options = get_site_options()
    site_labels = [site["name"] for site in site_options]
    selected_sites = st.sidebar.multiselect(
        "Sites",
        options=site_labels,
        default=[],
        help="Leave empty for all sites"
    )

    priority = st.sidebar.selectbox(
        "Priority",
        options=["All"] + WORK_ORDER_RULES["priorities"],
        index=0
    )

    use_date_range = st.sidebar.checkbox("Filter by created date", value=False)
    date_from, date_to = None, None
    if use_date_range:
        today = datetime.now().date()
        date_range = st.sidebar.date_input(
            "Created between",
            value=(today - pd.Timedelta(days=90), today)
        )
        if isinstance(date_range, (list, tuple)) and len(date_range) == 2:
            date_from, date_to = date_range[0].isoformat(), date_range[1].isoformat()

    horizon = st.sidebar.slider(
        "Planning horizon (days)",
        min_value=7,
        max_value=120,
        value=SETTINGS["default_horizon_days"],
        step=1,
        help="Supply and demand dated after this many days are ignored"
    )

    only_exceptions = st.sidebar.checkbox(
        "Only items needing action",
        value=False,
        help="Hide snapshot rows whose recommended action is OK"
    )

    return build_query_filters(
        sites=selected_sites or None,
        priority=priority,
        date_from=date_from,
        date_to=date_to,
        horizon=horizon,
        only_exceptions=only_exceptions,
        max_rows=SETTINGS["max_work_order_rows"],
    )


# ===== MAIN APPLICATION =====

def main():
    """Main application entry point"""

    selected_page = render_navigation()

    filters = render_sidebar_filters()

    st.sidebar.divider()

    progress_bar = st.sidebar.progress(0)
    progress_text = st.sidebar.empty()

    def update_loading_progress(progress, message):
        """Update progress bar and text during data loading"""
        progress_bar.progress(progress)
        progress_text.text(message)

    tz = pytz.timezone(SETTINGS["timezone"])
    now_local = datetime.now(tz)
    as_of = pd.Timestamp(now_local.replace(tzinfo=None))

    try:
        pool = get_warehouse_pool()
    except ValueError as e:
        st.error(str(e))
        st.stop()

    data = load_all_data(filters, pool=pool, as_of=as_of, _progress_callback=update_loading_progress)

    progress_bar.empty()
    progress_text.empty()

    if data is None:
        st.error("Failed to load data. Please check the data source settings.")
        st.stop()

    record_count = len(data['work_orders']) + len(data['snapshot'])
    render_data_status(data['load_time'], record_count, mock_mode=pool is None)

    if st.sidebar.button("🔄 Refresh Data", width='stretch', help="Reload all data from the source"):
        st.rerun()

    st.sidebar.caption(f"Sites: {', '.join(map_sites_to_names(filters.site_codes) or ['All'])}")

    st.markdown(
        f"<div style='font-size:16px; color:gray;'>Dashboard Time ({SETTINGS['timezone']}): "
        f"{now_local.strftime('%Y-%m-%d %H:%M:%S')}</div>",
        unsafe_allow_html=True
    )

    # Route to selected page
    if selected_page == "overview":
        render_overview_page(kpis=data['kpis'], snapshot_data=data['snapshot'])

    elif selected_page == "work_orders":
        render_work_orders_page(
            work_orders=data['work_orders'],
            kpis=data['kpis'],
            status_filter=filters.status_labels,
            as_of=as_of,
        )

    elif selected_page == "snapshot":
        render_snapshot_page(
            snapshot_data=data['snapshot'],
            supply_data=data['supply'],
            demand_data=data['demand'],
            kpis=data["kpis"],
            filters=filters,
            as_of=as_of,
        )

    elif selected_page == "upload":
        render_data_upload_page(mock_mode=pool is None)

    elif selected_page == "debug":
        render_debug_page(debug_info=data, settings=SETTINGS)

    st.sidebar.divider()
    st.sidebar.caption("Service Inventory Dashboard")

if __name__ == "__main__":
    main()
