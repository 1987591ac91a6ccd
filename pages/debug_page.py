"""
Debug & Logs Page
Shows loader logs, deployment settings and the shape of every loaded dataset
"""

import streamlit as st
import pandas as pd
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from ui_components import get_data_as_excel

DATASETS = {
    "Work Orders": "work_orders",
    "Inventory": "inventory",
    "Inbound Supply": "supply",
    "Demand": "demand",
    "Current Position": "snapshot",
}


def split_logs(logs):
    """Group loader log lines by level prefix"""
    return {
        "info": [log for log in logs if log.startswith("INFO:")],
        "warning": [log for log in logs if log.startswith("WARNING:")],
        "error": [log for log in logs if log.startswith("ERROR:")],
    }


def render_debug_page(debug_info, settings=None):
    """Render debug and logs page"""

    st.title("🔧 Debug & System Logs")

    if not debug_info:
        st.warning("No debug information available. Data may not have loaded yet.")
        return

    grouped = {key: split_logs(debug_info.get(f"{key}_logs") or []) for key in DATASETS.values()}

    # System Info
    st.header("📊 System Information")
    col1, col2, col3 = st.columns(3)

    with col1:
        st.metric("Data Load Time", str(debug_info.get('load_time_str', 'N/A')))

    with col2:
        datasets_loaded = len([k for k in DATASETS.values() if debug_info.get(k) is not None])
        st.metric("Datasets Loaded", datasets_loaded)

    with col3:
        total_errors = sum(len(g["error"]) for g in grouped.values())
        st.metric("Total Errors", total_errors, delta=None if total_errors == 0 else "⚠️")

    st.divider()

    # Data Loading Logs
    st.header("📋 Data Loading Logs")

    for section_name, key in DATASETS.items():
        logs = debug_info.get(f"{key}_logs")
        if not logs:
            continue
        levels = grouped[key]
        with st.expander(f"📄 {section_name} Logs", expanded=bool(levels["error"])):
            col1, col2, col3 = st.columns(3)
            with col1:
                st.metric("Info", len(levels["info"]))
            with col2:
                st.metric("Warnings", len(levels["warning"]), delta="⚠️" if levels["warning"] else None)
            with col3:
                st.metric("Errors", len(levels["error"]), delta="❌" if levels["error"] else None)

            if levels["error"]:
                st.error("**Errors:**")
                for log in levels["error"]:
                    st.text(log)

            if levels["warning"]:
                st.warning("**Warnings:**")
                for log in levels["warning"]:
                    st.text(log)

            if levels["info"] and st.checkbox(f"Show Info logs for {section_name}", key=f"show_info_{key}"):
                st.info("**Info:**")
                for log in levels["info"]:
                    st.text(log)

    if not any(g["error"] for g in grouped.values()):
        st.success("✅ No errors detected in data loading!")

    st.divider()

    # Settings
    if settings:
        st.header("⚙️ Settings")
        visible = {
            key: ("set" if value else "not set") if key == "warehouse_connection_string" else value
            for key, value in settings.items()
        }
        st.dataframe(
            pd.DataFrame({"Setting": list(visible.keys()), "Value": [str(v) for v in visible.values()]}),
            hide_index=True,
            width='stretch'
        )
        st.divider()

    # Data Shape Info
    st.header("📐 Data Shape Information")

    shape_info = []
    for section_name, key in DATASETS.items():
        df = debug_info.get(key)
        if df is not None:
            shape_info.append({
                'Dataset': section_name,
                'Rows': len(df),
                'Columns': len(df.columns),
                'Memory (MB)': round(df.memory_usage(deep=True).sum() / 1024 / 1024, 2)
            })

    if shape_info:
        st.dataframe(pd.DataFrame(shape_info), hide_index=True, width='stretch')
        st.download_button(
            label="📥 Download All Datasets (Excel)",
            data=get_data_as_excel({name: debug_info.get(key) for name, key in DATASETS.items()}),
            file_name="dashboard_datasets.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            key="debug_excel_export"
        )

    st.divider()

    # Column Information
    st.header("📊 Column Information")

    dataset_selector = st.selectbox(
        "Select dataset to inspect:",
        options=list(DATASETS.keys())
    )

    df = debug_info.get(DATASETS[dataset_selector])
    if df is not None:
        col1, col2 = st.columns(2)

        with col1:
            st.subheader("Column Names")
            st.dataframe(pd.DataFrame({'Column': df.columns}), hide_index=True)

        with col2:
            st.subheader("Data Types")
            dtypes_df = pd.DataFrame({
                'Column': df.dtypes.index,
                'Type': df.dtypes.values.astype(str),
                'Non-Null': df.count().values,
                'Null': df.isna().sum().values
            })
            st.dataframe(dtypes_df, hide_index=True)

        st.subheader("Sample Data (First 5 Rows)")
        st.dataframe(df.head(5), width='stretch')
    else:
        st.warning(f"Dataset '{dataset_selector}' not available.")

    st.divider()

    if st.button("🗑️ Clear Cache & Reload Data"):
        st.cache_resource.clear()
        st.success("Cache cleared! Reloading page...")
        st.rerun()
