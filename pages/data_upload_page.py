"""
Data Upload Page
Replace the bundled fixture datasets with uploaded JSON or CSV files for this session
"""

import streamlit as st
import pandas as pd
from datetime import datetime
import os
import sys
from io import BytesIO

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from business_rules import DATA_FIELD_DEFINITIONS
from data_loader import missing_required_fields
from file_loader import UPLOAD_STATE_KEY, read_buffer
from records import to_timestamp
from ui_components import render_page_header, render_info_box

UPLOAD_DATASETS = {
    "work_orders": "Work Orders",
    "inventory": "Inventory",
    "supply": "Inbound Supply",
    "demand": "Demand",
    "snapshot": "Current Position (pre-joined)",
}

# Rows that identify one record; duplicates are rejected
UNIQUE_KEYS = {
    "work_orders": ["work_order_id"],
    "inventory": ["item_id", "site", "warehouse"],
    "snapshot": ["item_id", "site", "warehouse"],
}

HISTORY_STATE_KEY = "upload_history"
DETAILS_STATE_KEY = "upload_details"
# Bumped on clear so the file uploaders start empty
GENERATION_STATE_KEY = "upload_generation"


# ===== VALIDATION FUNCTIONS =====

def _column_for(df, field_name, field_def):
    """Column holding a field: its own name first, then its source names."""
    for column in [field_name] + field_def["sources"]:
        if column in df.columns:
            return column
    return None


def _is_blank(value):
    return value is None or (not isinstance(value, str) and pd.isna(value)) or str(value).strip() == ""


def validate_upload(df, dataset):
    """
    Validate an uploaded dataset against its field definitions

    Returns:
        (is_valid, errors_list)
    """
    if dataset not in DATA_FIELD_DEFINITIONS:
        return False, [f"Unknown dataset: {dataset}"]
    if df.empty:
        return False, ["File has no rows"]

    errors = []
    missing = missing_required_fields(df, dataset)
    if missing:
        errors.append(f"Missing required columns: {', '.join(missing)}")

    fields = DATA_FIELD_DEFINITIONS[dataset]["fields"]
    for field_name, field_def in fields.items():
        column = _column_for(df, field_name, field_def)
        if column is None:
            continue
        values = df[column][~df[column].map(_is_blank)]

        if field_def["data_type"] in ("numeric", "nullable_numeric"):
            bad = pd.to_numeric(values, errors="coerce").isna().sum()
            if bad:
                errors.append(f"Column '{column}' contains {bad} non-numeric values")
        elif field_def["data_type"] == "date":
            bad = sum(1 for value in values if to_timestamp(value) is None)
            if bad:
                errors.append(f"Column '{column}' contains {bad} unreadable dates")

    key_columns = [_column_for(df, name, fields[name]) for name in UNIQUE_KEYS.get(dataset, [])]
    key_columns = [c for c in key_columns if c is not None]
    if key_columns and not missing:
        duplicates = df.duplicated(subset=key_columns)
        if duplicates.any():
            errors.append(f"Found {duplicates.sum()} duplicate {' + '.join(key_columns)} rows")

    return len(errors) == 0, errors


def create_template(dataset):
    """Header-only CSV template using the warehouse column names"""
    definition = DATA_FIELD_DEFINITIONS.get(dataset)
    if not definition:
        return None

    columns = [field_def["sources"][0] for field_def in definition["fields"].values()]
    output = BytesIO()
    pd.DataFrame(columns=columns).to_csv(output, index=False)
    output.seek(0)
    return output


def store_upload(session_state, dataset, buffer, rows, now=None):
    """Keep a validated buffer under its dataset key and record it in the history"""
    now = now or datetime.now()
    session_state.setdefault(UPLOAD_STATE_KEY, {})[dataset] = buffer
    session_state.setdefault(DETAILS_STATE_KEY, {})[dataset] = {
        'file': getattr(buffer, 'name', dataset),
        'rows': rows,
        'timestamp': now,
    }
    session_state.setdefault(HISTORY_STATE_KEY, []).append({
        'timestamp': now.strftime("%Y-%m-%d %H:%M:%S"),
        'dataset': UPLOAD_DATASETS.get(dataset, dataset),
        'status': 'Success',
        'rows': rows,
    })


def clear_uploads(session_state):
    session_state[UPLOAD_STATE_KEY] = {}
    session_state[DETAILS_STATE_KEY] = {}
    session_state[GENERATION_STATE_KEY] = session_state.get(GENERATION_STATE_KEY, 0) + 1


# ===== MAIN RENDER FUNCTION =====

def render_data_upload_page(mock_mode=True):
    """Main data upload page render function"""

    render_page_header(
        "Data Upload",
        icon="📤",
        subtitle="Replace the bundled datasets with your own files for this session"
    )

    if not mock_mode:
        render_info_box("Uploads only replace fixture data. The dashboard is reading from the warehouse.", type="warning")

    for key, default in ((UPLOAD_STATE_KEY, {}), (DETAILS_STATE_KEY, {}), (HISTORY_STATE_KEY, [])):
        if key not in st.session_state:
            st.session_state[key] = default

    with st.expander("📖 Instructions", expanded=False):
        st.markdown("""
        1. **Download Template** for the dataset you want to replace
        2. **Fill it in** with warehouse column names as headers (JSON arrays of row objects also work)
        3. **Upload** the file; it is validated before it replaces the bundled data
        4. **Refresh Data** in the sidebar to reload every page

        Without a pre-joined Current Position upload, the position is rebuilt from
        inventory, supply and demand.
        """)

    st.divider()

    uploaded = st.session_state[UPLOAD_STATE_KEY]
    details = st.session_state[DETAILS_STATE_KEY]

    for dataset, display_name in UPLOAD_DATASETS.items():
        with st.expander(f"{'✅' if dataset in uploaded else '⭕'} {display_name}", expanded=dataset in uploaded):
            st.caption(DATA_FIELD_DEFINITIONS[dataset]["file_description"])

            col1, col2 = st.columns([3, 1])

            with col1:
                uploaded_file = st.file_uploader(
                    f"Upload {display_name}",
                    type=['json', 'csv'],
                    key=f"upload_{dataset}_{st.session_state.get(GENERATION_STATE_KEY, 0)}",
                    label_visibility="collapsed"
                )

            with col2:
                st.download_button(
                    label="📥 Template",
                    data=create_template(dataset),
                    file_name=f"TEMPLATE_{DATA_FIELD_DEFINITIONS[dataset]['fixture_file']}.csv",
                    mime="text/csv",
                    key=f"template_{dataset}",
                    width='stretch'
                )

            if uploaded_file is not None:
                try:
                    df = read_buffer(uploaded_file)
                except ValueError as e:
                    st.error(f"❌ Error reading file: {e}")
                    continue

                is_valid, errors = validate_upload(df, dataset)
                if is_valid:
                    if details.get(dataset, {}).get('file') != uploaded_file.name:
                        store_upload(st.session_state, dataset, uploaded_file, len(df))
                    st.success(f"✅ File validated successfully! Loaded {len(df):,} rows")
                    st.caption("Preview (first 5 rows)")
                    st.dataframe(df.head(), width='stretch')
                else:
                    st.error("❌ Validation failed:")
                    for error in errors:
                        st.error(f"  • {error}")

            elif dataset in details:
                info = details[dataset]
                st.info(f"ℹ️ Currently loaded: {info['rows']:,} rows from {info['file']} "
                        f"(uploaded {info['timestamp'].strftime('%Y-%m-%d %H:%M:%S')})")

    st.divider()

    st.subheader("📊 Data Status")
    if details:
        st.dataframe(
            pd.DataFrame([
                {
                    'Dataset': UPLOAD_DATASETS[dataset],
                    'File': info['file'],
                    'Rows': f"{info['rows']:,}",
                    'Last Updated': info['timestamp'].strftime('%Y-%m-%d %H:%M:%S'),
                }
                for dataset, info in details.items()
            ]),
            hide_index=True,
            width='stretch'
        )
    else:
        st.info("No files uploaded yet, the bundled datasets are in use")

    if st.button("🗑️ Clear All Uploads", help="Return to the bundled datasets"):
        clear_uploads(st.session_state)
        st.success("✅ All uploads cleared!")
        st.rerun()

    st.divider()

    st.subheader("📜 Upload History")
    st.caption("Last 10 uploads")
    history = st.session_state[HISTORY_STATE_KEY]
    if history:
        history_df = pd.DataFrame(history[-10:])[['timestamp', 'dataset', 'status', 'rows']]
        history_df.columns = ['Timestamp', 'Dataset', 'Status', 'Rows']
        st.dataframe(history_df, hide_index=True, width='stretch')
    else:
        st.info("No upload history yet")

    st.divider()
    st.caption("**Note:** Uploaded data is kept in session state and is cleared when the browser session ends.")
