"""
UI Components Module
Modular, reusable UI components for the Service Inventory Dashboard
KPI card view-models, formatters and colours live here so pages stay thin
"""

import io
import math

import pandas as pd
import streamlit as st

from business_rules import AGEING_RULES, PRIORITY_COLORS, SNAPSHOT_RULES

FALLBACK_COLOR = AGEING_RULES["fallback_color"]

# ===== UI LAYOUT HELPERS =====

def render_page_header(title, icon="📦", subtitle=None):
    """Render consistent page headers"""
    st.title(f"{icon} {title}")
    if subtitle:
        st.caption(subtitle)
    st.divider()

def render_kpi_row(metrics_dict):
    """
    Render a row of KPI metrics

    Args:
        metrics_dict: Dict with format {"Label": {"value": "123", "delta": "+5", "help": "Help text"}}
    """
    cols = st.columns(len(metrics_dict))
    for idx, (label, data) in enumerate(metrics_dict.items()):
        with cols[idx]:
            # Normalize empty / None metric values so the UI doesn't render blank cards
            raw_value = data.get("value", "N/A")
            if raw_value is None or (isinstance(raw_value, str) and str(raw_value).strip() == ""):
                display_value = "N/A"
            else:
                display_value = raw_value

            st.metric(
                label=label,
                value=display_value,
                delta=data.get("delta"),
                delta_color=data.get("delta_color", "normal"),
                help=data.get("help")
            )

def render_data_table(df, title=None, max_rows=100, downloadable=True, download_filename="data.csv"):
    """
    Render a data table with optional download

    Args:
        df: Pandas DataFrame
        title: Optional section title
        max_rows: Maximum rows to display
        downloadable: Show download button
        download_filename: Name for downloaded file
    """
    if title:
        st.subheader(title)

    if df.empty:
        st.info("No data available")
        return

    st.dataframe(df.head(max_rows), width='stretch')

    if len(df) > max_rows:
        st.caption(f"Showing first {max_rows} of {len(df)} records")

    if downloadable:
        csv = df.to_csv(index=False).encode('utf-8')
        # Use id() to ensure unique key even if filename is the same
        unique_key = f"download_{download_filename}_{id(df)}"
        st.download_button(
            label="📥 Download Full Data",
            data=csv,
            file_name=download_filename,
            mime="text/csv",
            key=unique_key
        )

def render_chart(fig, title=None, height=400):
    """
    Render a Plotly chart with consistent styling

    Args:
        fig: Plotly figure object
        title: Optional chart title
        height: Chart height in pixels
    """
    if title:
        st.subheader(title)

    fig.update_layout(
        height=height,
        margin=dict(l=20, r=20, t=40, b=20),
        template="plotly_white"
    )

    st.plotly_chart(fig, width='stretch')

def render_info_box(message, type="info"):
    """
    Render an info/warning/error box

    Args:
        message: Message to display
        type: "info", "warning", "error", "success"
    """
    if type == "info":
        st.info(message)
    elif type == "warning":
        st.warning(message)
    elif type == "error":
        st.error(message)
    elif type == "success":
        st.success(message)

def render_section_header(title, description=None):
    """Render a section header with optional description"""
    st.subheader(title)
    if description:
        st.caption(description)

def render_breakdown(breakdown, value_format="integer"):
    """Render a KPI breakdown as a compact 'key: value' caption line"""
    if not breakdown:
        return
    parts = [f"{key}: {format_number(val, value_format)}" for key, val in breakdown.items()]
    st.caption(" · ".join(parts))

# ===== NAVIGATION HELPERS =====

def get_main_navigation():
    """
    Define main navigation menu structure
    Returns list of menu items with page info
    """
    return [
        {
            "id": "overview",
            "label": "📊 Overview",
            "description": "Work order and inventory KPIs"
        },
        {
            "id": "work_orders",
            "label": "🛠️ Work Orders",
            "description": "Open work orders, ageing, costs and SLA"
        },
        {
            "id": "snapshot",
            "label": "📦 Current Position",
            "description": "Per-item stock position and recommended action"
        },
        {
            "id": "upload",
            "label": "📤 Data Upload",
            "description": "Replace bundled datasets with uploaded files"
        },
        {
            "id": "debug",
            "label": "🔧 Debug & Logs",
            "description": "Loader logs, settings and raw data"
        }
    ]

def render_navigation():
    """
    Render main navigation menu in sidebar
    Returns selected page ID
    """
    st.sidebar.title("🛠️ Service Inventory")
    st.sidebar.caption("Work Orders & Current Position")
    st.sidebar.divider()

    menu_items = get_main_navigation()

    selected = st.sidebar.radio(
        "Navigation",
        options=[item["label"] for item in menu_items],
        key="main_nav"
    )

    selected_page = next((item for item in menu_items if item["label"] == selected), None)

    if selected_page:
        st.sidebar.caption(selected_page["description"])

    st.sidebar.divider()

    return selected_page["id"] if selected_page else "overview"

# ===== DATA STATUS INDICATOR =====

def render_data_status(data_load_time=None, record_count=None, mock_mode=True):
    """Render data status indicator"""
    st.sidebar.divider()
    st.sidebar.caption("📊 Data Status")

    if data_load_time:
        st.sidebar.caption(f"Last Updated: {data_load_time.strftime('%H:%M:%S')}")

    if record_count:
        st.sidebar.caption(f"Records: {record_count:,}")

    if mock_mode:
        st.sidebar.info("Using fixture data")
    else:
        st.sidebar.success("✓ Connected to warehouse")

# ===== UTILITY FORMATTERS =====

def _is_missing(value):
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False

def format_number(value, format_type="integer"):
    """Format numbers consistently"""
    if _is_missing(value):
        return "N/A"

    formats = {
        'integer': '{:,.0f}',
        'currency': '${:,.0f}',
        'percentage': '{:.1f}%',
        'decimal': '{:.2f}',
        'days': '{:.1f} days'
    }

    try:
        return formats.get(format_type, '{}').format(value)
    except (TypeError, ValueError):
        return str(value)

def format_compact_number(value):
    """
    Format numbers compactly for KPI cards: 1234 -> 1K, 1234567 -> 1M.
    Values above a thousand are rounded to whole units.
    """
    if _is_missing(value):
        return '0'

    abs_value = abs(value)
    sign = '-' if value < 0 else ''

    if abs_value < 1000:
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    for threshold, suffix in ((1e12, 'T'), (1e9, 'B'), (1e6, 'M'), (1e3, 'K')):
        if abs_value >= threshold:
            return f"{sign}{int(math.floor(abs_value / threshold + 0.5))}{suffix}"

    return f"{sign}{abs_value}"

def format_compact_currency(value, currency="AUD"):
    """Compact number with a currency symbol prefix"""
    symbols = {'AUD': '$', 'USD': '$', 'EUR': '€', 'GBP': '£'}
    return symbols.get(currency, '$') + format_compact_number(value)

def format_cover_days(cover_days):
    """Cover days for tables: '-' when unknown, '∞' beyond the display cap"""
    if _is_missing(cover_days):
        return '-'
    if cover_days == 0:
        return '0d'
    if cover_days > SNAPSHOT_RULES["max_display_cover_days"]:
        return '∞'
    return f"{int(math.floor(cover_days + 0.5))}d"

def format_date(date_value, format_str='%b %d, %Y'):
    """Format dates consistently"""
    if _is_missing(date_value) or date_value == '':
        return '-'

    if isinstance(date_value, str):
        parsed = pd.to_datetime(date_value, errors='coerce')
        if pd.isna(parsed):
            return '-'
        date_value = parsed

    try:
        return date_value.strftime(format_str)
    except (AttributeError, ValueError):
        return str(date_value)

# ===== COLOURS & LABELS =====

def get_action_color(action):
    return SNAPSHOT_RULES["action_colors"].get(str(action), FALLBACK_COLOR)

def get_action_label(action):
    """Planner-facing label for an action (RaisePO shows as Order/Transfer)"""
    return SNAPSHOT_RULES["action_labels"].get(str(action), str(action))

def get_ageing_bucket_color(bucket_index):
    colors = AGEING_RULES["colors"]
    if bucket_index is None or not 0 <= bucket_index < len(colors):
        return FALLBACK_COLOR
    return colors[bucket_index]

def get_priority_color(priority):
    return PRIORITY_COLORS.get(str(priority), FALLBACK_COLOR)

# ===== KPI CARD VIEW-MODELS =====

def _format_value(value, format_type):
    if format_type == 'compact':
        return format_compact_number(value)
    if format_type == 'compact_currency':
        return format_compact_currency(value)
    return format_number(value, format_type)

def _format_delta(delta):
    if _is_missing(delta):
        return None
    if float(delta).is_integer():
        return f"{int(delta):+,}"
    return f"{delta:+,.1f}"

def build_kpi_card(kpi, format_type="integer", hint=None, higher_is_better=False):
    """
    Turn a KpiResult into the dict consumed by render_kpi_row.

    Args:
        kpi: KpiResult
        format_type: 'integer', 'currency', 'percentage', 'decimal', 'days',
            'compact' or 'compact_currency'
        hint: Help text describing how the KPI is calculated
        higher_is_better: Colour an increase green instead of red

    Returns:
        dict: {"value", "delta", "delta_color", "help"}
    """
    help_parts = [part for part in (kpi.caption, hint) if part]
    return {
        "value": _format_value(kpi.value, format_type),
        "delta": _format_delta(kpi.delta),
        "delta_color": "normal" if higher_is_better else "inverse",
        "help": "\n\n".join(help_parts) if help_parts else None,
    }

def build_open_work_orders_card(open_kpi, trend):
    """Open work order count with the weekly net change (opened - closed) as delta"""
    net_change = trend.extras.get("net_change", 0) if trend is not None else 0
    opens = trend.extras.get("opens_this_week", 0) if trend is not None else 0
    closes = trend.extras.get("closed_this_week", 0) if trend is not None else 0
    return {
        "value": format_number(open_kpi.value, "integer"),
        "delta": f"{net_change:+,} this week" if net_change else None,
        "delta_color": "inverse",
        "help": f"{open_kpi.caption}. {opens} opened and {closes} closed in the last 7 days.",
    }

# ===== EXCEL EXPORT =====

def get_data_as_excel(sheets):
    """
    Write several DataFrames to one workbook and return the bytes for download.

    Args:
        sheets: Dict of {"sheet name": DataFrame}; empty or missing frames are skipped

    Returns:
        bytes of an .xlsx file
    """
    output = io.BytesIO()

    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        header_format = writer.book.add_format({'bold': True, 'bg_color': '#e9ecef', 'border': 1})

        for sheet_name, df in sheets.items():
            if not isinstance(df, pd.DataFrame) or df.empty:
                continue

            export_df = df
            date_columns = [col for col in df.columns if pd.api.types.is_datetime64_any_dtype(df[col])]
            if date_columns:
                export_df = df.copy()
                for col in date_columns:
                    export_df[col] = export_df[col].dt.strftime('%Y-%m-%d')

            # Excel caps sheet names at 31 characters
            sheet = sheet_name[:31]
            export_df.to_excel(writer, sheet_name=sheet, index=False)
            worksheet = writer.sheets[sheet]
            for idx, col in enumerate(export_df.columns):
                worksheet.write(0, idx, col, header_format)
                worksheet.set_column(idx, idx, max(12, min(40, len(str(col)) + 2)))

    return output.getvalue()
