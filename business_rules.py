"""
Business Rules Configuration
Centralized definitions for statuses, thresholds, site aliases and field mappings.
Rules are changed here in one place without modifying calculation or page code.
"""

import os
from datetime import datetime

# ===== WORK ORDER RULES =====

WORK_ORDER_RULES = {
    "statuses": ["Unscheduled", "Scheduled", "InProgress", "Completed", "Posted", "Canceled"],

    # Open / in-flight jobs. Used for open counts, ageing and cost rollups.
    "wip_statuses": ["Unscheduled", "Scheduled", "InProgress", "Completed"],

    # Only Posted is financially settled
    "settled_statuses": ["Posted"],

    # Statuses that carry a real completion date for SLA purposes
    "sla_statuses": ["Completed", "Posted"],

    # D365 msdyn_systemstatus option-set values
    "status_codes": {
        "Unscheduled": 690970000,
        "Scheduled": 690970001,
        "InProgress": 690970002,
        "Completed": 690970003,
        "Posted": 690970004,
        "Canceled": 690970005,
    },

    "priorities": ["Critical", "High", "Normal", "Low"],
    "default_priority": "Normal",

    "service_types": ["Internal", "External", "Warranty"],
    "default_service_type": "Internal",

    "trend_window_days": 7,       # rolling "this week" window
    "resolution_trend_weeks": 4,  # trailing weeks shown on resolution trend
}


# ===== AGEING RULES =====

AGEING_RULES = {
    # Half-open ranges: min_days <= age < max_days. Last bucket has no upper bound.
    "buckets": [
        {"label": "0-14 days", "min_days": 0, "max_days": 14},
        {"label": "14-30 days", "min_days": 14, "max_days": 30},
        {"label": "30-60 days", "min_days": 30, "max_days": 60},
        {"label": ">60 days", "min_days": 60, "max_days": None},
    ],
    "colors": ["#10b981", "#f59e0b", "#ef4444", "#991b1b"],
    "fallback_color": "#6b7280",
}


# ===== SNAPSHOT / REPLENISHMENT RULES =====

SNAPSHOT_RULES = {
    "default_horizon_days": 30,

    # An inbound ETA further out than this does not rescue a short item
    "critical_eta_days": 7,

    # Full action taxonomy. Transfer and Reallocate are valid values that the
    # current classification never produces.
    "actions": ["OK", "Expedite", "Transfer", "RaisePO", "Reallocate"],
    "reachable_actions": ["OK", "Expedite", "RaisePO"],

    "action_colors": {
        "OK": "#10b981",
        "Expedite": "#f59e0b",
        "Transfer": "#06b6d4",
        "RaisePO": "#ef4444",
        "Reallocate": "#8b5cf6",
    },
    "action_labels": {
        "RaisePO": "Order/Transfer",
    },

    # Cover days above this render as infinite
    "max_display_cover_days": 999,

    "supply_sources": ["PO", "TransferOrder"],
    "demand_types": ["WorkOrder", "Sales", "Reservation", "Internal"],
}


PRIORITY_COLORS = {
    "Critical": "#dc2626",
    "High": "#ea580c",
    "Normal": "#65a30d",
    "Low": "#6b7280",
}


# ===== SITE RULES =====

SITE_RULES = {
    "unknown_site": "UNKNOWN",

    # Many-to-one alias table. Matching ignores case, surrounding whitespace and
    # the "AND" / "&" spelling.
    "sites": [
        {"code": "L-QLD", "name": "QLD SALES & SERVICE",
         "aliases": ["QLD SERVICE"]},
        {"code": "L-VIC", "name": "VICTORIA SALES & SERVICE",
         "aliases": ["VIC SALES & SERVICE", "VICTORIA SERVICE"]},
        {"code": "L-NSW", "name": "NSW SALES & SERVICE",
         "aliases": ["NEW SOUTH WALES SALES & SERVICE", "NSW SERVICE"]},
        {"code": "L-FBK", "name": "FAIRBANK SALES & SERVICE",
         "aliases": ["FAIRBANK SERVICE"]},
        {"code": "L-SAU", "name": "SA SALES & SERVICE",
         "aliases": ["SOUTH AUSTRALIA SALES & SERVICE", "SA SERVICE"]},
        {"code": "L-BEN", "name": "BENDIGO SALES & SERVICE",
         "aliases": ["BENDIGO SERVICE"]},
        {"code": "L-SUN", "name": "SUNSHINE SALES & SERVICE",
         "aliases": ["SUNSHINE", "SUNSHINE SERVICE"]},
        {"code": "L-WAU", "name": "WA SALES & SERVICE",
         "aliases": ["WA SALES", "WESTERN AUSTRALIA SALES & SERVICE", "WA SERVICE"]},
    ],
}


# ===== DATA FIELD DEFINITIONS =====
# Standard column -> list of source column names seen in warehouse rows and fixtures.

DATA_FIELD_DEFINITIONS = {
    "work_orders": {
        "file_description": "Service work orders (msdyn_workorder)",
        "fixture_file": "work-orders",
        "fields": {
            "work_order_id": {"sources": ["WorkOrderId", "msdyn_name"], "data_type": "string", "required": True},
            "status": {"sources": ["Status"], "data_type": "string", "required": True},
            "priority": {"sources": ["Priority"], "data_type": "string", "required": False},
            "service_type": {"sources": ["ServiceType"], "data_type": "string", "required": False},
            "site": {"sources": ["Site", "SiteName"], "data_type": "string", "required": False},
            "technician": {"sources": ["Technician"], "data_type": "string", "required": False},
            "created_date": {"sources": ["CreatedDate", "createdon"], "data_type": "date", "required": True},
            "start_date": {"sources": ["StartDate"], "data_type": "date", "required": False},
            "promised_date": {"sources": ["PromisedDate"], "data_type": "date", "required": False},
            "closed_date": {"sources": ["ClosedDate"], "data_type": "date", "required": False},
            "wip_value": {"sources": ["WIPValue", "WipValue"], "data_type": "numeric", "required": False},
            "total_parts_cost": {"sources": ["TotalPartsCost"], "data_type": "numeric", "required": False},
            "total_labour_cost": {"sources": ["TotalLabourCost"], "data_type": "numeric", "required": False},
            "gross_margin": {"sources": ["GrossMargin"], "data_type": "numeric", "required": False},
            "total_amount": {"sources": ["TotalAmount"], "data_type": "numeric", "required": False},
            "age_days": {"sources": ["AgeDays"], "data_type": "nullable_numeric", "required": False},
        },
    },

    "inventory": {
        "file_description": "Warehouse on-hand positions with safety stock settings",
        "fixture_file": "inventory",
        "fields": {
            "item_id": {"sources": ["ItemId", "ItemNumber"], "data_type": "string", "required": True},
            "item_name": {"sources": ["ItemName"], "data_type": "string", "required": False},
            "site": {"sources": ["Site", "SiteID"], "data_type": "string", "required": True},
            "warehouse": {"sources": ["Warehouse", "WarehouseID"], "data_type": "string", "required": False},
            "on_hand": {"sources": ["OnHand", "WarehouseOnHand"], "data_type": "numeric", "required": True},
            "available": {"sources": ["Available"], "data_type": "nullable_numeric", "required": False},
            "safety_stock": {"sources": ["SafetyStock", "CurrentSafetyStock"], "data_type": "numeric", "required": False},
            "min_on_hand": {"sources": ["MinOnHand", "CurrentMinOnHand"], "data_type": "numeric", "required": False},
            "avg_daily_demand": {"sources": ["AvgDailyDemand", "WarehouseAvgDailyDemand"],
                                 "data_type": "nullable_numeric", "required": False},
        },
    },

    "supply": {
        "file_description": "Inbound purchase order and transfer order lines",
        "fixture_file": "supply",
        "fields": {
            "item_id": {"sources": ["ItemId"], "data_type": "string", "required": True},
            "site": {"sources": ["Site"], "data_type": "string", "required": True},
            "source": {"sources": ["Source"], "data_type": "string", "required": False},
            "ref": {"sources": ["Ref"], "data_type": "string", "required": False},
            "qty": {"sources": ["Qty"], "data_type": "numeric", "required": True},
            "eta": {"sources": ["ETA", "Eta"], "data_type": "date", "required": False},
        },
    },

    "demand": {
        "file_description": "Outbound demand lines (work orders, sales, reservations)",
        "fixture_file": "demand",
        "fields": {
            "item_id": {"sources": ["ItemId"], "data_type": "string", "required": True},
            "site": {"sources": ["Site"], "data_type": "string", "required": True},
            "demand_type": {"sources": ["DemandType"], "data_type": "string", "required": False},
            "ref": {"sources": ["Ref"], "data_type": "string", "required": False},
            "qty": {"sources": ["Qty"], "data_type": "numeric", "required": True},
            "need_by": {"sources": ["NeedBy"], "data_type": "date", "required": False},
        },
    },

    "snapshot": {
        "file_description": "Pre-joined inventory / supply / demand position per item and warehouse",
        "fixture_file": "snapshot",
        "fields": {
            "item_id": {"sources": ["ItemId", "ItemNumber"], "data_type": "string", "required": True},
            "item_name": {"sources": ["ItemName"], "data_type": "string", "required": False},
            "site": {"sources": ["Site", "SiteID"], "data_type": "string", "required": True},
            "warehouse": {"sources": ["Warehouse", "WarehouseID"], "data_type": "string", "required": False},
            "on_hand": {"sources": ["OnHand"], "data_type": "numeric", "required": True},
            "available": {"sources": ["Available"], "data_type": "nullable_numeric", "required": False},
            "safety_stock": {"sources": ["SafetyStock"], "data_type": "numeric", "required": False},
            "min_on_hand": {"sources": ["MinOnHand"], "data_type": "numeric", "required": False},
            "inbound_qty": {"sources": ["InboundQty"], "data_type": "numeric", "required": False},
            "next_eta": {"sources": ["NextETA", "NextEta"], "data_type": "date", "required": False},
            "demand_qty": {"sources": ["DemandQty"], "data_type": "numeric", "required": False},
            "avg_daily_demand": {"sources": ["AvgDailyDemand"], "data_type": "nullable_numeric", "required": False},
        },
    },
}


# ===== CALCULATED FIELDS =====

CALCULATED_FIELDS = {
    "gap": {
        "name": "Gap",
        "formula": "max(0, demand_qty - (on_hand + inbound_qty))",
        "description": "Shortfall of on-hand plus inbound supply against demand inside the horizon",
        "notes": "Never negative",
    },
    "cover_days": {
        "name": "Cover Days",
        "formula": "(on_hand + inbound_qty) / avg_daily_demand",
        "description": "Days current usable stock lasts at average daily demand",
        "notes": "Unknown (blank) when avg_daily_demand is zero or missing",
    },
    "action": {
        "name": "Recommended Action",
        "formula": "(below threshold OR gap > 0) AND (threshold > 0 OR demand > 0) -> Expedite if inbound else RaisePO",
        "description": "Planner-facing recommendation per item",
        "notes": "Threshold is safety stock, or min on-hand when safety stock is zero. "
                 "Available quantity is used when present, otherwise on-hand.",
    },
    "age_days": {
        "name": "Work Order Age",
        "formula": "closed_date (or today) - created_date",
        "description": "Whole days a work order has been open",
        "notes": "Floored at 0",
    },
    "resolution_days": {
        "name": "Resolution Time",
        "formula": "closed_date - start_date",
        "description": "Whole days from first arrival to completion for posted work orders",
        "notes": "Orders without a start date are excluded",
    },
    "on_time": {
        "name": "SLA On-Time Flag",
        "formula": "closed_date <= promised_date",
        "description": "Completed or posted work order finished on or before its promised date",
        "notes": "Compared at day granularity",
    },
}


# ===== DEPLOYMENT SETTINGS =====

DEFAULT_SETTINGS = {
    "use_mock_data": True,
    "data_dir": "data",
    "default_horizon_days": SNAPSHOT_RULES["default_horizon_days"],
    "data_area_id": "mau1",
    "snapshot_view": "bm.vw_ServiceInventorySnapshot_AU",
    "work_orders_source": "dbo.msdyn_workorder",
    "timezone": "Australia/Brisbane",
    "max_work_order_rows": 10000,
    "warehouse_connection_string": None,
    "warehouse_timeout_seconds": 60,
}


# ===== HELPER FUNCTIONS =====

def get_settings(environ=None):
    """
    Build deployment settings from environment variables over the defaults.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Dictionary of settings
    """
    env = os.environ if environ is None else environ
    settings = dict(DEFAULT_SETTINGS)

    if "USE_MOCK_DATA" in env:
        settings["use_mock_data"] = str(env["USE_MOCK_DATA"]).strip().lower() in ("1", "true", "yes")
    if env.get("DASHBOARD_DATA_DIR"):
        settings["data_dir"] = env["DASHBOARD_DATA_DIR"]
    if env.get("DEFAULT_HORIZON_DAYS"):
        try:
            settings["default_horizon_days"] = int(env["DEFAULT_HORIZON_DAYS"])
        except ValueError:
            pass  # keep default
    if env.get("SNAPSHOT_VIEW"):
        settings["snapshot_view"] = env["SNAPSHOT_VIEW"]
    if env.get("WORK_ORDERS_SOURCE"):
        settings["work_orders_source"] = env["WORK_ORDERS_SOURCE"]
    if env.get("DASHBOARD_TIMEZONE"):
        settings["timezone"] = env["DASHBOARD_TIMEZONE"]
    if env.get("WAREHOUSE_CONNECTION_STRING"):
        settings["warehouse_connection_string"] = env["WAREHOUSE_CONNECTION_STRING"]

    return settings


def get_ageing_bucket_index(age_days):
    """
    Find the ageing bucket an age falls into.

    Args:
        age_days: Work order age in days

    Returns:
        Bucket index, or None when the age is unknown
    """
    if age_days is None or age_days != age_days:  # NaN check
        return None

    for idx, bucket in enumerate(AGEING_RULES["buckets"]):
        upper = bucket["max_days"]
        if age_days >= bucket["min_days"] and (upper is None or age_days < upper):
            return idx

    # Negative ages are floored upstream; treat anything left as newest
    return 0


def get_status_code(status_label):
    """Return the warehouse status code for a label, or None if unknown."""
    return WORK_ORDER_RULES["status_codes"].get(status_label)


def get_status_label(status_code):
    """Reverse lookup of a warehouse status code. Unknown codes map to Unscheduled."""
    for label, code in WORK_ORDER_RULES["status_codes"].items():
        if code == status_code:
            return label
    return "Unscheduled"


def is_wip_status(status):
    return status in WORK_ORDER_RULES["wip_statuses"]


# ===== DOCUMENTATION EXPORT =====

def export_business_rules_documentation(output_path="BUSINESS_RULES_DOCUMENTATION.md"):
    """
    Export all business rules to a markdown documentation file.

    Args:
        output_path: Path for the output markdown file
    """
    with open(output_path, 'w') as f:
        f.write("# Business Rules Documentation\n\n")
        f.write("Auto-generated documentation of dashboard business rules and field mappings.\n\n")
        f.write(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n\n")

        f.write("---\n\n")
        f.write("## Data Field Definitions\n\n")

        for dataset, dataset_info in DATA_FIELD_DEFINITIONS.items():
            f.write(f"### {dataset}\n\n")
            f.write(f"**Description:** {dataset_info['file_description']}\n\n")
            f.write("| Field | Source Columns | Data Type | Required |\n")
            f.write("|-------|----------------|-----------|----------|\n")

            for field_name, field_def in dataset_info['fields'].items():
                sources = ", ".join(field_def['sources'])
                f.write(f"| {field_name} | {sources} | {field_def['data_type']} | {field_def['required']} |\n")
            f.write("\n")

        f.write("---\n\n")
        f.write("## Calculated Fields\n\n")

        for field_info in CALCULATED_FIELDS.values():
            f.write(f"### {field_info['name']}\n\n")
            f.write(f"**Formula:** `{field_info['formula']}`\n\n")
            f.write(f"**Description:** {field_info['description']}\n\n")
            if 'notes' in field_info:
                f.write(f"**Notes:** {field_info['notes']}\n\n")

        f.write("---\n\n")
        f.write("## Business Rule Configurations\n\n")

        f.write("### Work Order Rules\n\n")
        f.write(f"```python\n{WORK_ORDER_RULES}\n```\n\n")

        f.write("### Ageing Buckets\n\n")
        f.write("| Bucket | From (days) | To (days, exclusive) |\n")
        f.write("|--------|-------------|----------------------|\n")
        for bucket in AGEING_RULES["buckets"]:
            upper = bucket["max_days"] if bucket["max_days"] is not None else "-"
            f.write(f"| {bucket['label']} | {bucket['min_days']} | {upper} |\n")
        f.write("\n")

        f.write("### Snapshot Rules\n\n")
        f.write(f"```python\n{SNAPSHOT_RULES}\n```\n\n")

        f.write("### Sites\n\n")
        f.write("| Code | Name | Aliases |\n")
        f.write("|------|------|---------|\n")
        for site in SITE_RULES["sites"]:
            f.write(f"| {site['code']} | {site['name']} | {', '.join(site.get('aliases', []))} |\n")
        f.write("\n")


if __name__ == "__main__":
    # Export documentation when run directly
    export_business_rules_documentation()
    print("Business rules documentation exported to BUSINESS_RULES_DOCUMENTATION.md")
