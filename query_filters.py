"""
Query Filters
=============
Turns user-facing filter values (site names, status labels, ISO dates,
horizon) into the normalised parameter set used by the warehouse queries,
and applies the same filters to fixture data.

Unknown sites pass through unchanged and unknown status labels are dropped,
so a bad filter value never raises.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pandas as pd

from business_rules import SITE_RULES, SNAPSHOT_RULES, WORK_ORDER_RULES, DEFAULT_SETTINGS, get_status_code
from records import Action, to_timestamp

MAX_ROWS_LIMIT = 200000


def _normalize_site(value) -> str:
    """
    Normalise a site label for matching:
    1. Lowercase and strip surrounding whitespace
    2. Treat "AND" and "&" as the same word
    3. Collapse internal whitespace to a single space
    """
    text = str(value).strip().lower()
    text = re.sub(r'\s*&\s*', ' & ', text)
    text = re.sub(r'\band\b', '&', text)
    return re.sub(r'\s+', ' ', text).strip()


def _build_site_lookup():
    lookup = {}
    for site in SITE_RULES["sites"]:
        for label in [site["code"], site["name"]] + site.get("aliases", []):
            lookup.setdefault(_normalize_site(label), site)
    return lookup


_SITE_LOOKUP = _build_site_lookup()


def to_site_code(value):
    """Site name, alias or code -> site code. Unknown values are returned unchanged."""
    if value is None:
        return value
    site = _SITE_LOOKUP.get(_normalize_site(value))
    return site["code"] if site else value


def to_site_name(value):
    """Site code, alias or name -> display name. Unknown values are returned unchanged."""
    if value is None:
        return value
    site = _SITE_LOOKUP.get(_normalize_site(value))
    return site["name"] if site else value


def _as_list(values) -> Optional[List[str]]:
    """Accept a comma-separated string or an iterable; blanks are dropped."""
    if values is None:
        return None
    if isinstance(values, str):
        values = values.split(',')
    cleaned = [str(v).strip() for v in values if v is not None and str(v).strip()]
    return cleaned


def map_sites_to_codes(values) -> Optional[List[str]]:
    values = _as_list(values)
    if values is None:
        return None
    return [to_site_code(v) for v in values]


def map_sites_to_names(values) -> Optional[List[str]]:
    values = _as_list(values)
    if values is None:
        return None
    return [to_site_name(v) for v in values]


def get_site_options() -> List[dict]:
    """Code / name pairs for the site filter, in configuration order."""
    return [{"code": site["code"], "name": site["name"]} for site in SITE_RULES["sites"]]


def map_status_labels_to_codes(labels=None) -> List[int]:
    """
    Status labels -> warehouse status codes.

    No labels means the default WIP statuses. Unknown labels are dropped.
    """
    labels = _as_list(labels)
    if not labels:
        labels = WORK_ORDER_RULES["wip_statuses"]
    codes = [get_status_code(label) for label in labels]
    return [code for code in codes if code is not None]


def parse_horizon(value, default: Optional[int] = None) -> int:
    """Horizon in days; missing or non-numeric values fall back to the default (30)."""
    if default is None:
        default = SNAPSHOT_RULES["default_horizon_days"]
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            return int(float(str(value).strip()))
        except ValueError:
            return default


def parse_iso_date(value) -> Optional[pd.Timestamp]:
    """ISO date string -> Timestamp; blank or unparseable values give None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_timestamp(value)


def parse_max_rows(value, default: Optional[int] = None) -> int:
    """Row cap for warehouse queries, kept between 1 and MAX_ROWS_LIMIT."""
    if default is None:
        default = DEFAULT_SETTINGS["max_work_order_rows"]
    try:
        rows = int(value) if value is not None else default
    except (TypeError, ValueError):
        rows = default
    if rows == 0:
        rows = default
    return max(1, min(rows, MAX_ROWS_LIMIT))


@dataclass(frozen=True)
class QueryFilters:
    site_codes: Optional[Tuple[str, ...]] = None
    status_labels: Tuple[str, ...] = ()
    status_codes: Optional[Tuple[int, ...]] = None
    priority: Optional[str] = None
    date_from: Optional[pd.Timestamp] = None
    date_to: Optional[pd.Timestamp] = None
    horizon_days: int = SNAPSHOT_RULES["default_horizon_days"]
    only_exceptions: bool = False
    max_rows: int = DEFAULT_SETTINGS["max_work_order_rows"]

    @property
    def site_param(self) -> Optional[str]:
        """Comma-joined site codes for STRING_SPLIT, or None for all sites."""
        return ",".join(self.site_codes) if self.site_codes else None

    @property
    def status_param(self) -> Optional[str]:
        return ",".join(str(c) for c in self.status_codes) if self.status_codes else None


def build_query_filters(sites=None, statuses=None, priority=None,
                        date_from=None, date_to=None, horizon=None,
                        only_exceptions=False, max_rows=None) -> QueryFilters:
    """
    Build one normalised filter set from raw user-facing values.

    Args:
        sites: Site names / aliases / codes (list or comma-separated string)
        statuses: Status labels; empty means the WIP statuses
        priority: Single priority label, or None / "All"
        date_from: ISO date, inclusive lower bound on created date
        date_to: ISO date, inclusive upper bound on created date
        horizon: Planning horizon in days
        only_exceptions: Snapshot rows needing action only
        max_rows: Warehouse row cap

    Returns:
        QueryFilters
    """
    site_codes = map_sites_to_codes(sites)

    labels = _as_list(statuses) or list(WORK_ORDER_RULES["wip_statuses"])
    known = [label for label in labels if get_status_code(label) is not None]
    codes = map_status_labels_to_codes(known) if known else []

    if priority is not None and (not str(priority).strip() or str(priority).strip().lower() == "all"):
        priority = None

    if isinstance(only_exceptions, str):
        only_exceptions = only_exceptions.strip().lower() in ("1", "true", "yes")

    return QueryFilters(
        site_codes=tuple(site_codes) if site_codes else None,
        status_labels=tuple(known),
        status_codes=tuple(codes) if codes else None,
        priority=priority,
        date_from=parse_iso_date(date_from),
        date_to=parse_iso_date(date_to),
        horizon_days=parse_horizon(horizon),
        only_exceptions=bool(only_exceptions),
        max_rows=parse_max_rows(max_rows),
    )


# ===== FIXTURE-MODE FILTERING =====

def _site_mask(df: pd.DataFrame, site_codes) -> pd.Series:
    if not site_codes or "site" not in df.columns:
        return pd.Series(True, index=df.index)
    wanted = {to_site_code(code) for code in site_codes}
    return df["site"].map(lambda s: to_site_code(s) in wanted)


def apply_work_order_filters(df: pd.DataFrame, filters: QueryFilters) -> pd.DataFrame:
    """
    Filter a normalised work order frame the way the warehouse query does.

    The created-date range is inclusive of whole days at both ends.
    """
    if df.empty:
        return df

    mask = _site_mask(df, filters.site_codes)
    if filters.status_codes:
        mask &= df["status"].isin(filters.status_labels)
    if filters.priority:
        mask &= df["priority"] == filters.priority
    if filters.date_from is not None:
        mask &= df["created_date"] >= filters.date_from.normalize()
    if filters.date_to is not None:
        mask &= df["created_date"] < filters.date_to.normalize() + pd.Timedelta(days=1)

    return df[mask].reset_index(drop=True)


def apply_snapshot_filters(df: pd.DataFrame, filters: QueryFilters) -> pd.DataFrame:
    """Filter snapshot rows by site and, when asked, drop rows whose action is OK."""
    if df.empty:
        return df

    mask = _site_mask(df, filters.site_codes)
    if filters.only_exceptions and "action" in df.columns:
        mask &= df["action"] != Action.OK.value

    return df[mask].reset_index(drop=True)


def apply_supply_horizon(df: pd.DataFrame, filters: QueryFilters, as_of=None,
                         date_column: str = "eta") -> pd.DataFrame:
    """
    Keep supply (or demand) lines for the filtered sites dated inside the horizon.

    Lines with no date are kept.
    """
    if df.empty:
        return df

    as_of_ts = to_timestamp(as_of) or pd.Timestamp.now()
    horizon_end = as_of_ts.normalize() + pd.Timedelta(days=filters.horizon_days)

    mask = _site_mask(df, filters.site_codes)
    if date_column in df.columns:
        mask &= df[date_column].isna() | (df[date_column] <= horizon_end)

    return df[mask].reset_index(drop=True)
