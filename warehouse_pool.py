"""
Warehouse connection pool.

Holds one cached DB-API connection to the data warehouse and replaces it once
the access token behind it is due for refresh. Nothing here is module-level
state: the dashboard builds a pool and hands it to the `load_*` functions.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

import pandas as pd

TOKEN_REFRESH_INTERVAL = timedelta(minutes=45)  # tokens expire after an hour

CLOSED_CONNECTION_MARKERS = ("connection is closed", "econnclosed", "closed connection", "communication link failure")


def _is_closed_connection_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in CLOSED_CONNECTION_MARKERS)


class WarehousePool:
    """
    Lazily connects through `connection_factory` and reuses the connection
    until `refresh_interval` has passed since it was opened.

    Args:
        connection_factory: Callable returning a new DB-API connection
            (e.g. ``lambda: pyodbc.connect(conn_str, attrs_before=token_attrs)``)
        refresh_interval: Age after which the connection is closed and reopened
        clock: Callable returning the current datetime
    """

    def __init__(self, connection_factory: Callable[[], object],
                 refresh_interval: timedelta = TOKEN_REFRESH_INTERVAL,
                 clock: Callable[[], datetime] = datetime.now):
        self.connection_factory = connection_factory
        self.refresh_interval = refresh_interval
        self.clock = clock
        self._connection = None
        self._opened_at: Optional[datetime] = None

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def needs_refresh(self) -> bool:
        if self._opened_at is None:
            return True
        return self.clock() - self._opened_at > self.refresh_interval

    def connection(self, logs: Optional[List[str]] = None):
        """Return the cached connection, reconnecting when missing or stale."""
        if self._connection is not None and not self.needs_refresh():
            return self._connection

        if self._connection is not None:
            if logs is not None:
                logs.append("INFO: Warehouse token refresh due, reopening connection.")
            self.close(logs)

        self._connection = self.connection_factory()
        self._opened_at = self.clock()
        if logs is not None:
            logs.append("INFO: Connected to warehouse.")
        return self._connection

    def _run(self, query: str, params: Sequence, logs) -> pd.DataFrame:
        cursor = self.connection(logs).cursor()
        try:
            cursor.execute(query, tuple(params))
            columns = [col[0] for col in cursor.description or []]
            rows = [tuple(row) for row in cursor.fetchall()] if columns else []
        finally:
            cursor.close()
        return pd.DataFrame.from_records(rows, columns=columns)

    def execute(self, query: str, params: Sequence = (), logs: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Run a query and return the result set as a DataFrame.

        A closed connection is reopened and the query retried once; any other
        error propagates to the caller.
        """
        try:
            return self._run(query, params, logs)
        except Exception as e:
            if not _is_closed_connection_error(e):
                raise
            if logs is not None:
                logs.append(f"WARNING: Warehouse connection lost ({e}), reconnecting and retrying once.")
            self._connection = None
            self._opened_at = None
            return self._run(query, params, logs)

    def close(self, logs: Optional[List[str]] = None):
        """Close the cached connection. A failing close is logged, the pool is reset either way."""
        connection, self._connection, self._opened_at = self._connection, None, None
        if connection is None:
            return
        try:
            connection.close()
        except Exception as e:
            if logs is not None:
                logs.append(f"WARNING: Error closing warehouse connection: {e}")


def odbc_connection_factory(connection_string: str, timeout: int = 60) -> Callable[[], object]:
    """
    Connection factory for SQL Server / Synapse over ODBC.

    The connection string carries the authentication mode, e.g.
    ``Driver={ODBC Driver 18 for SQL Server};Server=...;Authentication=ActiveDirectoryDefault``.
    """
    def connect():
        import pyodbc
        return pyodbc.connect(connection_string, timeout=timeout)
    return connect


def pool_from_settings(settings) -> Optional[WarehousePool]:
    """WarehousePool for the configured warehouse, or None in fixture mode."""
    if settings.get("use_mock_data", True):
        return None
    connection_string = settings.get("warehouse_connection_string")
    if not connection_string:
        raise ValueError("USE_MOCK_DATA is false but WAREHOUSE_CONNECTION_STRING is not set")
    return WarehousePool(odbc_connection_factory(connection_string, settings.get("warehouse_timeout_seconds", 60)))
