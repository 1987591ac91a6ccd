"""
Helper module to read fixture files (JSON or CSV) from disk, or from buffers the
Data Upload page stores in st.session_state['uploaded_files'] under the dataset key
('work_orders', 'inventory', 'supply', 'demand', 'snapshot').
"""
import json
import os

import pandas as pd
import streamlit as st

FIXTURE_EXTENSIONS = (".json", ".csv")
UPLOAD_STATE_KEY = "uploaded_files"


def get_uploaded_files():
    """Uploaded buffers by dataset key; empty outside a Streamlit script run."""
    try:
        return st.session_state.get(UPLOAD_STATE_KEY, {})
    except (AttributeError, RuntimeError):
        return {}


def has_upload(file_key: str) -> bool:
    return file_key in get_uploaded_files()


def get_file_source(file_key: str, file_path: str):
    """
    Returns a file-like object or path for reading a fixture.

    Priority:
    1. If uploaded file exists in session_state.uploaded_files, use that buffer
    2. Otherwise, use the file_path on disk

    Args:
        file_key: dataset key in st.session_state.uploaded_files (e.g., 'work_orders', 'inventory')
        file_path: fallback file path

    Returns:
        tuple: (source, is_uploaded) where source is file-like or path, is_uploaded is bool
    """
    uploaded_files = get_uploaded_files()

    if file_key in uploaded_files:
        return uploaded_files[file_key], True
    elif file_path and os.path.isfile(os.path.abspath(file_path)):
        return file_path, False
    else:
        return None, False


def find_fixture(data_dir: str, base_name: str):
    """
    Locate `<base_name>.json` or `<base_name>.csv` in data_dir (JSON wins).

    Returns:
        Path of the first match, or None
    """
    for ext in FIXTURE_EXTENSIONS:
        candidate = os.path.join(data_dir, base_name + ext)
        if os.path.isfile(candidate):
            return candidate
    return None


def _is_json(source, file_path) -> bool:
    name = getattr(source, 'name', None) or file_path or ''
    return str(name).lower().endswith('.json')


def _read_json(source) -> pd.DataFrame:
    """JSON array of row objects (or {"data": [...]}) -> DataFrame, values kept as given."""
    if hasattr(source, 'read'):
        if hasattr(source, 'seek'):
            source.seek(0)
        payload = source.read()
        if isinstance(payload, bytes):
            payload = payload.decode('utf-8')
        rows = json.loads(payload)
    else:
        with open(source, 'r', encoding='utf-8') as f:
            rows = json.load(f)

    if isinstance(rows, dict):
        rows = rows.get('data', [])
    return pd.DataFrame(rows)


def read_buffer(buffer, **kwargs) -> pd.DataFrame:
    """Read an uploaded JSON or CSV buffer from its start; the format follows buffer.name."""
    if _is_json(buffer, None):
        return _read_json(buffer)
    if hasattr(buffer, 'seek'):
        buffer.seek(0)
    return pd.read_csv(buffer, **kwargs)


def safe_read_fixture(file_key: str, file_path: str, **kwargs) -> pd.DataFrame:
    """
    Read a JSON or CSV fixture from either uploaded buffer or disk.

    Args:
        file_key: key in st.session_state.uploaded_files
        file_path: fallback file path
        **kwargs: passed to pd.read_csv() for CSV sources

    Returns:
        pd.DataFrame

    Raises:
        FileNotFoundError: no upload and no file on disk
        ValueError: the file could not be parsed
    """
    source, is_uploaded = get_file_source(file_key, file_path)
    if source is None:
        raise FileNotFoundError(f"File not found: {file_path} (and no uploaded file)")

    if is_uploaded:
        return read_buffer(source, **kwargs)
    if _is_json(source, file_path):
        return _read_json(source)
    return pd.read_csv(source, **kwargs)
