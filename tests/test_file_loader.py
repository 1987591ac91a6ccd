"""
Tests for file_loader module
Tests JSON / CSV fixture loading and error handling
"""

import io
import json

import pytest
import pandas as pd
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from file_loader import find_fixture, get_file_source, has_upload, read_buffer, safe_read_fixture

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.path.join(BASE_DIR, "data")


class TestFindFixture:
    """Test fixture discovery"""

    def test_json_preferred_over_csv(self, tmp_path):
        (tmp_path / "supply.csv").write_text("ItemId,Site,Qty\nP-1,L-QLD,3\n")
        (tmp_path / "supply.json").write_text("[]")
        assert find_fixture(str(tmp_path), "supply").endswith("supply.json")

    def test_csv_when_no_json(self, tmp_path):
        (tmp_path / "supply.csv").write_text("ItemId,Site,Qty\nP-1,L-QLD,3\n")
        assert find_fixture(str(tmp_path), "supply").endswith("supply.csv")

    def test_missing(self, tmp_path):
        assert find_fixture(str(tmp_path), "supply") is None


class TestSafeReadFixture:
    """Test safe_read_fixture functionality"""

    def test_bundled_work_orders(self):
        """Test reading the bundled fixture"""
        df = safe_read_fixture(None, os.path.join(DATA_DIR, "work-orders.json"))
        assert isinstance(df, pd.DataFrame)
        assert not df.empty
        assert "WorkOrderId" in df.columns

    def test_json_array(self, tmp_path):
        path = tmp_path / "demand.json"
        path.write_text(json.dumps([{"ItemId": "P-1", "Qty": 2}, {"ItemId": "P-2", "Qty": 5}]))
        df = safe_read_fixture("demand", str(path))
        assert list(df["ItemId"]) == ["P-1", "P-2"]

    def test_json_data_envelope(self, tmp_path):
        path = tmp_path / "demand.json"
        path.write_text(json.dumps({"data": [{"ItemId": "P-1", "Qty": 2}]}))
        df = safe_read_fixture("demand", str(path))
        assert len(df) == 1

    def test_csv_with_kwargs(self, tmp_path):
        path = tmp_path / "supply.csv"
        path.write_text("ItemId,Site,Qty\nP-1,L-QLD,3\n")
        df = safe_read_fixture("supply", str(path), usecols=["ItemId", "Qty"])
        assert list(df.columns) == ["ItemId", "Qty"]

    def test_nonexistent_file_raises(self):
        with pytest.raises(FileNotFoundError):
            safe_read_fixture(None, "nonexistent_file.json")


class TestUploadedBuffers:
    """Test that uploaded buffers take priority over disk"""

    def test_uploaded_json_buffer(self, monkeypatch, tmp_path):
        buffer = io.BytesIO(json.dumps([{"ItemId": "UP-1"}]).encode("utf-8"))
        buffer.name = "inventory.json"
        monkeypatch.setattr("file_loader.st.session_state", {"uploaded_files": {"inventory": buffer}})

        source, is_uploaded = get_file_source("inventory", str(tmp_path / "inventory.json"))
        assert is_uploaded
        df = safe_read_fixture("inventory", str(tmp_path / "inventory.json"))
        assert list(df["ItemId"]) == ["UP-1"]

    def test_uploaded_csv_buffer_is_rewound(self, monkeypatch):
        buffer = io.StringIO("ItemId,Qty\nUP-2,4\n")
        buffer.read()
        buffer.name = "supply.csv"
        monkeypatch.setattr("file_loader.st.session_state", {"uploaded_files": {"supply": buffer}})

        df = safe_read_fixture("supply", None)
        assert list(df["ItemId"]) == ["UP-2"]

    def test_has_upload(self, monkeypatch):
        monkeypatch.setattr("file_loader.st.session_state", {"uploaded_files": {"demand": io.BytesIO(b"[]")}})
        assert has_upload("demand")
        assert not has_upload("supply")

    def test_no_uploads_outside_a_script_run(self, tmp_path):
        path = tmp_path / "supply.csv"
        path.write_text("ItemId,Qty\nP-1,1\n")
        assert get_file_source("supply", str(path)) == (str(path), False)


class TestReadBuffer:
    """Test reading uploaded buffers directly"""

    def test_json_by_name(self):
        buffer = io.BytesIO(json.dumps({"data": [{"ItemId": "UP-3"}]}).encode("utf-8"))
        buffer.name = "Demand.JSON"
        assert list(read_buffer(buffer)["ItemId"]) == ["UP-3"]

    def test_csv_read_twice(self):
        buffer = io.BytesIO(b"ItemId,Qty\nUP-4,2\n")
        buffer.name = "supply.csv"
        read_buffer(buffer)
        assert list(read_buffer(buffer)["Qty"]) == [2]

    def test_unparseable_json_raises_value_error(self):
        buffer = io.BytesIO(b"{not json")
        buffer.name = "inventory.json"
        with pytest.raises(ValueError):
            read_buffer(buffer)
