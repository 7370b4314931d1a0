"""Tests for the core data types."""

import pytest
from datetime import datetime, timedelta

from sheetmirror.errors import MalformedTable
from sheetmirror.models import Connection, Record, Subscription, Table


class TestTable:
    """Tests for Table construction and validation."""

    def test_valid_table(self):
        """Test a table whose rows match the header."""
        table = Table(header=["id", "name"], rows=[["r1", "Alice"]])

        assert table.header == ["id", "name"]
        assert table.rows == [["r1", "Alice"]]

    def test_row_length_mismatch_rejected(self):
        """Test rows must be as wide as the header."""
        with pytest.raises(MalformedTable):
            Table(header=["id", "name"], rows=[["r1"]])

    def test_from_values_pads_short_rows(self):
        """Test trailing empty cells dropped by the store are restored."""
        table = Table.from_values([["id", "name", "age"], ["r1"], ["r2", "Bob"]])

        assert table.rows == [["r1", "", ""], ["r2", "Bob", ""]]

    def test_from_values_rejects_wide_rows(self):
        """Test a row wider than the header cannot be aligned."""
        with pytest.raises(MalformedTable):
            Table.from_values([["id"], ["r1", "extra"]])

    def test_from_values_empty(self):
        """Test an empty grid gives an empty table."""
        assert Table.from_values([]).is_empty
        assert Table.from_values(None).is_empty

    def test_to_values(self):
        """Test the grid form puts the header first."""
        table = Table(header=["id", "name"], rows=[["r1", "Alice"]])

        assert table.to_values() == [["id", "name"], ["r1", "Alice"]]


class TestRecord:
    """Tests for Record identity handling."""

    def test_id_present(self):
        record = Record({"id": "r1", "name": "Alice"})

        assert record.id == "r1"
        assert record.has_identity

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_id_means_no_identity(self, value):
        """Test empty or whitespace ids count as absent."""
        assert not Record({"id": value, "name": "Bob"}).has_identity

    def test_missing_id(self):
        assert Record({"name": "Bob"}).id is None

    def test_without_id(self):
        """Test stripping identity keeps the other fields in order."""
        record = Record({"name": "Bob", "id": "", "age": 3})

        assert list(record.without_id().fields) == ["name", "age"]


class TestConnection:
    """Tests for Connection serialization."""

    def test_payload_roundtrip(self):
        connection = Connection("D1", "key", "B1", "T1")

        payload = connection.to_payload()

        assert payload == {
            "storeApiKey": "key",
            "containerId": "B1",
            "tableId": "T1",
            "documentId": "D1",
        }
        assert Connection.from_payload(payload) == connection

    def test_repr_hides_api_key(self):
        """Test the API key never shows up in logs."""
        assert "secret-key" not in repr(Connection("D1", "secret-key", "B1", "T1"))


class TestSubscription:
    """Tests for Subscription expiry checks."""

    def test_needs_renewal_inside_margin(self):
        now = datetime.now()
        sub = Subscription("D1", "c1", "r1", now + timedelta(minutes=30), "https://x")

        assert sub.needs_renewal(3600, now=now)
        assert not sub.is_expired(now=now)

    def test_fresh_subscription(self):
        now = datetime.now()
        sub = Subscription("D1", "c1", "r1", now + timedelta(hours=20), "https://x")

        assert not sub.needs_renewal(3600, now=now)

    def test_expired(self):
        now = datetime.now()
        sub = Subscription("D1", "c1", None, now - timedelta(seconds=1), "https://x")

        assert sub.is_expired(now=now)
