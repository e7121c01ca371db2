"""Tests for result serialization."""

import datetime
import decimal
import ipaddress
import json
import uuid

from postgres_mcp.models.query import (
    OperationResult,
    TransactionFailure,
    TransactionSuccess,
)
from postgres_mcp.models.table import ColumnInfo
from postgres_mcp.utils import (
    SERIALIZATION_FALLBACK,
    convert_row_to_json_safe,
    convert_value_to_json_safe,
    serialize,
)


class TestSerializeTotality:
    """serialize() never raises."""

    def test_self_referential_dict(self):
        """A cycle degrades to the fallback instead of raising."""
        data: dict = {"name": "loop"}
        data["self"] = data

        assert serialize(data) == SERIALIZATION_FALLBACK

    def test_self_referential_list(self):
        items: list = [1, 2]
        items.append(items)

        assert serialize(items) == SERIALIZATION_FALLBACK

    def test_unsupported_type(self):
        """Objects with no JSON representation degrade to the fallback."""

        class Opaque:
            pass

        assert serialize({"value": Opaque()}) == SERIALIZATION_FALLBACK

    def test_oversize_integer(self):
        assert serialize([2**70]) == SERIALIZATION_FALLBACK

    def test_json_values_round_trip(self):
        """JSON-representable values survive parse(serialize(v))."""
        values = [
            [],
            {},
            None,
            "text with \"quotes\" and unicode é",
            [{"id": 1, "name": "User One", "active": True, "score": 1.5}],
            {"nested": {"list": [1, None, "x"]}},
        ]

        for value in values:
            assert json.loads(serialize(value)) == value


class TestDriverTypes:
    """Database values that orjson does not encode natively."""

    def test_decimal_keeps_precision(self):
        assert json.loads(serialize([decimal.Decimal("123.456789")])) == ["123.456789"]

    def test_timedelta_as_seconds(self):
        assert json.loads(serialize(datetime.timedelta(minutes=2))) == 120.0

    def test_bytes(self):
        """UTF-8 bytes decode to text, anything else to base64."""
        assert json.loads(serialize(b"hello")) == "hello"
        assert json.loads(serialize(memoryview(b"\xff\x00"))) == "/wA="

    def test_ip_addresses(self):
        row = {
            "addr": ipaddress.IPv4Address("192.168.1.1"),
            "net": ipaddress.IPv6Network("2001:db8::/32"),
        }
        assert json.loads(serialize(row)) == {
            "addr": "192.168.1.1",
            "net": "2001:db8::/32",
        }

    def test_native_types(self):
        """orjson handles dates and UUIDs itself."""
        row = {
            "created": datetime.date(2024, 1, 15),
            "id": uuid.UUID("12345678-1234-5678-1234-567812345678"),
        }
        assert json.loads(serialize(row)) == {
            "created": "2024-01-15",
            "id": "12345678-1234-5678-1234-567812345678",
        }

    def test_set(self):
        assert sorted(json.loads(serialize({1, 2, 3}))) == [1, 2, 3]


class TestModelSerialization:
    """Models are emitted with camelCase field names."""

    def test_column_info(self):
        column = ColumnInfo(
            name="email",
            data_type="text",
            nullable=False,
            default_expression=None,
            ordinal_position=3,
        )

        assert json.loads(serialize([column])) == [
            {
                "name": "email",
                "dataType": "text",
                "nullable": False,
                "defaultExpression": None,
                "ordinalPosition": 3,
            }
        ]

    def test_transaction_success(self):
        outcome = TransactionSuccess(
            results=[OperationResult(operation=0, rows_affected=1)]
        )

        assert json.loads(serialize(outcome)) == {
            "success": True,
            "results": [{"operation": 0, "rowsAffected": 1}],
        }

    def test_transaction_failure(self):
        outcome = TransactionFailure(
            error="Error executing operation 1: boom", failed_operation_index=1
        )

        assert json.loads(serialize(outcome)) == {
            "success": False,
            "error": "Error executing operation 1: boom",
            "failedOperationIndex": 1,
        }


class TestRowConversion:
    """Row values are normalised before serialization."""

    def test_row_values(self):
        row = {
            "amount": decimal.Decimal("10.50"),
            "payload": b"abc",
            "count": 3,
        }

        assert convert_row_to_json_safe(row) == {
            "amount": "10.50",
            "payload": "abc",
            "count": 3,
        }

    def test_unencodable_value_becomes_string(self):
        assert convert_value_to_json_safe(2**70) == str(2**70)
