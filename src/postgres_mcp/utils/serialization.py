"""JSON serialization utilities using orjson for speed and correctness.

orjson handles most database types automatically and correctly:
- datetime, date, time → ISO format
- UUID → string
- dataclasses → dict

The default handler below covers the remaining driver types and pydantic
models. ``serialize`` is total: when encoding fails it returns ``"[]"``.
"""

import base64
import datetime
import decimal
import ipaddress
import logging
from typing import Any

import orjson
from pydantic import BaseModel

logger = logging.getLogger(__name__)

SERIALIZATION_FALLBACK = "[]"

_OPTIONS = orjson.OPT_NON_STR_KEYS


def _decode_binary(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii")


def _default_handler(obj: Any) -> Any:
    """
    Custom default handler for types orjson doesn't handle natively.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation

    Raises:
        TypeError: If object cannot be serialized
    """
    # Models travel with their external (camelCase) field names
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)

    # numeric columns keep full precision as strings
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    # timedelta - convert to total seconds
    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    # bytes/bytearray/memoryview (bytea) - try UTF-8 decode, fall back to base64
    if isinstance(obj, (bytes, bytearray)):
        return _decode_binary(bytes(obj))
    if isinstance(obj, memoryview):
        return _decode_binary(obj.tobytes())

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    if isinstance(
        obj,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
            ipaddress.IPv4Interface,
            ipaddress.IPv6Interface,
        ),
    ):
        return str(obj)

    # PostgreSQL range types (asyncpg.Range has lower, upper and bounds)
    if (
        hasattr(obj, "lower")
        and hasattr(obj, "upper")
        and hasattr(obj, "lower_inc")
        and not isinstance(obj, str)
        and not callable(obj.lower)
    ):
        return {
            "lower": obj.lower,
            "upper": obj.upper,
            "lower_inc": obj.lower_inc,
            "upper_inc": obj.upper_inc,
            "empty": getattr(obj, "isempty", False),
        }

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def convert_value_to_json_safe(value: Any) -> Any:
    """
    Convert a value to JSON-serializable format.

    Uses orjson's serialization and decodes back to Python objects.
    This ensures consistency with what will actually be serialized.

    Args:
        value: Value to convert

    Returns:
        JSON-serializable value
    """
    try:
        return orjson.loads(orjson.dumps(value, default=_default_handler, option=_OPTIONS))
    except TypeError:
        # If orjson can't handle it, convert to string as fallback
        return str(value)


def convert_row_to_json_safe(row: dict[str, Any]) -> dict[str, Any]:
    """Convert all values in a row dict to JSON-serializable formats."""
    return {key: convert_value_to_json_safe(value) for key, value in row.items()}


def convert_rows_to_json_safe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert all rows to JSON-serializable format."""
    return [convert_row_to_json_safe(row) for row in rows]


def dumps(obj: Any) -> str:
    """
    Serialize object to JSON string using orjson.

    Raises:
        TypeError: If the object cannot be encoded (orjson.JSONEncodeError)
    """
    return orjson.dumps(obj, default=_default_handler, option=_OPTIONS).decode("utf-8")


def serialize(obj: Any) -> str:
    """
    Serialize a result for clients without ever raising.

    Cyclic structures, unsupported types and integers outside the 64-bit
    range cannot be encoded; those degrade to ``"[]"``, which clients cannot
    tell apart from an empty result.

    Args:
        obj: Rows, schemas, transaction outcomes or any JSON-like value

    Returns:
        JSON text, or ``"[]"`` if encoding failed
    """
    try:
        return dumps(obj)
    except (TypeError, ValueError, RecursionError) as e:
        logger.warning(f"Serialization failed, returning empty result: {e}")
        return SERIALIZATION_FALLBACK
