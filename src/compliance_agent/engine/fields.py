"""Request value coercion against column types."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Column

from compliance_agent.utils.time import parse_date, parse_datetime

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def coerce(column: Column, value: Any) -> Any:
    """Convert a JSON or query-string value to the column's Python type.

    Raises ValueError when the value cannot represent the column type.
    """
    if value is None:
        if not column.nullable:
            raise ValueError(f"{column.name} cannot be null")
        return None

    if isinstance(column.type, JSON):
        return value

    python_type = column.type.python_type

    if python_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise ValueError(f"{column.name} must be a boolean")

    if python_type is int:
        if isinstance(value, bool):
            raise ValueError(f"{column.name} must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            return int(value.strip())
        raise ValueError(f"{column.name} must be an integer")

    if python_type is float:
        if isinstance(value, bool):
            raise ValueError(f"{column.name} must be a number")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            return float(value.strip())
        raise ValueError(f"{column.name} must be a number")

    if python_type is str:
        if not isinstance(value, str):
            raise ValueError(f"{column.name} must be a string")
        length = getattr(column.type, "length", None)
        if length is not None and len(value) > length:
            raise ValueError(f"{column.name} must be at most {length} characters")
        return value

    if python_type is datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return parse_datetime(value)
        raise ValueError(f"{column.name} must be an ISO-8601 timestamp")

    if python_type is date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return parse_date(value)
        raise ValueError(f"{column.name} must be an ISO-8601 date")

    if python_type is UUID:
        if isinstance(value, UUID):
            return value
        if isinstance(value, str):
            return UUID(value.strip())
        raise ValueError(f"{column.name} must be a UUID")

    return value


def parse_uuid(value: Any) -> UUID | None:
    """Parse a UUID, returning None for anything malformed."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        return None
