"""
Value coercion against column types.
"""

from datetime import date, datetime, timezone
from uuid import UUID, uuid4

import pytest

from compliance_agent.engine.catalogue import registry
from compliance_agent.engine.fields import coerce, parse_uuid

documents = registry.get("documents")
employees = registry.get("employees")


@pytest.mark.parametrize(
    "raw, expected",
    [(True, True), (False, False), ("true", True), ("0", False), ("Yes", True)],
)
def test_boolean_columns(raw, expected):
    assert coerce(documents.column("contains_pii"), raw) is expected


@pytest.mark.parametrize("raw", ["maybe", 1, 0.0])
def test_boolean_rejects_other_values(raw):
    with pytest.raises(ValueError):
        coerce(documents.column("contains_pii"), raw)


def test_integer_columns():
    column = documents.column("retention_period_years")
    assert coerce(column, 7) == 7
    assert coerce(column, 7.0) == 7
    assert coerce(column, " 12 ") == 12
    for bad in (True, 7.5, "seven", [7]):
        with pytest.raises(ValueError):
            coerce(column, bad)


def test_numeric_columns():
    column = registry.get("compliance_checks").column("overall_compliance")
    assert coerce(column, 80) == 80.0
    assert coerce(column, "99.5") == 99.5
    with pytest.raises(ValueError):
        coerce(column, False)


def test_string_columns_do_not_stringify():
    assert coerce(employees.column("full_name"), "Ana") == "Ana"
    with pytest.raises(ValueError):
        coerce(employees.column("full_name"), 42)


def test_string_columns_enforce_declared_length():
    column = employees.column("employee_id")
    assert coerce(column, "E" * 64) == "E" * 64
    with pytest.raises(ValueError, match="at most 64 characters"):
        coerce(column, "E" * 65)


def test_text_columns_are_unbounded():
    assert len(coerce(documents.column("description"), "x" * 100_000)) == 100_000


def test_date_columns():
    column = employees.column("hire_date")
    assert coerce(column, "2024-03-01") == date(2024, 3, 1)
    assert coerce(column, "2024-03-01T10:00:00Z") == date(2024, 3, 1)
    with pytest.raises(ValueError):
        coerce(column, "03/01/2024")


def test_timestamp_columns_are_utc_aware():
    column = registry.get("shares").column("expires_at")
    assert coerce(column, "2025-01-02T03:04:05Z") == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert coerce(column, "2025-01-02T03:04:05").tzinfo is timezone.utc


def test_uuid_columns():
    column = employees.column("manager_id")
    value = uuid4()
    assert coerce(column, str(value)) == value
    with pytest.raises(ValueError):
        coerce(column, "not-a-uuid")


def test_json_columns_pass_through():
    payload = {"nested": [1, 2, {"a": None}]}
    assert coerce(documents.column("custom_metadata"), payload) is payload


def test_null_only_for_nullable_columns():
    assert coerce(employees.column("department"), None) is None
    with pytest.raises(ValueError, match="cannot be null"):
        coerce(employees.column("full_name"), None)


@pytest.mark.parametrize("raw", [None, "", "  ", "abc", 123])
def test_parse_uuid_rejects_malformed(raw):
    assert parse_uuid(raw) is None


def test_parse_uuid_accepts_uuid_and_padded_text():
    value = uuid4()
    assert parse_uuid(value) is value
    assert parse_uuid(f" {value} ") == value
    assert isinstance(parse_uuid(str(value)), UUID)
