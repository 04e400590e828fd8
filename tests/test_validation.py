import uuid
from datetime import date
from decimal import Decimal

import pytest

import validation
from errors import ValidationError
from models import CurrencyCode, UtilityType

ALL_TYPES = ("electricity", "water", "fuel")


def valid_body(**overrides):
    body = {
        "type": "electricity",
        "usage_amount": 12,
        "unit_price": 2.5,
        "unit": "kWh",
        "date": "2024-01-15",
    }
    body.update(overrides)
    return body


def field_of(exc_info) -> str:
    return exc_info.value.field


def test_valid_entry_is_normalized() -> None:
    entry = validation.validate_entry(valid_body(unit=" kWh "), ALL_TYPES)
    assert entry.type == UtilityType.electricity
    assert entry.usage_amount == Decimal("12")
    assert entry.unit_price == Decimal("2.5")
    assert entry.cost_amount is None
    assert entry.unit == "kWh"
    assert entry.date == date(2024, 1, 15)


def test_first_failing_field_is_reported() -> None:
    body = valid_body(type="gas", usage_amount=-1, unit="", date="nope")
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == "type"
    assert "electricity, water, fuel" in exc_info.value.message

    body = valid_body(usage_amount=-1, unit="", date="nope")
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == "usage_amount"

    body = valid_body(unit_price="2.5", unit="", date="nope")
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == "unit_price"

    body = valid_body(unit="x" * 21, date="nope")
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == "unit"

    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(valid_body(date="2024/01/15"), ALL_TYPES)
    assert field_of(exc_info) == "date"


@pytest.mark.parametrize("value", [True, "12", None, float("nan"), -0.01])
def test_usage_amount_rejects_non_numbers(value) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(valid_body(usage_amount=value), ALL_TYPES)
    assert field_of(exc_info) == "usage_amount"


def test_zero_amounts_are_allowed() -> None:
    entry = validation.validate_entry(
        valid_body(usage_amount=0, unit_price=0), ALL_TYPES
    )
    assert entry.usage_amount == 0
    assert entry.unit_price == 0


def test_impossible_calendar_date_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(valid_body(date="2023-02-30"), ALL_TYPES)
    assert field_of(exc_info) == "date"


def test_cost_amount_is_accepted_without_unit_price() -> None:
    body = valid_body(cost_amount=30)
    del body["unit_price"]
    entry = validation.validate_entry(body, ALL_TYPES)
    assert entry.unit_price is None
    assert entry.cost_amount == Decimal("30")


def test_missing_price_and_cost_is_rejected() -> None:
    body = valid_body()
    del body["unit_price"]
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == "unit_price"


def test_power_is_an_alias_for_electricity() -> None:
    entry = validation.validate_entry(valid_body(type="power"), ALL_TYPES)
    assert entry.type == UtilityType.electricity


def test_disabled_type_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(valid_body(type="fuel"), ("electricity", "water"))
    assert exc_info.value.message == "Type must be one of: electricity, water"


def test_non_object_body_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry([1, 2], ALL_TYPES)
    assert field_of(exc_info) == "body"


def test_list_filters() -> None:
    filters = validation.validate_list_filters(
        {"type": "water", "from": "2024-01-01", "to": "2024-01-31"}, ALL_TYPES
    )
    assert filters.type == UtilityType.water
    assert filters.start == date(2024, 1, 1)
    assert filters.end == date(2024, 1, 31)

    empty = validation.validate_list_filters({"type": "", "from": ""}, ALL_TYPES)
    assert empty.type is None and empty.start is None and empty.end is None


def test_list_filters_reject_reversed_range() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_list_filters(
            {"from": "2024-02-01", "to": "2024-01-01"}, ALL_TYPES
        )
    assert field_of(exc_info) == "from"


def test_breakdown_query() -> None:
    query = validation.validate_breakdown("fuel", {"year": "2024"}, ALL_TYPES)
    assert query == validation.BreakdownQuery(UtilityType.fuel, 2024, None)

    query = validation.validate_breakdown(
        "fuel", {"year": "2024", "month": "03"}, ALL_TYPES
    )
    assert query.month == 3


@pytest.mark.parametrize(
    "params, field",
    [
        ({}, "year"),
        ({"year": "24"}, "year"),
        ({"year": "2024", "month": "13"}, "month"),
        ({"year": "2024", "month": "0"}, "month"),
        ({"year": "2024", "month": "march"}, "month"),
    ],
)
def test_breakdown_query_rejects(params, field) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_breakdown("fuel", params, ALL_TYPES)
    assert field_of(exc_info) == field


def test_entry_id_must_be_uuid() -> None:
    entry_id = uuid.uuid4()
    assert validation.parse_entry_id(str(entry_id)) == entry_id
    with pytest.raises(ValidationError) as exc_info:
        validation.parse_entry_id("not-a-uuid")
    assert field_of(exc_info) == "id"


def test_unit_price_setting() -> None:
    data = validation.validate_unit_price("water", {"unit_price": 1.75}, ALL_TYPES)
    assert data.type == UtilityType.water
    assert data.unit_price == Decimal("1.75")

    with pytest.raises(ValidationError) as exc_info:
        validation.validate_unit_price("water", {"unit_price": -1}, ALL_TYPES)
    assert field_of(exc_info) == "unit_price"


def test_currency_must_be_supported() -> None:
    assert validation.validate_currency({"currency": "USD"}).currency == CurrencyCode.usd
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_currency({"currency": "usd"})
    assert field_of(exc_info) == "currency"
    with pytest.raises(ValidationError):
        validation.validate_currency({"currency": "XYZ"})


def test_currency_param_defaults_to_euro() -> None:
    assert validation.parse_currency_param(None) == CurrencyCode.eur
    assert validation.parse_currency_param("gbp") == CurrencyCode.gbp
    with pytest.raises(ValidationError):
        validation.parse_currency_param("XYZ")


def test_credentials() -> None:
    creds = validation.validate_credentials(
        {"email": " Ann@Example.com ", "password": "secret"}, registering=True
    )
    assert creds.email == "ann@example.com"

    with pytest.raises(ValidationError) as exc_info:
        validation.validate_credentials({"email": "a@b.c"})
    assert exc_info.value.message == "Email and password are required"

    with pytest.raises(ValidationError) as exc_info:
        validation.validate_credentials(
            {"email": "a@b.c", "password": "123"}, registering=True
        )
    assert field_of(exc_info) == "password"


def test_limit() -> None:
    assert validation.parse_limit(None) is None
    assert validation.parse_limit("12") == 12
    for bad in ("0", "121", "-1", "1.5", "abc"):
        with pytest.raises(ValidationError):
            validation.parse_limit(bad)


@pytest.mark.parametrize("field", ["usage_amount", "unit_price", "cost_amount"])
def test_amounts_must_fit_column_precision(field) -> None:
    body = valid_body(usage_amount=1, unit_price=1)
    if field == "cost_amount":
        del body["unit_price"]
    body[field] = 999_999_999_999.5
    entry = validation.validate_entry(body, ALL_TYPES)
    assert getattr(entry, field) == Decimal("999999999999.5")

    body[field] = 10**12
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == field

    body[field] = 1e30
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == field


def test_derived_cost_must_fit_money_column() -> None:
    body = valid_body(usage_amount=10**9, unit_price=10**7)
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_entry(body, ALL_TYPES)
    assert field_of(exc_info) == "unit_price"

    entry = validation.validate_entry(
        valid_body(usage_amount=10**9, unit_price=9_999_999), ALL_TYPES
    )
    assert entry.unit_price == Decimal("9999999")


def test_setting_unit_price_has_the_same_ceiling() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_unit_price("water", {"unit_price": 10**12}, ALL_TYPES)
    assert field_of(exc_info) == "unit_price"


def test_breakdown_year_zero_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validation.validate_breakdown("water", {"year": "0000"}, ALL_TYPES)
    assert field_of(exc_info) == "year"
    assert validation.validate_breakdown("water", {"year": "0001"}, ALL_TYPES).year == 1
