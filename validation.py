"""Request validation shared by the entry, settings and preferences routes.

Checks run in a fixed order and stop at the first failing field, which is
reported as ``errors.ValidationError(field, message)``. One error per
response is part of the API contract.
"""

import math
import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from errors import ValidationError
from models import UTILITY_TYPE_ALIASES, CurrencyCode, UtilityType
from schemas import CredentialsIn, CurrencyIn, EntryIn, UnitPriceIn
from services import EntryFilters

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
YEAR_PATTERN = re.compile(r"^\d{4}$")
MONTH_PATTERN = re.compile(r"^\d{1,2}$")
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
MAX_UNIT_LENGTH = 20
MIN_PASSWORD_LENGTH = 6
MAX_MONTHS_LIMIT = 120
# Numeric(18, 6) leaves 12 integer digits, Numeric(18, 2) leaves 16.
MAX_AMOUNT = Decimal(10) ** 12
MAX_COST = Decimal(10) ** 16


@dataclass(frozen=True)
class BreakdownQuery:
    type: UtilityType
    year: int
    month: Optional[int] = None


def _present(value: Any) -> bool:
    return value is not None and value != ""


def require_object(body: Any) -> Mapping[str, Any]:
    if not isinstance(body, Mapping):
        raise ValidationError("body", "Request body must be a JSON object")
    return body


def parse_type(
    value: Any, enabled: Iterable[str], *, field: str = "type"
) -> UtilityType:
    allowed = [t for t in UtilityType if t.value in set(enabled)]
    if not isinstance(value, str) or not value:
        raise ValidationError(field, _type_message(allowed))
    utility_type = UTILITY_TYPE_ALIASES.get(value)
    if utility_type is None:
        try:
            utility_type = UtilityType(value)
        except ValueError:
            raise ValidationError(field, _type_message(allowed)) from None
    if utility_type not in allowed:
        raise ValidationError(field, _type_message(allowed))
    return utility_type


def _type_message(allowed: list[UtilityType]) -> str:
    return f"Type must be one of: {', '.join(t.value for t in allowed)}"


def parse_amount(value: Any, field: str) -> Decimal:
    # bool is an int subclass but never a valid amount
    if value is None:
        raise ValidationError(field, f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(field, f"{field} must be a non-negative number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(field, f"{field} must be a non-negative number")
    amount = Decimal(str(value))
    if not amount.is_finite() or amount < 0:
        raise ValidationError(field, f"{field} must be a non-negative number")
    if amount >= MAX_AMOUNT:
        raise ValidationError(field, f"{field} must be less than {MAX_AMOUNT:,.0f}")
    return amount


def parse_unit(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("unit", "unit must be a non-empty string")
    unit = value.strip()
    if len(unit) > MAX_UNIT_LENGTH:
        raise ValidationError(
            "unit", f"unit must be at most {MAX_UNIT_LENGTH} characters"
        )
    return unit


def parse_date(value: Any, field: str = "date") -> date:
    message = f"{field} must be a valid date in YYYY-MM-DD format"
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError(field, message)
    try:
        return date.fromisoformat(value)
    except ValueError:
        # matches the pattern but is not a calendar date, e.g. 2023-02-30
        raise ValidationError(field, message) from None


def parse_entry_id(value: Any) -> uuid.UUID:
    if not isinstance(value, str) or not UUID_PATTERN.match(value):
        raise ValidationError("id", "Entry ID must be a valid UUID")
    return uuid.UUID(value)


def validate_entry(body: Any, enabled_types: Iterable[str]) -> EntryIn:
    data = require_object(body)
    utility_type = parse_type(data.get("type"), enabled_types)
    usage_amount = parse_amount(data.get("usage_amount"), "usage_amount")

    unit_price = None
    cost_amount = None
    if data.get("unit_price") is not None:
        unit_price = parse_amount(data.get("unit_price"), "unit_price")
        if usage_amount * unit_price >= MAX_COST:
            raise ValidationError("unit_price", "Derived cost is too large")
    elif data.get("cost_amount") is not None:
        cost_amount = parse_amount(data.get("cost_amount"), "cost_amount")
    else:
        raise ValidationError("unit_price", "unit_price or cost_amount is required")

    unit = parse_unit(data.get("unit"))
    entry_date = parse_date(data.get("date"))
    return EntryIn(
        type=utility_type,
        usage_amount=usage_amount,
        unit_price=unit_price,
        cost_amount=cost_amount,
        unit=unit,
        date=entry_date,
    )


def validate_list_filters(
    params: Mapping[str, Any], enabled_types: Iterable[str]
) -> EntryFilters:
    utility_type = None
    start = None
    end = None
    if _present(params.get("type")):
        utility_type = parse_type(params.get("type"), enabled_types)
    if _present(params.get("from")):
        start = parse_date(params.get("from"), "from")
    if _present(params.get("to")):
        end = parse_date(params.get("to"), "to")
    if start and end and start > end:
        raise ValidationError("from", "from must be on or before to")
    return EntryFilters(type=utility_type, start=start, end=end)


def validate_breakdown(
    type_value: Any, params: Mapping[str, Any], enabled_types: Iterable[str]
) -> BreakdownQuery:
    utility_type = parse_type(type_value, enabled_types)

    year = params.get("year")
    if not isinstance(year, str) or not YEAR_PATTERN.match(year):
        raise ValidationError(
            "year", "year is required and must be a valid 4-digit year"
        )
    if int(year) < 1:
        raise ValidationError("year", "year must be between 0001 and 9999")

    month = None
    raw_month = params.get("month")
    if _present(raw_month):
        if not isinstance(raw_month, str) or not MONTH_PATTERN.match(raw_month):
            raise ValidationError("month", "month must be a number between 1 and 12")
        month = int(raw_month)
        if month < 1 or month > 12:
            raise ValidationError("month", "month must be a number between 1 and 12")
    return BreakdownQuery(type=utility_type, year=int(year), month=month)


def validate_unit_price(
    type_value: Any, body: Any, enabled_types: Iterable[str]
) -> UnitPriceIn:
    utility_type = parse_type(type_value, enabled_types)
    data = require_object(body)
    unit_price = parse_amount(data.get("unit_price"), "unit_price")
    return UnitPriceIn(type=utility_type, unit_price=unit_price)


def validate_currency(body: Any) -> CurrencyIn:
    data = require_object(body)
    value = data.get("currency")
    try:
        currency = CurrencyCode(value)
    except ValueError:
        codes = ", ".join(c.value for c in CurrencyCode)
        raise ValidationError("currency", f"Currency must be one of: {codes}") from None
    return CurrencyIn(currency=currency)


def parse_currency_param(value: Any, field: str = "base") -> CurrencyCode:
    if not _present(value):
        return CurrencyCode.eur
    try:
        return CurrencyCode(str(value).upper())
    except ValueError:
        codes = ", ".join(c.value for c in CurrencyCode)
        raise ValidationError(field, f"Currency must be one of: {codes}") from None


def validate_credentials(body: Any, *, registering: bool = False) -> CredentialsIn:
    data = require_object(body)
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        raise ValidationError(None, "Email and password are required")
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError(None, "Invalid input")
    if not email.strip():
        raise ValidationError(None, "Email and password are required")
    if registering and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    return CredentialsIn(email=email.strip().lower(), password=password)


def parse_limit(value: Any) -> Optional[int]:
    if not _present(value):
        return None
    message = f"limit must be a whole number between 1 and {MAX_MONTHS_LIMIT}"
    if not isinstance(value, str) or not value.isdecimal():
        raise ValidationError("limit", message)
    limit = int(value)
    if limit < 1 or limit > MAX_MONTHS_LIMIT:
        raise ValidationError("limit", message)
    return limit
