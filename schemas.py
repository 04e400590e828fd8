import datetime as dt
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from models import CurrencyCode, UtilityType

# Decimal internally, plain JSON number on the wire.
Number = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


class EntryIn(BaseModel):
    type: UtilityType
    usage_amount: Decimal = Field(..., ge=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    cost_amount: Optional[Decimal] = Field(default=None, ge=0)
    unit: str = Field(..., min_length=1, max_length=20)
    date: dt.date


class UnitPriceIn(BaseModel):
    type: UtilityType
    unit_price: Decimal = Field(..., ge=0)


class CurrencyIn(BaseModel):
    currency: CurrencyCode


class CredentialsIn(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class EntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    type: UtilityType
    usage_amount: Number
    unit_price: Optional[Number] = None
    cost_amount: Number
    unit: str
    date: dt.date
    created_at: datetime


class Totals(BaseModel):
    entry_count: int = 0
    total_usage: Number = Decimal("0")
    total_cost: Number = Decimal("0")
    avg_usage: Number = Decimal("0")
    avg_cost: Number = Decimal("0")
    first_entry: Optional[date] = None
    last_entry: Optional[date] = None


class ByTypeRow(Totals):
    type: UtilityType


class MonthlyRow(BaseModel):
    month: str  # YYYY-MM
    entry_count: int
    total_cost: Number
    total_usage: Number


class MonthTotal(BaseModel):
    month: str  # YYYY-MM
    total: Number


class DayTotal(BaseModel):
    date: str  # YYYY-MM-DD
    total: Number


class StatsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    totals: Totals
    by_type: list[ByTypeRow] = Field(default_factory=list, alias="byType")
    monthly: list[MonthlyRow] = Field(default_factory=list)


class BreakdownOut(BaseModel):
    monthly: list[MonthTotal] = Field(default_factory=list)
    daily: list[DayTotal] = Field(default_factory=list)


class UnitPriceOut(BaseModel):
    unit_price: Optional[Number] = None


class UnitPriceSettingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    type: UtilityType
    unit_price: Number
    updated_at: datetime


class CurrencyOut(BaseModel):
    currency: CurrencyCode


class CurrencyPreferenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    currency: CurrencyCode
    updated_at: datetime


class RatesOut(BaseModel):
    base: CurrencyCode
    date: Optional[dt.date] = None
    rates: dict[str, Number]
