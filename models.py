import datetime as dt
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UtilityType(str, Enum):
    electricity = "electricity"
    water = "water"
    fuel = "fuel"


# Labels accepted on input in addition to the canonical values.
UTILITY_TYPE_ALIASES: dict[str, UtilityType] = {"power": UtilityType.electricity}


class CurrencyCode(str, Enum):
    eur = "EUR"
    usd = "USD"
    gbp = "GBP"
    chf = "CHF"
    pln = "PLN"
    czk = "CZK"
    sek = "SEK"
    nok = "NOK"
    dkk = "DKK"
    huf = "HUF"


DEFAULT_CURRENCY = CurrencyCode.eur

UTILITY_TYPE_ENUM = SAEnum(UtilityType, name="utilitytype")

CURRENCY_CODE_ENUM = SAEnum(
    CurrencyCode,
    name="currencycode",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

# Quantities and unit prices keep six fractional digits, money keeps two.
QUANTITY = Numeric(18, 6)
MONEY = Numeric(18, 2)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Entry(Base):
    __tablename__ = "utility_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[UtilityType] = mapped_column(UTILITY_TYPE_ENUM, nullable=False)
    usage_amount: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(QUANTITY)
    cost_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_utility_entries_user_id", "user_id"),
        Index("idx_utility_entries_user_date", "user_id", "date"),
        Index("idx_utility_entries_user_type_date", "user_id", "type", "date"),
        CheckConstraint("usage_amount >= 0", name="ck_entries_usage_non_negative"),
        CheckConstraint("cost_amount >= 0", name="ck_entries_cost_non_negative"),
        CheckConstraint(
            "unit_price IS NULL OR unit_price >= 0",
            name="ck_entries_unit_price_non_negative",
        ),
    )


class UnitPriceSetting(Base, TimestampMixin):
    __tablename__ = "utility_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[UtilityType] = mapped_column(UTILITY_TYPE_ENUM, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "type", name="uq_utility_settings_user_type"),
        CheckConstraint("unit_price >= 0", name="ck_settings_unit_price_non_negative"),
    )


class CurrencyPreference(Base, TimestampMixin):
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=DEFAULT_CURRENCY
    )
