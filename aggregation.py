"""Statistics over one owner's utility entries.

Everything here is read-only and works on any rows exposing ``type``,
``usage_amount``, ``cost_amount`` and ``date``. Sums and averages use
``Decimal`` and are never rounded; only ``derive_cost`` rounds.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol

from models import UtilityType
from schemas import (
    BreakdownOut,
    ByTypeRow,
    DayTotal,
    MonthlyRow,
    MonthTotal,
    Totals,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")


class EntryRow(Protocol):
    type: UtilityType
    usage_amount: Decimal
    cost_amount: Decimal
    date: date


def derive_cost(usage_amount: Decimal, unit_price: Decimal) -> Decimal:
    return (usage_amount * unit_price).quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def day_key(d: date) -> str:
    return d.isoformat()


@dataclass
class _Accumulator:
    count: int = 0
    usage: Decimal = ZERO
    cost: Decimal = ZERO
    first: Optional[date] = None
    last: Optional[date] = None

    def add(self, row: EntryRow) -> None:
        self.count += 1
        self.usage += _as_decimal(row.usage_amount)
        self.cost += _as_decimal(row.cost_amount)
        if self.first is None or row.date < self.first:
            self.first = row.date
        if self.last is None or row.date > self.last:
            self.last = row.date

    def fields(self) -> dict[str, object]:
        return {
            "entry_count": self.count,
            "total_usage": self.usage,
            "total_cost": self.cost,
            "avg_usage": self.usage / self.count if self.count else ZERO,
            "avg_cost": self.cost / self.count if self.count else ZERO,
            "first_entry": self.first,
            "last_entry": self.last,
        }


@dataclass
class _Buckets:
    by_key: dict[str, _Accumulator] = field(
        default_factory=lambda: defaultdict(_Accumulator)
    )

    def add(self, key: str, row: EntryRow) -> None:
        self.by_key[key].add(row)

    def ordered(self, *, descending: bool = False) -> list[tuple[str, _Accumulator]]:
        # YYYY-MM and YYYY-MM-DD keys sort chronologically as strings
        return sorted(self.by_key.items(), key=lambda kv: kv[0], reverse=descending)


def totals(entries: Iterable[EntryRow]) -> Totals:
    acc = _Accumulator()
    for row in entries:
        acc.add(row)
    return Totals(**acc.fields())


def by_type(entries: Iterable[EntryRow]) -> list[ByTypeRow]:
    buckets = _Buckets()
    for row in entries:
        buckets.add(UtilityType(row.type).value, row)
    return [
        ByTypeRow(type=UtilityType(key), **acc.fields())
        for key, acc in buckets.ordered()
    ]


def monthly_series(
    entries: Iterable[EntryRow],
    *,
    descending: bool = False,
    limit: Optional[int] = None,
) -> list[MonthlyRow]:
    buckets = _Buckets()
    for row in entries:
        buckets.add(month_key(row.date), row)
    ordered = buckets.ordered(descending=descending)
    if limit is not None:
        ordered = ordered[:limit]
    return [
        MonthlyRow(
            month=key,
            entry_count=acc.count,
            total_cost=acc.cost,
            total_usage=acc.usage,
        )
        for key, acc in ordered
    ]


def yearly_breakdown(
    entries: Iterable[EntryRow],
    utility_type: UtilityType,
    year: int,
    month: Optional[int] = None,
) -> BreakdownOut:
    months = _Buckets()
    days = _Buckets()
    for row in entries:
        if UtilityType(row.type) != utility_type or row.date.year != year:
            continue
        months.add(month_key(row.date), row)
        if month is not None and row.date.month == month:
            days.add(day_key(row.date), row)

    return BreakdownOut(
        monthly=[MonthTotal(month=key, total=acc.cost) for key, acc in months.ordered()],
        daily=[DayTotal(date=key, total=acc.cost) for key, acc in days.ordered()],
    )
