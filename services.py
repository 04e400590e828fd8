from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

import aggregation
from errors import NotFound
from models import (
    DEFAULT_CURRENCY,
    CurrencyCode,
    CurrencyPreference,
    Entry,
    UnitPriceSetting,
    UtilityType,
    utcnow,
)
from schemas import BreakdownOut, EntryIn, MonthlyRow, StatsOut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryFilters:
    type: Optional[UtilityType] = None
    start: Optional[date] = None
    end: Optional[date] = None


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert not supported for dialect {dialect}")


def upsert_unit_price(
    session: Session, user_id: str, utility_type: UtilityType, unit_price: Decimal
) -> UnitPriceSetting:
    now = utcnow()
    insert = _insert_for(session)
    stmt = (
        insert(UnitPriceSetting)
        .values(
            user_id=user_id,
            type=utility_type,
            unit_price=unit_price,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=["user_id", "type"],
            set_={"unit_price": unit_price, "updated_at": now},
        )
        .returning(UnitPriceSetting)
    )
    return session.scalars(
        stmt, execution_options={"populate_existing": True}
    ).one()


class EntryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: EntryIn) -> Entry:
        if data.unit_price is not None:
            cost_amount = aggregation.derive_cost(data.usage_amount, data.unit_price)
        elif data.cost_amount is not None:
            cost_amount = data.cost_amount.quantize(aggregation.CENT)
        else:
            raise ValueError("unit_price or cost_amount is required")

        entry = Entry(
            user_id=self.user_id,
            type=data.type,
            usage_amount=data.usage_amount,
            unit_price=data.unit_price,
            cost_amount=cost_amount,
            unit=data.unit.strip(),
            date=data.date,
        )
        self.session.add(entry)
        if data.unit_price is not None:
            upsert_unit_price(self.session, self.user_id, data.type, data.unit_price)
        self.session.commit()
        self.session.refresh(entry)
        logger.info(
            f"entry_created: user={self.user_id} type={entry.type.value} "
            f"date={entry.date.isoformat()} cost={entry.cost_amount}"
        )
        return entry

    def list(self, filters: Optional[EntryFilters] = None) -> list[Entry]:
        filters = filters or EntryFilters()
        stmt = (
            select(Entry)
            .where(Entry.user_id == self.user_id)
            .order_by(Entry.date.desc(), Entry.created_at.desc())
        )
        if filters.type:
            stmt = stmt.where(Entry.type == filters.type)
        if filters.start:
            stmt = stmt.where(Entry.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Entry.date <= filters.end)
        return list(self.session.scalars(stmt).all())

    def all(self) -> list[Entry]:
        return self.list()

    def delete(self, entry_id: uuid.UUID) -> Entry:
        # Ownership is part of the DELETE condition; no read-then-check.
        stmt = (
            delete(Entry)
            .where(Entry.id == entry_id, Entry.user_id == self.user_id)
            .returning(Entry)
            .execution_options(synchronize_session=False)
        )
        deleted = self.session.scalars(stmt).one_or_none()
        if deleted is None:
            self.session.rollback()
            raise NotFound("Entry not found")
        if deleted in self.session:
            self.session.expunge(deleted)
        self.session.commit()
        logger.info(f"entry_deleted: user={self.user_id} id={entry_id}")
        return deleted


class StatsService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.entries = EntryService(session, user_id)

    def overview(self) -> StatsOut:
        rows = self.entries.all()
        return StatsOut(
            totals=aggregation.totals(rows),
            by_type=aggregation.by_type(rows),
            monthly=aggregation.monthly_series(rows),
        )

    def recent_months(self, limit: Optional[int] = None) -> list[MonthlyRow]:
        return aggregation.monthly_series(
            self.entries.all(), descending=True, limit=limit
        )

    def breakdown(
        self, utility_type: UtilityType, year: int, month: Optional[int] = None
    ) -> BreakdownOut:
        start = date(year, 1, 1)
        end = date(year, 12, 31)
        rows = self.entries.list(EntryFilters(type=utility_type, start=start, end=end))
        return aggregation.yearly_breakdown(rows, utility_type, year, month)


class SettingsService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, utility_type: UtilityType) -> Optional[UnitPriceSetting]:
        stmt = select(UnitPriceSetting).where(
            UnitPriceSetting.user_id == self.user_id,
            UnitPriceSetting.type == utility_type,
        )
        return self.session.scalar(stmt)

    def get_unit_price(self, utility_type: UtilityType) -> Optional[Decimal]:
        setting = self.get(utility_type)
        return setting.unit_price if setting else None

    def upsert_unit_price(
        self, utility_type: UtilityType, unit_price: Decimal
    ) -> UnitPriceSetting:
        setting = upsert_unit_price(self.session, self.user_id, utility_type, unit_price)
        self.session.commit()
        return setting


class PreferencesService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get_currency(self) -> CurrencyCode:
        stmt = select(CurrencyPreference.currency).where(
            CurrencyPreference.user_id == self.user_id
        )
        return self.session.scalar(stmt) or DEFAULT_CURRENCY

    def upsert_currency(self, currency: CurrencyCode) -> CurrencyPreference:
        now = utcnow()
        insert = _insert_for(self.session)
        stmt = (
            insert(CurrencyPreference)
            .values(
                user_id=self.user_id,
                currency=currency,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["user_id"],
                set_={"currency": currency, "updated_at": now},
            )
            .returning(CurrencyPreference)
        )
        preference = self.session.scalars(
            stmt, execution_options={"populate_existing": True}
        ).one()
        self.session.commit()
        return preference
