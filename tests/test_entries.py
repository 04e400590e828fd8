import uuid
from datetime import date
from decimal import Decimal

import pytest

from database import Database
from errors import DatabaseUnavailable, NotFound
from models import UtilityType
from schemas import EntryIn
from services import EntryFilters, EntryService, SettingsService, StatsService


def make_database() -> Database:
    database = Database("sqlite://")
    database.open()
    database.create_all()
    return database


def entry_in(**overrides) -> EntryIn:
    data = {
        "type": UtilityType.electricity,
        "usage_amount": Decimal("12"),
        "unit_price": Decimal("2.5"),
        "unit": "kWh",
        "date": date(2024, 1, 15),
    }
    data.update(overrides)
    return EntryIn(**data)


def test_create_derives_cost_and_remembers_unit_price() -> None:
    database = make_database()

    with database.session_scope() as session:
        entry = EntryService(session, "user-a").create(entry_in())
        assert isinstance(entry.id, uuid.UUID)
        assert entry.user_id == "user-a"
        assert entry.cost_amount == Decimal("30.00")
        assert entry.unit_price == Decimal("2.5")
        assert entry.created_at is not None

        settings = SettingsService(session, "user-a")
        assert settings.get_unit_price(UtilityType.electricity) == Decimal("2.5")

        EntryService(session, "user-a").create(entry_in(unit_price=Decimal("3.1")))
        assert settings.get_unit_price(UtilityType.electricity) == Decimal("3.1")
        assert settings.get_unit_price(UtilityType.water) is None


def test_create_with_cost_amount_keeps_settings_untouched() -> None:
    database = make_database()

    with database.session_scope() as session:
        entry = EntryService(session, "user-a").create(
            entry_in(type=UtilityType.fuel, unit_price=None, cost_amount=Decimal("25"))
        )
        assert entry.unit_price is None
        assert entry.cost_amount == Decimal("25.00")
        assert SettingsService(session, "user-a").get(UtilityType.fuel) is None


def test_list_is_newest_first_and_scoped_to_owner() -> None:
    database = make_database()

    with database.session_scope() as session:
        mine = EntryService(session, "user-a")
        mine.create(entry_in(date=date(2024, 1, 1)))
        mine.create(entry_in(date=date(2024, 3, 1), type=UtilityType.water))
        mine.create(entry_in(date=date(2024, 2, 1)))
        EntryService(session, "user-b").create(entry_in(date=date(2024, 4, 1)))

        entries = mine.list()
        assert [e.date for e in entries] == [
            date(2024, 3, 1),
            date(2024, 2, 1),
            date(2024, 1, 1),
        ]
        assert {e.user_id for e in entries} == {"user-a"}

        water = mine.list(EntryFilters(type=UtilityType.water))
        assert [e.date for e in water] == [date(2024, 3, 1)]

        window = mine.list(EntryFilters(start=date(2024, 1, 15), end=date(2024, 2, 1)))
        assert [e.date for e in window] == [date(2024, 2, 1)]


def test_delete_requires_ownership() -> None:
    database = make_database()

    with database.session_scope() as session:
        entry = EntryService(session, "user-a").create(entry_in())
        entry_id = entry.id

    with database.session_scope() as session:
        with pytest.raises(NotFound):
            EntryService(session, "user-b").delete(entry_id)
        assert len(EntryService(session, "user-a").list()) == 1

        deleted = EntryService(session, "user-a").delete(entry_id)
        assert deleted.id == entry_id
        assert EntryService(session, "user-a").list() == []

        with pytest.raises(NotFound):
            EntryService(session, "user-a").delete(entry_id)


def test_stats_overview_and_recent_months() -> None:
    database = make_database()

    with database.session_scope() as session:
        entries = EntryService(session, "user-a")
        entries.create(
            entry_in(
                type=UtilityType.fuel,
                usage_amount=Decimal("10"),
                unit_price=Decimal("1"),
                date=date(2024, 1, 5),
            )
        )
        entries.create(
            entry_in(
                type=UtilityType.fuel,
                usage_amount=Decimal("10"),
                unit_price=Decimal("1.5"),
                date=date(2024, 1, 20),
            )
        )
        entries.create(entry_in(date=date(2023, 12, 1)))

        stats = StatsService(session, "user-a")
        overview = stats.overview()
        assert overview.totals.entry_count == 3
        assert overview.totals.total_cost == Decimal("55")
        assert [g.type for g in overview.by_type] == [
            UtilityType.electricity,
            UtilityType.fuel,
        ]
        assert [(m.month, m.total_cost) for m in overview.monthly] == [
            ("2023-12", Decimal("30")),
            ("2024-01", Decimal("25")),
        ]

        recent = stats.recent_months(limit=1)
        assert [m.month for m in recent] == ["2024-01"]

        breakdown = stats.breakdown(UtilityType.fuel, 2024, 1)
        assert [(m.month, m.total) for m in breakdown.monthly] == [
            ("2024-01", Decimal("25"))
        ]
        assert [d.date for d in breakdown.daily] == ["2024-01-05", "2024-01-20"]


def test_unopened_database_is_unavailable() -> None:
    database = Database("sqlite://")
    assert not database.is_open
    with pytest.raises(DatabaseUnavailable):
        database.session()

    with pytest.raises(DatabaseUnavailable):
        Database(None).open()


def test_closed_database_is_unavailable() -> None:
    database = make_database()
    database.close()
    with pytest.raises(DatabaseUnavailable):
        database.session()


def test_engine_needs_a_url() -> None:
    with pytest.raises(DatabaseUnavailable):
        Database("")._create_engine()
