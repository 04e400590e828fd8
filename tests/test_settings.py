from decimal import Decimal

from database import Database
from models import CurrencyCode, UtilityType
from services import PreferencesService, SettingsService


def make_database() -> Database:
    database = Database("sqlite://")
    database.open()
    database.create_all()
    return database


def test_unit_price_upsert_keeps_one_row_per_type() -> None:
    database = make_database()

    with database.session_scope() as session:
        settings = SettingsService(session, "user-a")
        assert settings.get_unit_price(UtilityType.water) is None

        first = settings.upsert_unit_price(UtilityType.water, Decimal("1.2"))
        second = settings.upsert_unit_price(UtilityType.water, Decimal("1.35"))
        assert first.id == second.id
        assert second.unit_price == Decimal("1.35")
        assert settings.get_unit_price(UtilityType.water) == Decimal("1.35")

        other = SettingsService(session, "user-b")
        assert other.get_unit_price(UtilityType.water) is None


def test_currency_defaults_to_euro_and_can_change() -> None:
    database = make_database()

    with database.session_scope() as session:
        preferences = PreferencesService(session, "user-a")
        assert preferences.get_currency() == CurrencyCode.eur

        saved = preferences.upsert_currency(CurrencyCode.usd)
        assert saved.currency == CurrencyCode.usd
        preferences.upsert_currency(CurrencyCode.gbp)
        assert preferences.get_currency() == CurrencyCode.gbp

        assert PreferencesService(session, "user-b").get_currency() == CurrencyCode.eur
