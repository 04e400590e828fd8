"""utility entries, unit price settings and currency preferences

Revision ID: 202410190900
Revises:
Create Date: 2024-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410190900"
down_revision = None
branch_labels = None
depends_on = None

UTILITY_TYPE = sa.Enum("electricity", "water", "fuel", name="utilitytype")
CURRENCY_CODE = sa.Enum(
    "EUR",
    "USD",
    "GBP",
    "CHF",
    "PLN",
    "CZK",
    "SEK",
    "NOK",
    "DKK",
    "HUF",
    name="currencycode",
)


def upgrade():
    op.create_table(
        "utility_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", UTILITY_TYPE, nullable=False),
        sa.Column("usage_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 6)),
        sa.Column("cost_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("usage_amount >= 0", name="ck_entries_usage_non_negative"),
        sa.CheckConstraint("cost_amount >= 0", name="ck_entries_cost_non_negative"),
        sa.CheckConstraint(
            "unit_price IS NULL OR unit_price >= 0",
            name="ck_entries_unit_price_non_negative",
        ),
    )
    op.create_index("idx_utility_entries_user_id", "utility_entries", ["user_id"])
    op.create_index(
        "idx_utility_entries_user_date", "utility_entries", ["user_id", "date"]
    )
    op.create_index(
        "idx_utility_entries_user_type_date",
        "utility_entries",
        ["user_id", "type", "date"],
    )

    op.create_table(
        "utility_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", UTILITY_TYPE, nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "type", name="uq_utility_settings_user_type"),
        sa.CheckConstraint(
            "unit_price >= 0", name="ck_settings_unit_price_non_negative"
        ),
    )

    op.create_table(
        "user_preferences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("currency", CURRENCY_CODE, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("user_preferences")
    op.drop_table("utility_settings")
    op.drop_index("idx_utility_entries_user_type_date", table_name="utility_entries")
    op.drop_index("idx_utility_entries_user_date", table_name="utility_entries")
    op.drop_index("idx_utility_entries_user_id", table_name="utility_entries")
    op.drop_table("utility_entries")
    UTILITY_TYPE.drop(op.get_bind(), checkfirst=True)
    CURRENCY_CODE.drop(op.get_bind(), checkfirst=True)
