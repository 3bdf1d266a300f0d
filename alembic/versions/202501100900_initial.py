"""initial budget schema

Revision ID: 202501100900
Revises:
Create Date: 2025-01-10 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202501100900"
down_revision = None
branch_labels = None
depends_on = None

OCCURRENCE_TYPES = ("once", "weekly", "monthly", "biweekly", "twice-monthly")


def _timestamps():
    return [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "color", sa.String(length=9), nullable=False, server_default="#6b7280"
        ),
        sa.Column("icon", sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "incomes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("source", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "occurrence_type",
            sa.Enum(*OCCURRENCE_TYPES, name="occurrencetype"),
            nullable=False,
            server_default="once",
        ),
        sa.Column("first_date", sa.Integer(), nullable=True),
        sa.Column("second_date", sa.Integer(), nullable=True),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True
        ),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_incomes_amount_positive"),
        sa.CheckConstraint(
            "first_date IS NULL OR (first_date BETWEEN 1 AND 31)",
            name="ck_incomes_first_date_range",
        ),
        sa.CheckConstraint(
            "second_date IS NULL OR (second_date BETWEEN 1 AND 31)",
            name="ck_incomes_second_date_range",
        ),
    )
    op.create_index("ix_incomes_user_date", "incomes", ["user_id", "date"])

    op.create_table(
        "bills",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("day", sa.Integer(), nullable=True),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column(
            "is_one_time", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("is_yearly", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "reminder_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("reminder_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True
        ),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_bills_amount_positive"),
        sa.CheckConstraint(
            "day IS NULL OR (day BETWEEN 1 AND 31)", name="ck_bills_day_range"
        ),
    )
    op.create_index("ix_bills_user_day", "bills", ["user_id", "day"])


def downgrade():
    op.drop_index("ix_bills_user_day", table_name="bills")
    op.drop_table("bills")
    op.drop_index("ix_incomes_user_date", table_name="incomes")
    op.drop_table("incomes")
    op.drop_table("categories")
    op.drop_table("users")
    sa.Enum(name="occurrencetype").drop(op.get_bind(), checkfirst=True)
