"""Create users, inventory items and the stock ledger tables.

Revision ID: 0001_inventory_ledger
Revises:
Create Date: 2025-11-03 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "0001_inventory_ledger"
down_revision = None
branch_labels = None
depends_on = None

LEDGER_TABLES = ("inventory_addition", "inventory_subtraction")


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return bool(insp.has_table(table_name))


def _create_ledger_table(table_name: str) -> None:
    op.create_table(
        table_name,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "inventory_id",
            sa.Integer(),
            sa.ForeignKey("inventory.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("vendor", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name=f"ck_{table_name}_quantity_positive"),
    )
    op.create_index(f"ix_{table_name}_id", table_name, ["id"])
    op.create_index(f"ix_{table_name}_inventory_id", table_name, ["inventory_id"])
    op.create_index(f"ix_{table_name}_item_date", table_name, ["inventory_id", "date"])


def upgrade() -> None:
    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _table_exists("inventory"):
        op.create_table(
            "inventory",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("fno", sa.String(length=64), nullable=False),
            sa.Column("pack", sa.String(length=64), nullable=False),
            sa.Column("unit", sa.String(length=32), nullable=False),
            sa.Column("remarks", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_inventory_id", "inventory", ["id"])
        op.create_index("ix_inventory_fno", "inventory", ["fno"])
        op.create_index("ix_inventory_created_at", "inventory", ["created_at"])

    for table_name in LEDGER_TABLES:
        if not _table_exists(table_name):
            _create_ledger_table(table_name)


def downgrade() -> None:
    for table_name in LEDGER_TABLES:
        if _table_exists(table_name):
            op.drop_table(table_name)
    if _table_exists("inventory"):
        op.drop_table("inventory")
    if _table_exists("users"):
        op.drop_table("users")
