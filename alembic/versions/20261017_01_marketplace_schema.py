"""marketplace schema

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())

    if not _table_exists(inspector, "applications"):
        op.create_table(
            "applications",
            sa.Column("id", sa.String(length=40), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("api_key", sa.String(length=40), nullable=False, unique=True),
            sa.Column("wallet_address", sa.String(length=56), nullable=True),
            sa.Column("jwt_public_keys", sa.JSON(), nullable=False),
            sa.Column("config", sa.JSON(), nullable=False),
            sa.Column("created_date", sa.DateTime(timezone=True), nullable=False),
        )

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=40), primary_key=True, nullable=False),
            sa.Column("app_id", sa.String(length=40), sa.ForeignKey("applications.id"), nullable=False),
            sa.Column("app_user_id", sa.String(length=255), nullable=False),
            sa.Column("device_id", sa.String(length=255), nullable=True),
            sa.Column("wallet_address", sa.String(length=56), nullable=True),
            sa.Column("created_date", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("app_id", "app_user_id", name="uq_users_app_user"),
        )
        op.create_index("ix_users_app_id", "users", ["app_id"], unique=False)

    if not _table_exists(inspector, "offers"):
        op.create_table(
            "offers",
            sa.Column("id", sa.String(length=40), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("cap", sa.JSON(), nullable=False),
            sa.Column("meta", sa.JSON(), nullable=False),
            sa.Column("created_date", sa.DateTime(timezone=True), nullable=False),
        )

    if not _table_exists(inspector, "offer_contents"):
        op.create_table(
            "offer_contents",
            sa.Column("offer_id", sa.String(length=40), sa.ForeignKey("offers.id"), primary_key=True, nullable=False),
            sa.Column("content_type", sa.String(length=32), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
        )

    if not _table_exists(inspector, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=40), primary_key=True, nullable=False),
            sa.Column("origin", sa.String(length=16), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False),
            sa.Column("user_id", sa.String(length=40), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("offer_id", sa.String(length=40), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False),
            sa.Column("meta", sa.JSON(), nullable=False),
            sa.Column("value", sa.Text(), nullable=True),
            sa.Column("blockchain_data", sa.JSON(), nullable=True),
            sa.Column("error", sa.JSON(), nullable=True),
            sa.Column("created_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("current_status_date", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_orders_offer_id", "orders", ["offer_id"], unique=False)
        op.create_index("ix_orders_user_offer_status", "orders", ["user_id", "offer_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_orders_user_offer_status", table_name="orders")
    op.drop_index("ix_orders_offer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_table("offer_contents")
    op.drop_table("offers")
    op.drop_index("ix_users_app_id", table_name="users")
    op.drop_table("users")
    op.drop_table("applications")
