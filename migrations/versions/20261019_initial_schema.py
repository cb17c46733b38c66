"""Create the stockroom schema.

Revision ID: 20261019_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "role",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("description", sa.String(length=255), nullable=True),
    )

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=255), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "user_role",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("role.id"), primary_key=True),
    )

    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_category_name", "category", ["name"])

    op.create_table(
        "item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("initial_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("properties", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_item_quantity_non_negative"),
    )
    op.create_index("ix_item_name", "item", ["name"])
    op.create_index("ix_item_category_id", "item", ["category_id"])
    op.create_index("ix_item_location", "item", ["location"])

    op.create_table(
        "stock_transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("item.id"), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("user_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_transaction_quantity_positive"),
        sa.CheckConstraint(
            "type IN ('withdrawal', 'addition')", name="ck_stock_transaction_type"
        ),
    )
    op.create_index("ix_stock_transaction_item_id", "stock_transaction", ["item_id"])
    op.create_index("ix_stock_transaction_created_at", "stock_transaction", ["created_at"])

    op.create_table(
        "purchase_request",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=False),
        sa.Column("units_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("completed_units", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("requester", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("units_count >= 1", name="ck_purchase_request_units_count"),
        sa.CheckConstraint(
            "completed_units >= 0", name="ck_purchase_request_completed_units"
        ),
    )
    op.create_index("ix_purchase_request_status", "purchase_request", ["status"])

    op.create_table(
        "purchase_item_mapping",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_request_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity_added", sa.Integer(), nullable=False),
        sa.Column("added_by", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["purchase_request_id"], ["purchase_request.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["item_id"], ["item.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_purchase_item_mapping_purchase_request_id",
        "purchase_item_mapping",
        ["purchase_request_id"],
    )

    op.create_table(
        "preset",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "preset_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("preset_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=False),
        sa.Column("quantity_needed", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("requirements", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["preset_id"], ["preset.id"], ondelete="CASCADE"),
        sa.CheckConstraint("quantity_needed >= 1", name="ck_preset_item_quantity_needed"),
    )

    op.create_table(
        "preset_withdrawal_mapping",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("preset_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity_withdrawn", sa.Integer(), nullable=False),
        sa.Column("withdrawn_by", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["preset_id"], ["preset.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["item_id"], ["item.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_preset_withdrawal_mapping_preset_id",
        "preset_withdrawal_mapping",
        ["preset_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_preset_withdrawal_mapping_preset_id", table_name="preset_withdrawal_mapping")
    op.drop_table("preset_withdrawal_mapping")
    op.drop_table("preset_item")
    op.drop_table("preset")
    op.drop_index(
        "ix_purchase_item_mapping_purchase_request_id", table_name="purchase_item_mapping"
    )
    op.drop_table("purchase_item_mapping")
    op.drop_index("ix_purchase_request_status", table_name="purchase_request")
    op.drop_table("purchase_request")
    op.drop_index("ix_stock_transaction_created_at", table_name="stock_transaction")
    op.drop_index("ix_stock_transaction_item_id", table_name="stock_transaction")
    op.drop_table("stock_transaction")
    op.drop_index("ix_item_location", table_name="item")
    op.drop_index("ix_item_category_id", table_name="item")
    op.drop_index("ix_item_name", table_name="item")
    op.drop_table("item")
    op.drop_index("ix_category_name", table_name="category")
    op.drop_table("category")
    op.drop_table("user_role")
    op.drop_table("user")
    op.drop_table("role")
