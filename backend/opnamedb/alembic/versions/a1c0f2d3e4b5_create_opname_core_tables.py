"""create opname core tables

Revision ID: a1c0f2d3e4b5
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c0f2d3e4b5"
down_revision = None
branch_labels = None
depends_on = None


def _role_enum() -> sa.Enum:
    return sa.Enum("STAFF", "ADMIN", name="account_role_enum", native_enum=False)


def _kind_enum() -> sa.Enum:
    return sa.Enum("batch", "residual", name="opname_kind_enum", native_enum=False)


def _status_enum() -> sa.Enum:
    return sa.Enum("scheduled", "submitted", "adjusted", "pending", name="opname_status_enum", native_enum=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", _role_enum(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_is_active", "users", ["is_active"], unique=False)
    op.create_index("idx_users_role_active", "users", ["role", "is_active"], unique=False)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
    )
    op.create_index("ix_categories_code", "categories", ["code"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "category_code",
            sa.String(length=32),
            sa.ForeignKey("categories.code", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sell_price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("purchase_price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_non_negative"),
    )
    op.create_index("ix_products_code", "products", ["code"], unique=True)
    op.create_index("ix_products_category_code", "products", ["category_code"], unique=False)

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("batch_code", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("initial_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("arrival_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_batches_stock_non_negative"),
        sa.CheckConstraint("initial_stock >= 0", name="ck_batches_initial_non_negative"),
    )
    op.create_index("ix_batches_batch_code", "batches", ["batch_code"], unique=True)
    op.create_index("ix_batches_product_id", "batches", ["product_id"], unique=False)
    op.create_index("ix_batches_expiry_date", "batches", ["expiry_date"], unique=False)
    op.create_index(
        "ix_batches_product_fifo",
        "batches",
        ["product_id", "expiry_date", "arrival_date", "id"],
        unique=False,
    )

    op.create_table(
        "opname_tasks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "created_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("kind", _kind_enum(), nullable=False),
        sa.Column("status", _status_enum(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("opname_date", sa.Date(), nullable=True),
        sa.Column("system_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("physical_stock", sa.Integer(), nullable=True),
        sa.Column("expired_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("damaged_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("residual_quantity", sa.Integer(), nullable=True),
        sa.Column("residual_system_total", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("edit_requested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edit_request_reason", sa.Text(), nullable=True),
        sa.Column("edit_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(kind = 'residual' AND batch_id IS NULL) OR (kind = 'batch' AND batch_id IS NOT NULL)",
            name="ck_opname_tasks_kind_batch",
        ),
        sa.CheckConstraint("system_stock >= 0", name="ck_opname_tasks_system_non_negative"),
        sa.CheckConstraint(
            "physical_stock IS NULL OR physical_stock >= 0",
            name="ck_opname_tasks_physical_non_negative",
        ),
    )
    op.create_index("ix_opname_tasks_user_id", "opname_tasks", ["user_id"], unique=False)
    op.create_index("ix_opname_tasks_batch_id", "opname_tasks", ["batch_id"], unique=False)
    op.create_index("ix_opname_tasks_product_id", "opname_tasks", ["product_id"], unique=False)
    op.create_index("ix_opname_tasks_status", "opname_tasks", ["status"], unique=False)
    op.create_index("ix_opname_tasks_scheduled_date", "opname_tasks", ["scheduled_date"], unique=False)
    op.create_index("ix_opname_tasks_opname_date", "opname_tasks", ["opname_date"], unique=False)
    op.create_index("ix_opname_tasks_user_status", "opname_tasks", ["user_id", "status"], unique=False)
    op.create_index("ix_opname_tasks_product_status", "opname_tasks", ["product_id", "status"], unique=False)
    op.create_index("ix_opname_tasks_status_scheduled", "opname_tasks", ["status", "scheduled_date"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("sales_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sales_user_id", "sales", ["user_id"], unique=False)
    op.create_index("ix_sales_sales_date", "sales", ["sales_date"], unique=False)
    op.create_index("ix_sales_user_date", "sales", ["user_id", "sales_date"], unique=False)

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("selling_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
    )
    op.create_index("ix_sale_lines_sale_id", "sale_lines", ["sale_id"], unique=False)
    op.create_index("ix_sale_lines_product_id", "sale_lines", ["product_id"], unique=False)
    op.create_index("ix_sale_lines_batch_id", "sale_lines", ["batch_id"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column(
            "actor_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"], unique=False)
    op.create_index("ix_audit_events_action", "audit_events", ["action"], unique=False)
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"], unique=False)
    op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")], unique=False)


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_table("opname_tasks")
    op.drop_table("batches")
    op.drop_table("products")
    op.drop_table("categories")
    op.drop_table("users")
