"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"))


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"))


def upgrade() -> None:
    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    def ensure_indexes(table: str, columns: list[str]) -> None:
        idxs = existing_indexes(table)
        for col in columns:
            name = f"ix_{table}_{col}"
            if name not in idxs:
                op.create_index(name, table, [col])

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("full_name", sa.String(), nullable=True),
            sa.Column("avatar_url", sa.String(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("profiles", ["id", "email"])

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            _created_at(),
        )
    ensure_indexes("user_roles", ["user_id", "role"])

    if "store_categories" not in existing_tables:
        op.create_table(
            "store_categories",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("slug", sa.String(), nullable=True, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("icon", sa.String(), nullable=True),
            sa.Column("display_order", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("store_categories", ["slug", "status"])

    if "store_products" not in existing_tables:
        op.create_table(
            "store_products",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("category_id", sa.String(), sa.ForeignKey("store_categories.id"), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("slug", sa.String(), nullable=True),
            sa.Column("price", sa.Float(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("product_type", sa.String(), nullable=True),
            sa.Column("stock", sa.Text(), nullable=True),
            sa.Column("min_quantity", sa.Integer(), nullable=True),
            sa.Column("max_quantity", sa.Integer(), nullable=True),
            sa.Column("post_sale_instructions", sa.Text(), nullable=True),
            sa.Column("short_description", sa.Text(), nullable=True),
            sa.Column("is_hidden", sa.Boolean(), nullable=True),
            sa.Column("display_order", sa.Integer(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("store_products", ["category_id", "slug", "status"])

    if "store_coupons" not in existing_tables:
        op.create_table(
            "store_coupons",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("code", sa.String(), nullable=True, unique=True),
            sa.Column("discount_type", sa.String(), nullable=True),
            sa.Column("discount_value", sa.Float(), nullable=True),
            sa.Column("max_uses", sa.Integer(), nullable=True),
            sa.Column("used_count", sa.Integer(), nullable=True),
            sa.Column("min_order_value", sa.Float(), nullable=True),
            sa.Column("max_order_value", sa.Float(), nullable=True),
            sa.Column("max_discount_amount", sa.Float(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
            sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
            sa.Column("category_ids", sa.JSON(), nullable=True),
            sa.Column("product_ids", sa.JSON(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("store_coupons", ["code", "is_active"])

    if "store_orders" not in existing_tables:
        op.create_table(
            "store_orders",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("customer_email", sa.String(), nullable=True),
            sa.Column("payment_method", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("subtotal", sa.Float(), nullable=True),
            sa.Column("discount_amount", sa.Float(), nullable=True),
            sa.Column("total", sa.Float(), nullable=True),
            sa.Column("coupon_code", sa.String(), nullable=True),
            sa.Column("coupon_id", sa.String(), nullable=True),
            sa.Column("items", sa.JSON(), nullable=True),
            sa.Column("delivered_items", sa.JSON(), nullable=True),
            sa.Column("payment_reference", sa.String(), nullable=True),
            sa.Column("payer_name", sa.String(), nullable=True),
            sa.Column("payer_document", sa.String(), nullable=True),
            _created_at(),
            _updated_at(),
            sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        )
    ensure_indexes("store_orders", ["user_id", "customer_email", "status", "coupon_id", "payment_reference"])

    if "payment_transactions" not in existing_tables:
        op.create_table(
            "payment_transactions",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("order_id", sa.String(), nullable=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("provider", sa.String(), nullable=True),
            sa.Column("provider_transaction_id", sa.String(), nullable=True, unique=True),
            sa.Column("amount", sa.Float(), nullable=True),
            sa.Column("fee", sa.Float(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("transaction_type", sa.String(), nullable=True),
            sa.Column("payer_name", sa.String(), nullable=True),
            sa.Column("payer_document", sa.String(), nullable=True),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("qr_code_base64", sa.Text(), nullable=True),
            sa.Column("qr_code_url", sa.String(), nullable=True),
            sa.Column("copy_paste", sa.Text(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _created_at(),
            _updated_at(),
        )
    ensure_indexes("payment_transactions", ["order_id", "user_id", "provider", "provider_transaction_id", "status"])

    if "team_members" not in existing_tables:
        op.create_table(
            "team_members",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("manager_id", sa.String(), nullable=True),
            sa.Column("operator_id", sa.String(), nullable=True),
            sa.Column("nickname", sa.String(), nullable=True),
            sa.Column("team_name", sa.String(), nullable=True),
            _created_at(),
        )
    ensure_indexes("team_members", ["manager_id", "operator_id"])

    if "operation_methods" not in existing_tables:
        op.create_table(
            "operation_methods",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("color", sa.String(), nullable=True),
            sa.Column("created_by", sa.String(), nullable=True),
            _created_at(),
        )

    if "operations" not in existing_tables:
        op.create_table(
            "operations",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("method_id", sa.String(), nullable=True),
            sa.Column("invested_amount", sa.Float(), nullable=True),
            sa.Column("return_amount", sa.Float(), nullable=True),
            sa.Column("operation_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
        )
    ensure_indexes("operations", ["user_id", "method_id", "operation_date"])

    if "expense_categories" not in existing_tables:
        op.create_table(
            "expense_categories",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("color", sa.String(), nullable=True),
            _created_at(),
        )

    if "expenses" not in existing_tables:
        op.create_table(
            "expenses",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("category_id", sa.String(), nullable=True),
            sa.Column("amount", sa.Float(), nullable=True),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("expense_date", sa.Date(), nullable=True),
            _created_at(),
        )
    ensure_indexes("expenses", ["user_id", "category_id", "expense_date"])

    if "goals" not in existing_tables:
        op.create_table(
            "goals",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("title", sa.String(), nullable=True),
            sa.Column("goal_type", sa.String(), nullable=True),
            sa.Column("target_amount", sa.Float(), nullable=True),
            sa.Column("current_amount", sa.Float(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("deadline", sa.Date(), nullable=True),
            _created_at(),
        )
    ensure_indexes("goals", ["user_id"])

    if "dutching_history" not in existing_tables:
        op.create_table(
            "dutching_history",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("odds", sa.JSON(), nullable=True),
            sa.Column("stakes", sa.JSON(), nullable=True),
            sa.Column("total_invested", sa.Float(), nullable=True),
            sa.Column("guaranteed_return", sa.Float(), nullable=True),
            sa.Column("profit", sa.Float(), nullable=True),
            sa.Column("roi", sa.Float(), nullable=True),
            sa.Column("observation", sa.Text(), nullable=True),
            _created_at(),
        )
    ensure_indexes("dutching_history", ["user_id"])

    if "balance_adjustments" not in existing_tables:
        op.create_table(
            "balance_adjustments",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("amount", sa.Float(), nullable=True),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("adjustment_date", sa.Date(), nullable=True),
            _created_at(),
        )
    ensure_indexes("balance_adjustments", ["user_id", "adjustment_date"])


def downgrade() -> None:
    for table in [
        "balance_adjustments",
        "dutching_history",
        "goals",
        "expenses",
        "expense_categories",
        "operations",
        "operation_methods",
        "team_members",
        "payment_transactions",
        "store_orders",
        "store_coupons",
        "store_products",
        "store_categories",
        "user_roles",
        "profiles",
    ]:
        op.drop_table(table)
