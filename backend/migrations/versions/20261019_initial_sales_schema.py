"""Initial schema: catalog, customers, sales, inventory logs, daily reports

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=False, scale=2, precision=12):
    return sa.Column(name, sa.Numeric(precision, scale), nullable=nullable)


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("barcode", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        _money("price"),
        _money("cost_price"),
        _money("tax_rate", precision=5),
        _money("wholesale_price", nullable=True),
        sa.Column("wholesale_threshold", sa.Integer(), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=False),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False),
        sa.Column("brand", sa.String(length=128), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("last_sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("sku"),
        sa.UniqueConstraint("barcode"),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_category_id", "products", ["category_id"])
    op.create_index("ix_products_name", "products", ["name"])
    op.create_index("ix_products_active", "products", ["is_active"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("gstin", sa.String(length=32), nullable=True),
        sa.Column("loyalty_points", sa.Integer(), nullable=False),
        _money("credit_limit"),
        _money("outstanding_balance"),
        sa.Column("last_visit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("phone"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("cashier_id", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=True),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        _money("sub_total"),
        _money("tax_total"),
        _money("cgst", scale=3),
        _money("sgst", scale=3),
        _money("igst", scale=3),
        _money("discount_total"),
        _money("grand_total"),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        _money("amount_paid"),
        _money("change_amount"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("offline_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("invoice_number"),
        sa.CheckConstraint(
            "(customer_id IS NOT NULL AND customer_name IS NULL)"
            " OR (customer_id IS NULL AND customer_name IS NOT NULL)",
            name="ck_sales_customer_xor_walkin",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_cashier_id", "sales", ["cashier_id"])
    op.create_index("ix_sales_customer_id", "sales", ["customer_id"])
    op.create_index("ix_sales_payment_method", "sales", ["payment_method"])
    op.create_index("ix_sales_payment_status", "sales", ["payment_status"])
    op.create_index("ix_sales_status", "sales", ["status"])
    op.create_index("ix_sales_offline_id", "sales", ["offline_id"])
    op.create_index("ix_sales_created_at", "sales", ["created_at"])

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_price"),
        _money("cost_price"),
        _money("tax_rate", precision=5),
        _money("tax_amount"),
        _money("discount"),
        _money("sub_total"),
        sa.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_lines_sale_id", "sale_lines", ["sale_id"])
    op.create_index("ix_sale_lines_product_id", "sale_lines", ["product_id"])

    op.create_table(
        "inventory_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_stock", sa.Integer(), nullable=False),
        sa.Column("new_stock", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_logs_product_id", "inventory_logs", ["product_id"])
    op.create_index("ix_inventory_logs_type", "inventory_logs", ["type"])
    op.create_index("ix_inventory_logs_reference_id", "inventory_logs", ["reference_id"])
    op.create_index("ix_inventory_logs_user_id", "inventory_logs", ["user_id"])
    op.create_index("ix_inventory_logs_timestamp", "inventory_logs", ["timestamp"])
    op.create_index("ix_inventory_logs_product_timestamp", "inventory_logs", ["product_id", "timestamp"])

    op.create_table(
        "daily_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        _money("total_sales", precision=14),
        _money("total_profit", precision=14),
        _money("total_tax", precision=14),
        _money("total_discount", precision=14),
        sa.Column("order_count", sa.Integer(), nullable=False),
        _money("cash_amount", precision=14),
        _money("card_amount", precision=14),
        _money("upi_amount", precision=14),
        _money("credit_amount", precision=14),
        _money("split_amount", precision=14),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("date"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("document_sequences")
    op.drop_table("daily_reports")
    op.drop_table("inventory_logs")
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_table("customers")
    op.drop_table("products")
    op.drop_table("categories")
