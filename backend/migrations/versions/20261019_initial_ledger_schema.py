"""Initial terminal ledger schema

Revision ID: 20261019_initial_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _approval_columns():
    return [
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("created_by_name", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("approved_by", sa.String(length=64), nullable=True),
        sa.Column("approved_by_name", sa.String(length=128), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(length=64), nullable=True),
        sa.Column("rejected_by_name", sa.String(length=128), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(length=255), nullable=True),
        sa.Column("sync_status", sa.String(length=16), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "locations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False),
    )
    op.create_index("ix_locations_name", "locations", ["name"])

    op.create_table(
        "registers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("location_id", sa.String(length=36), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("float_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
    )
    op.create_index("ix_registers_location_id", "registers", ["location_id"])
    op.create_index("ix_registers_status", "registers", ["status"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("sku", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("category_id", sa.String(length=64), nullable=True),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("barcode", sa.String(length=64), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        sa.CheckConstraint("tax_rate >= 0 AND tax_rate <= 1", name="ck_products_tax_rate_range"),
    )
    op.create_index("ix_products_name", "products", ["name"])
    op.create_index("ix_products_category_id", "products", ["category_id"])
    op.create_index("ix_products_barcode", "products", ["barcode"])
    op.create_index("ix_products_updated_at", "products", ["updated_at"])

    op.create_table(
        "carts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("total_tax_cents", sa.Integer(), nullable=False),
        sa.Column("total_discount_cents", sa.Integer(), nullable=False),
        sa.Column("grand_total_cents", sa.Integer(), nullable=False),
        sa.Column("rounding_adjustment_cents", sa.Integer(), nullable=False),
        sa.Column("customer_ref", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_index("ix_carts_status", "carts", ["status"])
    op.create_index("ix_carts_created_at", "carts", ["created_at"])
    op.create_index("ix_carts_updated_at", "carts", ["updated_at"])
    op.create_index(
        "uq_carts_single_active",
        "carts",
        ["status"],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "cart_line_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("cart_id", sa.String(length=36), sa.ForeignKey("carts.id"), nullable=False),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("line_tax_cents", sa.Integer(), nullable=False),
        sa.UniqueConstraint("cart_id", "product_id", name="uq_cart_line_items_cart_product"),
        sa.CheckConstraint("quantity > 0", name="ck_cart_line_items_quantity_positive"),
        sa.CheckConstraint("discount_cents >= 0", name="ck_cart_line_items_discount_non_negative"),
    )
    op.create_index("ix_cart_line_items_cart_id", "cart_line_items", ["cart_id"])
    op.create_index("ix_cart_line_items_product_id", "cart_line_items", ["product_id"])

    op.create_table(
        "shifts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("register_id", sa.String(length=36), sa.ForeignKey("registers.id"), nullable=False),
        sa.Column("location_id", sa.String(length=36), nullable=False),
        sa.Column("opened_by", sa.String(length=64), nullable=False),
        sa.Column("opened_by_name", sa.String(length=128), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_by", sa.String(length=64), nullable=True),
        sa.Column("closed_by_name", sa.String(length=128), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opening_float_cents", sa.Integer(), nullable=False),
        sa.Column("expected_cash_cents", sa.Integer(), nullable=False),
        sa.Column("actual_cash_cents", sa.Integer(), nullable=True),
        sa.Column("cash_difference_cents", sa.Integer(), nullable=True),
        sa.Column("sales_count", sa.Integer(), nullable=False),
        sa.Column("sales_total_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("sync_status", sa.String(length=16), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_index("ix_shifts_register_id", "shifts", ["register_id"])
    op.create_index("ix_shifts_location_id", "shifts", ["location_id"])
    op.create_index("ix_shifts_opened_by", "shifts", ["opened_by"])
    op.create_index("ix_shifts_opened_at", "shifts", ["opened_at"])
    op.create_index("ix_shifts_status", "shifts", ["status"])
    op.create_index("ix_shifts_sync_status", "shifts", ["sync_status"])
    op.create_index(
        "uq_shifts_open_per_user_location",
        "shifts",
        ["opened_by", "location_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "shift_reports",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("shift_id", sa.String(length=36), sa.ForeignKey("shifts.id"), nullable=False),
        sa.Column("kind", sa.String(length=1), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("generated_by", sa.String(length=128), nullable=False),
        sa.Column("approved_by", sa.String(length=128), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sales_count", sa.Integer(), nullable=False),
        sa.Column("sales_total_cents", sa.Integer(), nullable=False),
        sa.Column("cash_total_cents", sa.Integer(), nullable=False),
        sa.Column("card_total_cents", sa.Integer(), nullable=False),
        sa.Column("transfer_total_cents", sa.Integer(), nullable=False),
        sa.Column("mobile_total_cents", sa.Integer(), nullable=False),
        sa.Column("expected_cash_cents", sa.Integer(), nullable=True),
        sa.Column("actual_cash_cents", sa.Integer(), nullable=True),
        sa.Column("variance_cents", sa.Integer(), nullable=True),
    )
    op.create_index("ix_shift_reports_shift_id", "shift_reports", ["shift_id"])
    op.create_index(
        "uq_shift_reports_single_z",
        "shift_reports",
        ["shift_id"],
        unique=True,
        sqlite_where=sa.text("kind = 'Z'"),
        postgresql_where=sa.text("kind = 'Z'"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("cart_id", sa.String(length=36), sa.ForeignKey("carts.id"), nullable=False, unique=True),
        sa.Column("shift_id", sa.String(length=36), sa.ForeignKey("shifts.id"), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("payment_amount_cents", sa.Integer(), nullable=False),
        sa.Column("tendered_cents", sa.Integer(), nullable=False),
        sa.Column("change_given_cents", sa.Integer(), nullable=False),
        sa.Column("receipt_id", sa.String(length=32), nullable=True, unique=True),
        sa.Column("reference_number", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("sync_status", sa.String(length=16), nullable=False),
        sa.Column("offline_created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_transactions_shift_id", "transactions", ["shift_id"])
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_payment_method", "transactions", ["payment_method"])
    op.create_index("ix_transactions_sync_status", "transactions", ["sync_status"])
    op.create_index("ix_transactions_offline_created_at", "transactions", ["offline_created_at"])

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(length=36), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_entries_transaction_id", "audit_entries", ["transaction_id"])

    op.create_table(
        "inventory_adjustments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("location_id", sa.String(length=36), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        *_approval_columns(),
    )
    op.create_index("ix_inventory_adjustments_product_id", "inventory_adjustments", ["product_id"])
    op.create_index("ix_inventory_adjustments_location_id", "inventory_adjustments", ["location_id"])
    op.create_index("ix_inventory_adjustments_created_at", "inventory_adjustments", ["created_at"])
    op.create_index("ix_inventory_adjustments_status", "inventory_adjustments", ["status"])
    op.create_index("ix_inventory_adjustments_sync_status", "inventory_adjustments", ["sync_status"])

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("shift_id", sa.String(length=36), sa.ForeignKey("shifts.id"), nullable=False),
        sa.Column("type", sa.String(length=24), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("from_location", sa.String(length=32), nullable=False),
        sa.Column("to_location", sa.String(length=32), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        *_approval_columns(),
    )
    op.create_index("ix_cash_movements_shift_id", "cash_movements", ["shift_id"])
    op.create_index("ix_cash_movements_type", "cash_movements", ["type"])
    op.create_index("ix_cash_movements_created_at", "cash_movements", ["created_at"])
    op.create_index("ix_cash_movements_status", "cash_movements", ["status"])
    op.create_index("ix_cash_movements_sync_status", "cash_movements", ["sync_status"])

    op.create_table(
        "sync_queue",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.String(length=255), nullable=True),
        sa.Column("dead_lettered_at", sa.DateTime(timezone=True), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sync_queue_entity_type", "sync_queue", ["entity_type"])
    op.create_index("ix_sync_queue_entity_id", "sync_queue", ["entity_id"])
    op.create_index("ix_sync_queue_status_created", "sync_queue", ["status", "created_at"])


def downgrade():
    op.drop_table("sync_queue")
    op.drop_table("cash_movements")
    op.drop_table("inventory_adjustments")
    op.drop_table("audit_entries")
    op.drop_table("transactions")
    op.drop_table("shift_reports")
    op.drop_table("shifts")
    op.drop_table("cart_line_items")
    op.drop_table("carts")
    op.drop_table("products")
    op.drop_table("registers")
    op.drop_table("locations")
