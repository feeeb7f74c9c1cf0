"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "restaurants",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("handling_charge_bps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_delivery_radius", sa.Float(), nullable=False, server_default="0"),
        sa.Column("free_delivery_radius", sa.Float(), nullable=False, server_default="0"),
        sa.Column("charge_per_mile_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepts_bookings", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("booking_fee_minor", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_restaurants_owner_id", "restaurants", ["owner_id"])

    op.create_table(
        "restaurant_timings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("open_time", sa.String(length=5), nullable=False, server_default="10:00"),
        sa.Column("close_time", sa.String(length=5), nullable=False, server_default="22:00"),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("restaurant_id", "day_of_week", name="uq_restaurant_timings_day"),
    )
    op.create_index("ix_restaurant_timings_restaurant_id", "restaurant_timings", ["restaurant_id"])

    op.create_table(
        "menu_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("price_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_food", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("variant_groups", sa.JSON(), nullable=False),
        sa.Column("addon_groups", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_menu_items_restaurant_id", "menu_items", ["restaurant_id"])

    op.create_table(
        "tables",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("table_number", sa.String(length=20), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("area", sa.String(length=40), nullable=False, server_default="indoor"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_tables_restaurant_id", "tables", ["restaurant_id"])

    op.create_table(
        "cart_lines",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("cart_type", sa.String(length=12), nullable=False, server_default="food"),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("menu_item_id", sa.String(length=36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("variant_json", sa.JSON(), nullable=True),
        sa.Column("addons_json", sa.JSON(), nullable=False),
        sa.Column("selection_key", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "cart_type", "menu_item_id", "selection_key", name="uq_cart_lines_selection"),
    )
    op.create_index("ix_cart_lines_user_id", "cart_lines", ["user_id"])

    op.create_table(
        "offers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("promo_code", sa.String(length=40), nullable=False),
        sa.Column("discount_type", sa.String(length=20), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_discount_minor", sa.Integer(), nullable=True),
        sa.Column("min_order_value_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_offers_restaurant_id", "offers", ["restaurant_id"])
    op.create_index("ix_offers_promo_code", "offers", ["promo_code"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("order_number", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("cart_type", sa.String(length=12), nullable=False, server_default="food"),
        sa.Column("order_type", sa.String(length=12), nullable=False, server_default="delivery"),
        sa.Column("delivery_address", sa.JSON(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("pricing", sa.JSON(), nullable=False),
        sa.Column("applied_offer", sa.JSON(), nullable=True),
        sa.Column("promo_code", sa.String(length=40), nullable=True),
        sa.Column("total_amount_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="gbp"),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("refund_status", sa.String(length=20), nullable=True),
        sa.Column("payment_reference", sa.String(length=120), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("idempotency_key", sa.String(length=64), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_restaurant_id", "orders", ["restaurant_id"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_number", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("restaurant_id", sa.String(length=36), nullable=False),
        sa.Column("table_id", sa.String(length=36), nullable=False),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("guests", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("fee_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="gbp"),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("refund_status", sa.String(length=20), nullable=True),
        sa.Column("payment_reference", sa.String(length=120), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("idempotency_key", sa.String(length=64), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bookings_booking_number", "bookings", ["booking_number"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_restaurant_id", "bookings", ["restaurant_id"])
    op.create_index("ix_bookings_table_id", "bookings", ["table_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    # one confirmed booking per table and time
    op.create_index(
        "uq_bookings_confirmed_slot",
        "bookings",
        ["table_id", "booking_time"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
        sqlite_where=sa.text("status = 'confirmed'"),
    )

    op.create_table(
        "slot_locks",
        sa.Column("resource_id", sa.String(length=36), nullable=False),
        sa.Column("time_slot", sa.DateTime(timezone=True), nullable=False),
        sa.Column("holder", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("resource_id", "time_slot"),
    )
    op.create_index("ix_slot_locks_expires_at", "slot_locks", ["expires_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("slot_locks")
    op.drop_index("uq_bookings_confirmed_slot", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("orders")
    op.drop_table("offers")
    op.drop_table("cart_lines")
    op.drop_table("tables")
    op.drop_table("menu_items")
    op.drop_table("restaurant_timings")
    op.drop_table("restaurants")
